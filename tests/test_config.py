from pathlib import Path

import pytest

from osskit.client import Client
from osskit.config import ClientConfig, Credentials, _deep_merge, load_config, resolve_client, resolve_profile
from osskit.regions import Region
from osskit.retry import DEFAULT_ATTEMPTS

pytestmark = [pytest.mark.xdist_group("unit")]


@pytest.fixture
def no_env_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OSS_ACCESS_KEY_ID", raising=False)
    monkeypatch.delenv("OSS_ACCESS_KEY_SECRET", raising=False)


def _profile(tmp_path: Path, body: str) -> Path:
    (tmp_path / "osskit.toml").write_text(body)
    return tmp_path


class TestDeepMerge:
    def test_shallow_override(self):
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self):
        base = {"profiles": {"prod": {"region": "oss-cn-hangzhou", "internal": True}}}
        override = {"profiles": {"prod": {"region": "oss-cn-beijing"}}}
        result = _deep_merge(base, override)
        assert result == {"profiles": {"prod": {"region": "oss-cn-beijing", "internal": True}}}

    def test_override_adds_new_keys(self):
        base = {"profiles": {"a": {"debug": True}}}
        override = {"profiles": {"b": {"debug": False}}}
        assert _deep_merge(base, override) == {"profiles": {"a": {"debug": True}, "b": {"debug": False}}}

    def test_inputs_untouched(self):
        base = {"profiles": {"a": {"debug": True}}}
        _deep_merge(base, {"profiles": {"a": {"debug": False}}})
        assert base == {"profiles": {"a": {"debug": True}}}


class TestLoadConfig:
    def test_project_only(self, tmp_path: Path):
        _profile(tmp_path, '[profiles.dev]\nregion = "oss-cn-qingdao"\n')
        result = load_config(project_dir=tmp_path, global_path=tmp_path / "nonexistent.toml")
        assert result["profiles"]["dev"]["region"] == "oss-cn-qingdao"

    def test_global_only(self, tmp_path: Path):
        global_toml = tmp_path / "config.toml"
        global_toml.write_text('[profiles.default]\nregion = "oss-cn-shanghai"\n')
        result = load_config(project_dir=tmp_path / "noproject", global_path=global_toml)
        assert result["profiles"]["default"]["region"] == "oss-cn-shanghai"

    def test_project_overrides_global(self, tmp_path: Path):
        global_toml = tmp_path / "config.toml"
        global_toml.write_text('[profiles.prod]\nregion = "oss-cn-hangzhou"\nread_timeout = 10\n')
        project_dir = tmp_path / "project"
        project_dir.mkdir()
        _profile(project_dir, "[profiles.prod]\nread_timeout = 30\n")
        result = load_config(project_dir=project_dir, global_path=global_toml)
        assert result["profiles"]["prod"] == {"region": "oss-cn-hangzhou", "read_timeout": 30}

    def test_no_files_returns_empty_profiles(self, tmp_path: Path):
        result = load_config(project_dir=tmp_path / "nope", global_path=tmp_path / "nope.toml")
        assert result == {"profiles": {}}


class TestResolveProfile:
    def test_full_profile(self, tmp_path: Path, no_env_credentials):
        _profile(
            tmp_path,
            '[profiles.backups]\n'
            'region = "oss-cn-beijing"\n'
            'internal = true\n'
            'connect_timeout = 5\n'
            'read_timeout = 30\n'
            'access_key_id = "id"\n'
            'access_key_secret = "secret"\n',
        )
        credentials, config = resolve_profile("backups", project_dir=tmp_path, global_path=tmp_path / "none.toml")
        assert credentials == Credentials("id", "secret")
        assert config.region is Region.BEIJING
        assert config.internal
        assert config.connect_timeout == 5
        assert config.read_timeout == 30
        assert config.base_url == "http://oss-cn-beijing-internal.aliyuncs.com"

    def test_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OSS_ACCESS_KEY_ID", "env-id")
        monkeypatch.setenv("OSS_ACCESS_KEY_SECRET", "env-secret")
        _profile(tmp_path, "[profiles.plain]\n")
        credentials, config = resolve_profile("plain", project_dir=tmp_path, global_path=tmp_path / "none.toml")
        assert credentials == Credentials("env-id", "env-secret")
        assert config == ClientConfig()
        assert config.attempts == DEFAULT_ATTEMPTS

    def test_attempts_table(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OSS_ACCESS_KEY_ID", "env-id")
        monkeypatch.setenv("OSS_ACCESS_KEY_SECRET", "env-secret")
        _profile(tmp_path, "[profiles.patient.attempts]\nmin = 10\ntotal = 30\n")
        _, config = resolve_profile("patient", project_dir=tmp_path, global_path=tmp_path / "none.toml")
        assert config.attempts.min == 10
        assert config.attempts.total == 30.0
        assert config.attempts.delay == DEFAULT_ATTEMPTS.delay

    def test_missing_profile(self, tmp_path: Path):
        _profile(tmp_path, "[profiles.a]\n\n[profiles.b]\n")
        with pytest.raises(KeyError, match="Available: a, b"):
            resolve_profile("c", project_dir=tmp_path, global_path=tmp_path / "none.toml")

    def test_unknown_keys(self, tmp_path: Path):
        _profile(tmp_path, '[profiles.bad]\naccess_key_id = "id"\naccess_key_secret = "s"\nbucket = "x"\n')
        with pytest.raises(ValueError, match="unknown keys: bucket"):
            resolve_profile("bad", project_dir=tmp_path, global_path=tmp_path / "none.toml")

    def test_unknown_region(self, tmp_path: Path):
        _profile(tmp_path, '[profiles.bad]\naccess_key_id = "id"\naccess_key_secret = "s"\nregion = "mars-1"\n')
        with pytest.raises(ValueError, match="Unknown region 'mars-1'"):
            resolve_profile("bad", project_dir=tmp_path, global_path=tmp_path / "none.toml")

    def test_missing_credentials(self, tmp_path: Path, no_env_credentials):
        _profile(tmp_path, '[profiles.anon]\nregion = "oss-cn-hangzhou"\n')
        with pytest.raises(ValueError, match="OSS_ACCESS_KEY_ID"):
            resolve_profile("anon", project_dir=tmp_path, global_path=tmp_path / "none.toml")

    def test_resolve_client(self, tmp_path: Path):
        _profile(
            tmp_path,
            '[profiles.sh]\nregion = "oss-cn-shanghai"\naccess_key_id = "id"\naccess_key_secret = "secret"\n',
        )
        with resolve_client("sh", project_dir=tmp_path, global_path=tmp_path / "none.toml") as client:
            assert isinstance(client, Client)
            assert client.config.region is Region.SHANGHAI
            assert client.credentials.access_key_id == "id"


class TestCredentials:
    def test_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OSS_ACCESS_KEY_ID", "env-id")
        monkeypatch.setenv("OSS_ACCESS_KEY_SECRET", "env-secret")
        assert Credentials.from_env() == Credentials("env-id", "env-secret")

    def test_missing_secret(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OSS_ACCESS_KEY_ID", "env-id")
        monkeypatch.delenv("OSS_ACCESS_KEY_SECRET", raising=False)
        with pytest.raises(ValueError, match="OSS_ACCESS_KEY_SECRET"):
            Credentials.from_env()

    def test_secret_hidden_from_repr(self):
        assert "secret" not in repr(Credentials("id", "secret"))


class TestClientConfig:
    def test_default_endpoint(self):
        assert ClientConfig().base_url == "http://oss-cn-hangzhou.aliyuncs.com"

    def test_explicit_endpoint_wins(self):
        config = ClientConfig(region=Region.BEIJING, endpoint="http://localhost:9000")
        assert config.base_url == "http://localhost:9000"

    @pytest.mark.parametrize("region", list(Region))
    def test_every_region_has_endpoints(self, region: Region):
        assert region.endpoint() == f"http://{region.value}.aliyuncs.com"
        assert region.endpoint(internal=True) == f"http://{region.value}-internal.aliyuncs.com"
