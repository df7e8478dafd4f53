"""Client configuration, credentials and TOML profiles.

Loads ~/.osskit/config.toml (global) and osskit.toml (project),
merges them, and resolves named profiles into Client instances.

Example profile::

    [profiles.backups]
    region = "oss-cn-beijing"
    internal = true
    read_timeout = 30
    access_key_id = "..."
    access_key_secret = "..."
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

from osskit.regions import DEFAULT_REGION, Region
from osskit.retry import DEFAULT_ATTEMPTS, AttemptStrategy

if TYPE_CHECKING:
    from osskit.client import Client

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".osskit" / "config.toml"
PROJECT_CONFIG_NAME = "osskit.toml"

ACCESS_KEY_ID_ENV = "OSS_ACCESS_KEY_ID"
ACCESS_KEY_SECRET_ENV = "OSS_ACCESS_KEY_SECRET"


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class Credentials:
    """Access key pair used to sign every request."""

    access_key_id: str
    access_key_secret: str = field(repr=False)

    @classmethod
    def from_env(cls) -> Credentials:
        """Read credentials from OSS_ACCESS_KEY_ID and OSS_ACCESS_KEY_SECRET."""
        key_id = os.environ.get(ACCESS_KEY_ID_ENV)
        secret = os.environ.get(ACCESS_KEY_SECRET_ENV)

        if not key_id:
            raise ValueError(f"OSS access key id not found. Set {ACCESS_KEY_ID_ENV} environment variable.")
        if not secret:
            raise ValueError(
                f"OSS access key secret not found. Set {ACCESS_KEY_SECRET_ENV} environment variable."
            )

        return cls(key_id, secret)


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Immutable client settings.

    Args:
        region: Region whose endpoint is used.
        internal: Use the region's internal-network endpoint.
        endpoint: Explicit base URL, overriding the region endpoint.
        connect_timeout: Seconds allowed to establish a connection. None = no limit.
        read_timeout: Seconds allowed from sending a request until its body is read. None = no limit.
        debug: Log request and response dumps at DEBUG level.
        attempts: Retry envelope for idempotent operations.
    """

    region: Region = DEFAULT_REGION
    internal: bool = False
    endpoint: str | None = None
    connect_timeout: float | None = None
    read_timeout: float | None = None
    debug: bool = False
    attempts: AttemptStrategy = DEFAULT_ATTEMPTS

    @property
    def base_url(self) -> str:
        return self.endpoint or self.region.endpoint(self.internal)


# =============================================================================
# TOML profiles
# =============================================================================


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("profiles", {})
    return merged


def _build_attempts(raw: RawConfig) -> AttemptStrategy:
    return AttemptStrategy(
        min=int(raw.get("min", DEFAULT_ATTEMPTS.min)),
        total=float(raw.get("total", DEFAULT_ATTEMPTS.total)),
        delay=float(raw.get("delay", DEFAULT_ATTEMPTS.delay)),
    )


def _build_client_config(name: str, raw: RawConfig) -> ClientConfig:
    raw = dict(raw)
    known = {f.name for f in fields(ClientConfig)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"Profile '{name}' has unknown keys: {', '.join(sorted(unknown))}")

    if "region" in raw:
        try:
            raw["region"] = Region(raw["region"])
        except ValueError:
            raise ValueError(
                f"Unknown region '{raw['region']}'. Valid: {', '.join(r.value for r in Region)}"
            ) from None
    if "attempts" in raw:
        raw["attempts"] = _build_attempts(raw["attempts"])
    return ClientConfig(**raw)


def resolve_profile(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> tuple[Credentials, ClientConfig]:
    """Resolve a named profile into credentials and client settings.

    Credentials missing from the profile are read from the environment.
    """
    config = load_config(project_dir=project_dir, global_path=global_path)

    profiles = config["profiles"]
    if name not in profiles:
        raise KeyError(f"Profile '{name}' not found. Available: {', '.join(profiles) or 'none'}")

    raw = dict(profiles[name])
    key_id = raw.pop("access_key_id", None)
    secret = raw.pop("access_key_secret", None)
    credentials = Credentials(key_id, secret) if key_id and secret else Credentials.from_env()

    return credentials, _build_client_config(name, raw)


def resolve_client(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> Client:
    from osskit.client import Client

    credentials, config = resolve_profile(name, project_dir=project_dir, global_path=global_path)
    return Client(credentials, config)


__all__ = [
    "ClientConfig",
    "Credentials",
    "load_config",
    "resolve_client",
    "resolve_profile",
]
