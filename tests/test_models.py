import xml.etree.ElementTree as ET

import pytest

from osskit.models import (
    AccessControlPolicy,
    CopyOptions,
    Delete,
    ErrorDocument,
    IndexDocument,
    Key,
    ListResult,
    ObjectId,
    PutOptions,
    RedirectAllRequestsTo,
    RoutingRule,
    WebsiteConfiguration,
    WebsiteErrorDocument,
    create_bucket_configuration,
    location_from_xml,
)

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

NS = "{http://doc.oss-cn-hangzhou.aliyuncs.com}"


class TestResponses:
    def test_error_document(self):
        doc = ErrorDocument.from_xml(
            b"<Error><Code>NoSuchBucket</Code><Message>gone</Message>"
            b"<BucketName>photos</BucketName><RequestId>r</RequestId><HostId>h</HostId></Error>"
        )
        assert doc == ErrorDocument("NoSuchBucket", "gone", "photos", "r", "h")

    def test_missing_elements_default(self):
        result = ListResult.from_xml(b"<ListBucketResult><Name>photos</Name></ListBucketResult>")
        assert result.name == "photos"
        assert result.max_keys == 0
        assert not result.is_truncated
        assert result.contents == []

    def test_unknown_elements_ignored(self):
        key = Key.from_element(ET.fromstring(b"<Contents><Key>a</Key><Shiny>yes</Shiny></Contents>"))
        assert key.key == "a"
        assert key.owner.id == ""

    def test_next_marker_untouched_when_complete(self):
        result = ListResult.from_xml(
            b"<ListBucketResult><IsTruncated>false</IsTruncated>"
            b"<Contents><Key>a</Key></Contents></ListBucketResult>"
        )
        result.fill_next_marker()
        assert result.next_marker == ""

    def test_truncated_without_contents(self):
        result = ListResult(is_truncated=True)
        result.fill_next_marker()
        assert result.next_marker == ""

    def test_location_with_namespace(self):
        assert location_from_xml(f'<LocationConstraint xmlns="{NS[1:-1]}">oss-cn-qingdao</LocationConstraint>'.encode()) == (
            "oss-cn-qingdao"
        )

    def test_acl_without_list(self):
        assert AccessControlPolicy.from_xml(b"<AccessControlPolicy/>").grants == ()

    def test_malformed(self):
        with pytest.raises(ET.ParseError):
            ErrorDocument.from_xml(b"<Error>")


class TestRequestDocuments:
    def test_create_bucket_configuration_has_no_declaration(self):
        assert create_bucket_configuration("oss-cn-beijing") == (
            b"<CreateBucketConfiguration><LocationConstraint>oss-cn-beijing"
            b"</LocationConstraint></CreateBucketConfiguration>"
        )

    def test_website_configuration(self):
        config = WebsiteConfiguration(
            index_document=IndexDocument("index.html"),
            error_document=WebsiteErrorDocument("404.html"),
            routing_rules=(RoutingRule("docs/", redirect_replace_key_prefix_with="documents/"),),
        )
        body = config.to_xml()
        assert body.startswith(b'<?xml version="1.0" encoding="UTF-8"?>')
        root = ET.fromstring(body)
        assert root.tag == f"{NS}WebsiteConfiguration"
        assert root.findtext(f"{NS}IndexDocument/{NS}Suffix") == "index.html"
        assert root.findtext(f"{NS}ErrorDocument/{NS}Key") == "404.html"
        rule = root.find(f"{NS}RoutingRules/{NS}RoutingRule")
        assert rule is not None
        assert rule.findtext(f"{NS}Condition/{NS}KeyPrefixEquals") == "docs/"
        assert rule.findtext(f"{NS}Redirect/{NS}ReplaceKeyPrefixWith") == "documents/"
        assert rule.find(f"{NS}Redirect/{NS}ReplaceKeyWith") is None

    def test_redirect_all(self):
        body = WebsiteConfiguration(redirect_all_requests_to=RedirectAllRequestsTo("example.com", "https")).to_xml()
        root = ET.fromstring(body)
        assert root.findtext(f"{NS}RedirectAllRequestsTo/{NS}HostName") == "example.com"
        assert root.findtext(f"{NS}RedirectAllRequestsTo/{NS}Protocol") == "https"
        assert root.find(f"{NS}IndexDocument") is None

    def test_delete(self):
        root = ET.fromstring(Delete((ObjectId("a"), ObjectId("b", version_id="v2"))).to_xml())
        assert root.find("Quiet") is None
        assert [o.findtext("Key") for o in root.findall("Object")] == ["a", "b"]
        assert root.findall("Object")[1].findtext("VersionId") == "v2"


class TestHeaderOptions:
    def test_put_options_meta_values_appended(self):
        headers: dict[str, list[str]] = {}
        PutOptions(meta={"tag": ["a", "b"]}, content_disposition="attachment").add_headers(headers)
        assert headers == {"X-Oss-Meta-Tag": ["a", "b"], "Content-Disposition": ["attachment"]}

    def test_empty_put_options_add_nothing(self):
        headers: dict[str, list[str]] = {}
        PutOptions().add_headers(headers)
        assert headers == {}

    def test_copy_options(self):
        headers: dict[str, list[str]] = {}
        CopyOptions(
            headers={"content-type": ["text/plain"]},
            copy_source_options="bytes=0-9",
            metadata_directive="REPLACE",
        ).add_headers(headers)
        assert headers == {
            "X-Oss-Metadata-Directive": ["REPLACE"],
            "X-Oss-Copy-Source-Range": ["bytes=0-9"],
            "Content-Type": ["text/plain"],
        }
