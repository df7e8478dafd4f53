"""Request and response documents exchanged with OSS.

Responses are decoded from XML with ``from_xml``; request bodies are encoded
with ``to_xml``. Unknown elements are ignored and missing ones take defaults.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Self

from osskit.request import Headers, add_header, canonical_key, set_header

XML_HEADER = b'<?xml version="1.0" encoding="UTF-8"?>\n'
WEBSITE_NAMESPACE = "http://doc.oss-cn-hangzhou.aliyuncs.com"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ACL(StrEnum):
    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"
    BUCKET_OWNER_READ = "bucket-owner-read"
    BUCKET_OWNER_FULL = "bucket-owner-full-control"


# =============================================================================
# Element helpers
# =============================================================================


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(el: ET.Element, name: str) -> ET.Element | None:
    for c in el:
        if _local(c.tag) == name:
            return c
    return None


def _children(el: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in el if _local(c.tag) == name]


def _text(el: ET.Element, name: str, default: str = "") -> str:
    c = _child(el, name)
    return (c.text or "").strip() if c is not None else default


def _int(el: ET.Element, name: str) -> int:
    value = _text(el, name)
    return int(value) if value else 0


def _bool(el: ET.Element, name: str) -> bool:
    return _text(el, name).lower() == "true"


def _sub(parent: ET.Element, name: str, text: str | None = None) -> ET.Element:
    el = ET.SubElement(parent, name)
    if text is not None:
        el.text = text
    return el


def parse(data: bytes) -> ET.Element:
    return ET.fromstring(data)


def encode(root: ET.Element) -> bytes:
    return XML_HEADER + ET.tostring(root, encoding="utf-8", xml_declaration=False)


# =============================================================================
# Responses
# =============================================================================


@dataclass(frozen=True, slots=True)
class Owner:
    id: str = ""
    display_name: str = ""

    @classmethod
    def from_element(cls, el: ET.Element | None) -> Owner:
        if el is None:
            return cls()
        return cls(id=_text(el, "ID"), display_name=_text(el, "DisplayName"))


@dataclass(frozen=True, slots=True)
class BucketInfo:
    name: str
    creation_date: str = ""
    location: str = ""


@dataclass(frozen=True, slots=True)
class ServiceListing:
    """Buckets owned by the account (GET Service)."""

    owner: Owner
    buckets: tuple[BucketInfo, ...] = ()

    @classmethod
    def from_xml(cls, data: bytes) -> Self:
        root = parse(data)
        container = _child(root, "Buckets")
        buckets = tuple(
            BucketInfo(
                name=_text(b, "Name"),
                creation_date=_text(b, "CreationDate"),
                location=_text(b, "Location"),
            )
            for b in (_children(container, "Bucket") if container is not None else [])
        )
        return cls(owner=Owner.from_element(_child(root, "Owner")), buckets=buckets)


@dataclass(frozen=True, slots=True)
class Key:
    """An object stored in a bucket.

    ``etag`` is the hex MD5 of the content, surrounded with double quotes.
    """

    key: str
    last_modified: str = ""
    type: str = ""
    size: int = 0
    etag: str = ""
    storage_class: str = ""
    owner: Owner = field(default_factory=Owner)

    @classmethod
    def from_element(cls, el: ET.Element) -> Key:
        return cls(
            key=_text(el, "Key"),
            last_modified=_text(el, "LastModified"),
            type=_text(el, "Type"),
            size=_int(el, "Size"),
            etag=_text(el, "ETag"),
            storage_class=_text(el, "StorageClass"),
            owner=Owner.from_element(_child(el, "Owner")),
        )


@dataclass(slots=True)
class ListResult:
    """One page of a bucket listing.

    When ``is_truncated`` is set, pass ``next_marker`` as the marker of the
    following ``Bucket.list`` call.
    """

    name: str = ""
    prefix: str = ""
    delimiter: str = ""
    marker: str = ""
    max_keys: int = 0
    is_truncated: bool = False
    contents: list[Key] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    next_marker: str = ""

    @classmethod
    def from_xml(cls, data: bytes) -> Self:
        root = parse(data)
        return cls(
            name=_text(root, "Name"),
            prefix=_text(root, "Prefix"),
            delimiter=_text(root, "Delimiter"),
            marker=_text(root, "Marker"),
            max_keys=_int(root, "MaxKeys"),
            is_truncated=_bool(root, "IsTruncated"),
            contents=[Key.from_element(c) for c in _children(root, "Contents")],
            common_prefixes=[
                _text(p, "Prefix") for p in _children(root, "CommonPrefixes") if _child(p, "Prefix") is not None
            ],
            next_marker=_text(root, "NextMarker"),
        )

    def fill_next_marker(self) -> None:
        """Use the last key as the continuation marker when the service omits one."""
        if self.is_truncated and not self.next_marker and self.contents:
            self.next_marker = self.contents[-1].key


@dataclass(frozen=True, slots=True)
class AccessControlPolicy:
    owner: Owner
    grants: tuple[str, ...] = ()

    @classmethod
    def from_xml(cls, data: bytes) -> Self:
        root = parse(data)
        acl = _child(root, "AccessControlList")
        grants = tuple((g.text or "").strip() for g in _children(acl, "Grant")) if acl is not None else ()
        return cls(owner=Owner.from_element(_child(root, "Owner")), grants=grants)


@dataclass(frozen=True, slots=True)
class CopyObjectResult:
    etag: str = ""
    last_modified: str = ""

    @classmethod
    def from_xml(cls, data: bytes) -> Self:
        root = parse(data)
        return cls(etag=_text(root, "ETag"), last_modified=_text(root, "LastModified"))


def location_from_xml(data: bytes) -> str:
    root = parse(data)
    return (root.text or "").strip()


@dataclass(frozen=True, slots=True)
class ErrorDocument:
    """Body of a non-success response."""

    code: str = ""
    message: str = ""
    bucket_name: str = ""
    request_id: str = ""
    host_id: str = ""

    @classmethod
    def from_xml(cls, data: bytes) -> Self:
        root = parse(data)
        return cls(
            code=_text(root, "Code"),
            message=_text(root, "Message"),
            bucket_name=_text(root, "BucketName"),
            request_id=_text(root, "RequestId"),
            host_id=_text(root, "HostId"),
        )


# =============================================================================
# Request documents
# =============================================================================


def create_bucket_configuration(location: str) -> bytes:
    root = ET.Element("CreateBucketConfiguration")
    _sub(root, "LocationConstraint", location)
    return ET.tostring(root, encoding="utf-8")


@dataclass(frozen=True, slots=True)
class IndexDocument:
    suffix: str


@dataclass(frozen=True, slots=True)
class WebsiteErrorDocument:
    key: str


@dataclass(frozen=True, slots=True)
class RoutingRule:
    condition_key_prefix_equals: str
    redirect_replace_key_prefix_with: str = ""
    redirect_replace_key_with: str = ""


@dataclass(frozen=True, slots=True)
class RedirectAllRequestsTo:
    host_name: str
    protocol: str = ""


@dataclass(frozen=True, slots=True)
class WebsiteConfiguration:
    index_document: IndexDocument | None = None
    error_document: WebsiteErrorDocument | None = None
    routing_rules: tuple[RoutingRule, ...] | None = None
    redirect_all_requests_to: RedirectAllRequestsTo | None = None

    def to_xml(self) -> bytes:
        root = ET.Element("WebsiteConfiguration", xmlns=WEBSITE_NAMESPACE)
        if self.index_document:
            _sub(_sub(root, "IndexDocument"), "Suffix", self.index_document.suffix)
        if self.error_document:
            _sub(_sub(root, "ErrorDocument"), "Key", self.error_document.key)
        if self.routing_rules:
            rules = _sub(root, "RoutingRules")
            for rule in self.routing_rules:
                el = _sub(rules, "RoutingRule")
                _sub(_sub(el, "Condition"), "KeyPrefixEquals", rule.condition_key_prefix_equals)
                redirect = _sub(el, "Redirect")
                if rule.redirect_replace_key_prefix_with:
                    _sub(redirect, "ReplaceKeyPrefixWith", rule.redirect_replace_key_prefix_with)
                if rule.redirect_replace_key_with:
                    _sub(redirect, "ReplaceKeyWith", rule.redirect_replace_key_with)
        if self.redirect_all_requests_to:
            el = _sub(root, "RedirectAllRequestsTo")
            _sub(el, "HostName", self.redirect_all_requests_to.host_name)
            if self.redirect_all_requests_to.protocol:
                _sub(el, "Protocol", self.redirect_all_requests_to.protocol)
        return encode(root)


@dataclass(frozen=True, slots=True)
class ObjectId:
    key: str
    version_id: str = ""


@dataclass(frozen=True, slots=True)
class Delete:
    """Multi-object delete request, up to 1000 keys."""

    objects: tuple[ObjectId, ...]
    quiet: bool = False

    def to_xml(self) -> bytes:
        root = ET.Element("Delete")
        if self.quiet:
            _sub(root, "Quiet", "true")
        for obj in self.objects:
            el = _sub(root, "Object")
            _sub(el, "Key", obj.key)
            if obj.version_id:
                _sub(el, "VersionId", obj.version_id)
        return encode(root)


# =============================================================================
# Header options
# =============================================================================


@dataclass(frozen=True, slots=True)
class PutOptions:
    server_side_encryption: bool = False
    meta: dict[str, list[str]] = field(default_factory=dict)
    content_encoding: str = ""
    cache_control: str = ""
    content_md5: str = ""
    content_disposition: str = ""

    def add_headers(self, headers: Headers) -> None:
        if self.server_side_encryption:
            set_header(headers, "x-oss-server-side-encryption", "AES256")
        if self.content_encoding:
            set_header(headers, "Content-Encoding", self.content_encoding)
        if self.cache_control:
            set_header(headers, "Cache-Control", self.cache_control)
        if self.content_md5:
            set_header(headers, "Content-MD5", self.content_md5)
        if self.content_disposition:
            set_header(headers, "Content-Disposition", self.content_disposition)
        for key, values in self.meta.items():
            for value in values:
                add_header(headers, f"x-oss-meta-{key}", value)


@dataclass(frozen=True, slots=True)
class CopyOptions:
    headers: Headers = field(default_factory=dict)
    copy_source_options: str = ""
    metadata_directive: str = ""

    def add_headers(self, headers: Headers) -> None:
        if self.metadata_directive:
            set_header(headers, "x-oss-metadata-directive", self.metadata_directive)
        if self.copy_source_options:
            set_header(headers, "x-oss-copy-source-range", self.copy_source_options)
        for key, values in self.headers.items():
            headers[canonical_key(key)] = list(values)


__all__ = [
    "ACL",
    "DEFAULT_CONTENT_TYPE",
    "AccessControlPolicy",
    "BucketInfo",
    "CopyObjectResult",
    "CopyOptions",
    "Delete",
    "ErrorDocument",
    "IndexDocument",
    "Key",
    "ListResult",
    "ObjectId",
    "Owner",
    "PutOptions",
    "RedirectAllRequestsTo",
    "RoutingRule",
    "ServiceListing",
    "WebsiteConfiguration",
    "WebsiteErrorDocument",
    "location_from_xml",
]
