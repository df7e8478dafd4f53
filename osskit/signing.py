"""Canonical strings and HMAC-SHA1 signatures.

Header-signed requests carry ``Authorization: OSS <AccessKeyId>:<Signature>``.
Query-signed URLs carry ``OSSAccessKeyId``, ``Expires`` and ``Signature``
parameters, with ``Expires`` standing in for the Date header.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import posixpath
from datetime import UTC, datetime
from urllib.parse import quote_plus

from osskit.config import Credentials
from osskit.request import Headers, Params, Request, get_header, set_header

OSS_HEADER_PREFIX = "x-oss-"

# Query parameters that name a subresource and so take part in the signature.
SIGNED_PARAMS = frozenset({
    "acl",
    "cors",
    "delete",
    "lifecycle",
    "location",
    "logging",
    "notification",
    "partNumber",
    "policy",
    "referer",
    "requestPayment",
    "torrent",
    "uploadId",
    "uploads",
    "versionId",
    "versioning",
    "versions",
    "website",
    "response-content-type",
    "response-content-language",
    "response-expires",
    "response-cache-control",
    "response-content-disposition",
    "response-content-encoding",
})


def canonical_headers(headers: Headers) -> str:
    """Sorted ``x-oss-*`` headers, one ``name:value`` line each."""
    oss: dict[str, list[str]] = {}
    for key, values in headers.items():
        lower = key.lower()
        if lower.startswith(OSS_HEADER_PREFIX):
            oss.setdefault(lower, []).extend(v.strip() for v in values)
    return "".join(f"{k}:{','.join(oss[k])}\n" for k in sorted(oss))


def canonical_resource(bucket: str, path: str, params: Params) -> str:
    resource = path
    if bucket and resource == f"/{bucket}":
        resource += "/"

    parts: list[str] = []
    for key in sorted(k for k in params if k in SIGNED_PARAMS):
        for value in params[key]:
            parts.append(f"{quote_plus(key)}={quote_plus(value)}" if value else quote_plus(key))
    if parts:
        resource += "?" + "&".join(parts)
    return resource


def canonical_string(
    method: str,
    headers: Headers,
    resource: str,
    date: str,
) -> str:
    return "\n".join([
        method,
        get_header(headers, "Content-MD5"),
        get_header(headers, "Content-Type"),
        date,
        canonical_headers(headers) + resource,
    ])


class Signer:
    """Computes signatures with one set of credentials."""

    def __init__(self, credentials: Credentials) -> None:
        self._credentials = credentials

    @property
    def access_key_id(self) -> str:
        return self._credentials.access_key_id

    def signature(self, string_to_sign: str) -> str:
        mac = hmac.new(
            self._credentials.access_key_secret.encode(),
            string_to_sign.encode(),
            hashlib.sha1,
        )
        return base64.b64encode(mac.digest()).decode().strip()

    def sign(self, req: Request) -> None:
        """Attach a signature to a prepared request, in the query or the headers."""
        url_signature = bool(req.params.get("OSSAccessKeyId"))
        if url_signature:
            date = req.params.get("Expires", [""])[0]
        else:
            date = get_header(req.headers, "Date")

        resource = canonical_resource(req.bucket, req.path, req.params)
        signature = self.signature(canonical_string(req.method, req.headers, resource, date))

        if url_signature:
            req.params["Signature"] = [signature]
        else:
            set_header(req.headers, "Authorization", f"OSS {self.access_key_id}:{signature}")

    def upload_signature(
        self,
        bucket: str,
        name: str,
        method: str,
        content_type: str,
        expires: int,
        token: str = "",
    ) -> str:
        resource = "/" + posixpath.normpath(f"{bucket}/{name.lstrip('/')}")
        string_to_sign = f"{method}\n\n{content_type}\n{expires}\n{token}{resource}"
        return self.signature(string_to_sign)

    def post_policy(
        self,
        bucket: str,
        key: str,
        expires: datetime,
        redirect: str = "",
        conditions: list[str] | None = None,
    ) -> tuple[str, str]:
        """Base64 policy document for browser form uploads and its signature."""
        all_conditions = list(conditions or [])
        all_conditions.append(json.dumps({"key": key}))
        all_conditions.append(json.dumps({"bucket": bucket}))
        if redirect:
            all_conditions.append(json.dumps({"success_action_redirect": redirect}))

        expiration = expires.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        policy = f'{{"expiration": "{expiration}", "conditions": [{",".join(all_conditions)}]}}'
        policy64 = base64.b64encode(policy.encode()).decode()
        return policy64, self.signature(policy64)


__all__ = [
    "SIGNED_PARAMS",
    "Signer",
    "canonical_headers",
    "canonical_resource",
    "canonical_string",
]
