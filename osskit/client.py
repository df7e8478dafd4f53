"""Blocking client for the Object Storage Service.

Example:
    from osskit import ACL, Client, Credentials, Region
    from osskit.config import ClientConfig

    with Client(Credentials("id", "secret"), ClientConfig(region=Region.BEIJING)) as oss:
        bucket = oss.bucket("photos")
        bucket.put("2006/sample.jpg", data, "image/jpeg", ACL.PRIVATE)
        page = bucket.list(prefix="2006/", delimiter="/")
"""

from __future__ import annotations

import base64
import hashlib
import io
import mimetypes
import os
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any, BinaryIO
from urllib.parse import quote, urlsplit

import httpx
from loguru import logger

from osskit.config import ClientConfig, Credentials
from osskit.errors import DecodeError, OSSError
from osskit.models import (
    ACL,
    DEFAULT_CONTENT_TYPE,
    AccessControlPolicy,
    CopyObjectResult,
    CopyOptions,
    Delete,
    ListResult,
    PutOptions,
    ServiceListing,
    WebsiteConfiguration,
    create_bucket_configuration,
    location_from_xml,
)
from osskit.regions import DEFAULT_REGION
from osskit.request import (
    Headers,
    Params,
    PreparedRequest,
    Request,
    copy_headers,
    copy_multi,
    encode_query,
    gmt_now,
    prepare,
    set_header,
)
from osskit.signing import Signer
from osskit.transport import Decoder, Transport


def _raw(data: bytes) -> bytes:
    return data


class Client:
    """Operations on one OSS region with one set of credentials.

    Holds only immutable configuration after construction, so a single
    instance can be shared between threads.
    """

    def __init__(
        self,
        credentials: Credentials,
        config: ClientConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        now: Callable[[], str] = gmt_now,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.credentials = credentials
        self.config = config or ClientConfig()
        self._signer = Signer(credentials)
        self._transport = Transport(self.config, transport, clock)
        self._now = now
        self._log = logger.bind(component="client", region=str(self.config.region))

    @classmethod
    def from_env(cls, **config: Any) -> Client:
        """Client with credentials from OSS_ACCESS_KEY_ID / OSS_ACCESS_KEY_SECRET."""
        return cls(Credentials.from_env(), ClientConfig(**config))

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    @property
    def signer(self) -> Signer:
        return self._signer

    def bucket(self, name: str) -> Bucket:
        return Bucket(self, name)

    def get_service(self) -> ServiceListing:
        """List all buckets owned by the account."""
        return self.bucket("").get_document("", ServiceListing.from_xml)

    # =========================================================================
    # Request pipeline
    # =========================================================================

    def prepare(self, req: Request) -> PreparedRequest:
        prepare(req, self.config.base_url, self._signer.sign, self._now)
        return PreparedRequest.build(req)

    def run[T](
        self,
        req: Request,
        decode: Decoder[T] | None = None,
        *,
        stream: bool = False,
    ) -> tuple[httpx.Response, T | None]:
        """Prepare, sign and send ``req`` once."""
        prepared = self.prepare(req)
        log = self._log.bind(bucket=req.bucket) if req.bucket else self._log
        log.debug("{method} {path}", method=prepared.method, path=req.path)
        return self._transport.run(prepared, decode, stream=stream)

    def iter_body(self, resp: httpx.Response) -> Iterator[bytes]:
        """Iterate a streamed response body within its read deadline."""
        return self._transport.iter_body(resp)

    def query[T](self, req: Request, decode: Decoder[T] | None = None) -> T | None:
        _, result = self.run(req, decode)
        return result

    def retried_query[T](self, req: Request, decode: Decoder[T] | None = None) -> T | None:
        return self.config.attempts.run(lambda: self.query(req, decode))


class Bucket:
    """Operations on a single bucket. An empty name addresses the service root."""

    def __init__(self, client: Client, name: str) -> None:
        self.client = client
        self.name = name.lower()

    def __repr__(self) -> str:
        return f"Bucket({self.name!r})"

    def _request(self, method: str = "GET", path: str = "/", **kwargs: Any) -> Request:
        return Request(method=method, bucket=self.name, path=path, **kwargs)

    # =========================================================================
    # Bucket operations
    # =========================================================================

    def put_bucket(self, acl: ACL | None = None) -> None:
        """Create the bucket in the client's region."""
        headers: Headers = {}
        if acl:
            set_header(headers, "x-oss-acl", acl)
        req = self._request(
            "PUT", "/", headers=headers, payload=create_bucket_configuration(self.client.config.region),
        )
        self.client.query(req)

    def del_bucket(self) -> None:
        """Remove the bucket. It must be empty."""
        self.client.retried_query(self._request("DELETE", "/"))

    def location(self) -> str:
        location = self.get_document("/?location", location_from_xml)
        return location or str(DEFAULT_REGION)

    def acl(self) -> AccessControlPolicy:
        return self.get_document("/?acl", AccessControlPolicy.from_xml)

    def put_bucket_website(self, configuration: WebsiteConfiguration) -> None:
        self.put_bucket_subresource("website", configuration.to_xml())

    def put_bucket_subresource(self, subresource: str, body: bytes) -> None:
        headers: Headers = {}
        set_header(headers, "Content-Length", str(len(body)))
        req = self._request("PUT", "/", headers=headers, payload=body, params={subresource: [""]})
        self.client.query(req)

    def list(
        self,
        prefix: str = "",
        delimiter: str = "",
        marker: str = "",
        max_keys: int = 0,
    ) -> ListResult:
        """List objects in the bucket, in key order.

        Args:
            prefix: Only keys beginning with this prefix.
            delimiter: Group keys sharing a prefix up to the next delimiter
                into ``common_prefixes``, like folders.
            marker: Only keys alphabetically after this one.
            max_keys: Keys plus common prefixes per page. 0 = service default (1000).

        For keys ``index.html`` and ``photos/2006/January/sample.jpg``, listing
        with ``delimiter="/"`` returns ``index.html`` in ``contents`` and
        ``photos/`` in ``common_prefixes``.
        """
        params: Params = {"prefix": [prefix], "delimiter": [delimiter], "marker": [marker]}
        if max_keys:
            params["max-keys"] = [str(max_keys)]
        result = self.client.retried_query(self._request(params=params), ListResult.from_xml)
        assert result is not None
        result.fill_next_marker()
        return result

    # =========================================================================
    # Object reads
    # =========================================================================

    def get(self, path: str) -> bytes:
        """Retrieve an object's content."""
        data = self.client.retried_query(self._request(path=path), _raw)
        return data or b""

    def get_document[T](self, path: str, decode: Callable[[bytes], T]) -> T:
        data = self.get(path)
        try:
            return decode(data)
        except ET.ParseError as e:
            raise DecodeError(f"cannot decode {self.name}{path}: {e}") from e

    def get_response(self, path: str, headers: Headers | None = None) -> httpx.Response:
        """Retrieve an object as an open streaming response.

        The caller must close the response. Read it with ``Client.iter_body``
        to keep the read deadline.
        """
        req = self._request(path=path, headers=copy_headers(headers))

        def attempt() -> httpx.Response:
            resp, _ = self.client.run(req, stream=True)
            return resp

        return self.client.config.attempts.run(attempt)

    @contextmanager
    def get_reader(self, path: str, headers: Headers | None = None) -> Iterator[Iterator[bytes]]:
        resp = self.get_response(path, headers)
        try:
            yield self.client.iter_body(resp)
        finally:
            resp.close()

    def exists(self, path: str) -> bool:
        """Check for an object with a HEAD request.

        403 and 404 both mean the object does not exist.
        """
        req = self._request("HEAD", path)

        def attempt() -> bool:
            try:
                resp, _ = self.client.run(req)
            except OSSError as e:
                if e.status_code in (403, 404):
                    return False
                raise
            return resp.status_code // 100 == 2

        return self.client.config.attempts.run(attempt)

    def head(self, path: str, headers: Headers | None = None) -> httpx.Response:
        """HEAD an object. The returned response carries its metadata headers."""
        req = self._request("HEAD", path, headers=copy_headers(headers))

        def attempt() -> httpx.Response:
            resp, _ = self.client.run(req)
            return resp

        return self.client.config.attempts.run(attempt)

    # =========================================================================
    # Object writes
    # =========================================================================

    def put(
        self,
        path: str,
        data: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        acl: ACL = ACL.PRIVATE,
        options: PutOptions | None = None,
    ) -> None:
        self.put_reader(path, io.BytesIO(data), len(data), content_type, acl, options)

    def put_reader(
        self,
        path: str,
        reader: BinaryIO,
        length: int,
        content_type: str = DEFAULT_CONTENT_TYPE,
        acl: ACL = ACL.PRIVATE,
        options: PutOptions | None = None,
    ) -> None:
        """Upload an object by consuming ``reader`` until EOF."""
        headers: Headers = {}
        set_header(headers, "Content-Length", str(length))
        set_header(headers, "Content-Type", content_type)
        set_header(headers, "x-oss-acl", acl)
        (options or PutOptions()).add_headers(headers)

        self.client.query(self._request("PUT", path, headers=headers, payload=reader))

    def put_file(
        self,
        path: str,
        file: BinaryIO,
        acl: ACL = ACL.PRIVATE,
        options: PutOptions | None = None,
    ) -> None:
        """Upload an open binary file, guessing its content type from its name."""
        name = getattr(file, "name", "")
        content_type = (mimetypes.guess_type(name)[0] if isinstance(name, str) else None) or DEFAULT_CONTENT_TYPE
        size = os.fstat(file.fileno()).st_size
        self.put_reader(path, file, size, content_type, acl, options)

    def put_copy(
        self,
        path: str,
        source: str,
        acl: ACL = ACL.PRIVATE,
        options: CopyOptions | None = None,
    ) -> CopyObjectResult:
        """Copy ``source`` (``/bucket/key``) to ``path`` in this bucket."""
        headers: Headers = {}
        set_header(headers, "x-oss-acl", acl)
        set_header(headers, "x-oss-copy-source", source)
        (options or CopyOptions()).add_headers(headers)

        result = self.client.query(self._request("PUT", path, headers=headers), CopyObjectResult.from_xml)
        return result or CopyObjectResult()

    def delete(self, path: str) -> None:
        self.client.query(self._request("DELETE", path))

    def del_multi(self, objects: Delete) -> None:
        """Remove up to 1000 objects in one request."""
        body = objects.to_xml()
        headers: Headers = {}
        set_header(headers, "Content-Length", str(len(body)))
        set_header(headers, "Content-MD5", base64.b64encode(hashlib.md5(body).digest()).decode())
        set_header(headers, "Content-Type", "text/xml")

        req = self._request("POST", "/", headers=headers, payload=body, params={"delete": [""]})
        self.client.query(req)

    # =========================================================================
    # URLs
    # =========================================================================

    def path(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"/{self.name}{path}"

    def url(self, path: str) -> str:
        """Unsigned URL; only usable for publicly readable objects."""
        req = self._request(path=path)
        self.client.prepare(req)
        req.params = {}
        return req.url()

    def signed_url(
        self,
        path: str,
        expires: datetime,
        params: Params | None = None,
        headers: Headers | None = None,
        method: str = "GET",
    ) -> str:
        """URL granting ``method`` on ``path`` to anyone holding it until ``expires``."""
        query = copy_multi(params)
        query["Expires"] = [str(int(expires.timestamp()))]
        query["OSSAccessKeyId"] = [self.client.credentials.access_key_id]

        req = self._request(method, path, params=query, headers=copy_headers(headers))
        self.client.prepare(req)
        return req.url()

    def upload_signed_url(
        self,
        name: str,
        method: str,
        content_type: str,
        expires: datetime,
    ) -> str:
        """URL allowing anyone holding it to upload ``name`` until ``expires``.

        ``name`` excludes the bucket, e.g. ``images/ali.png``.
        """
        if method != "POST":
            method = "PUT"
        expire_at = int(expires.timestamp())
        signer = self.client.signer
        signature = signer.upload_signature(self.name, name, method, content_type, expire_at)

        host = urlsplit(self.client.config.base_url).netloc
        query = encode_query({
            "OSSAccessKeyId": [signer.access_key_id],
            "Expires": [str(expire_at)],
            "Signature": [signature],
        })
        return f"https://{self.name}.{host}/{quote(name.lstrip('/'))}?{query}"

    def post_form_args(
        self,
        path: str,
        expires: datetime,
        redirect: str = "",
        conditions: list[str] | None = None,
    ) -> tuple[str, dict[str, str]]:
        """Action URL and form fields for anonymous browser uploads to ``path``.

        ``conditions`` are extra JSON policy conditions, e.g.
        ``'["content-length-range", 0, 1048576]'``.
        """
        fields = {
            "OSSAccessKeyId": self.client.signer.access_key_id,
            "key": path,
        }
        if redirect:
            fields["success_action_redirect"] = redirect

        policy, signature = self.client.signer.post_policy(self.name, path, expires, redirect, conditions)
        fields["policy"] = policy
        fields["signature"] = signature

        action = f"{self.client.config.base_url.rstrip('/')}/{self.name}/"
        return action, fields


__all__ = ["Bucket", "Client"]
