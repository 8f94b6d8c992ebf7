"""Single-object operations against the OSS REST API.

Every public method here is one signed request (or a short, fixed sequence
of them) built from RequestSigner + Transport. Nothing in this module
retries; the worker pool owns retry policy.
"""

import logging
import mimetypes
import os
import posixpath
from typing import Iterable, Iterator, Mapping, Optional, Union
from urllib.parse import quote, urlencode

import httpx

from osscmd.errors import (
    CompletionError,
    InitError,
    LocalIOError,
    OssError,
    StatusError,
    UnauthorizedError,
    UsageError,
)
from osscmd.models import (
    ClientConfig,
    CompleteResult,
    CopyResult,
    HttpResult,
    ListPage,
    ObjectHead,
    PutResult,
    UploadSession,
)
from osscmd.responses import (
    build_delete_body,
    parse_complete,
    parse_copy_result,
    parse_error,
    parse_http_time,
    parse_initiate,
    parse_iso_time,
    parse_list_objects,
)
from osscmd.signer import RequestSigner, content_md5, http_date
from osscmd.transport import Transport

logger = logging.getLogger(__name__)

# Page size used when walking whole buckets
LIST_PAGE_SIZE = 1000


def guess_content_type(key: str) -> Optional[str]:
    content_type, _ = mimetypes.guess_type(key)
    return content_type


def disposition_header(filename: str) -> str:
    """Content-Disposition value for a download file name.

    Header values must be ASCII, so a name that is not gets an ASCII
    fallback in filename plus the RFC 5987 filename* form.
    """
    fallback = filename.encode("ascii", "replace").decode("ascii")
    fallback = fallback.replace("?", "_").replace('"', "_").replace("\\", "_")
    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


def check_header_values(headers: Mapping[str, str]) -> None:
    """Raise UsageError for a header value that cannot go on the wire."""
    for name, value in headers.items():
        if not value.isascii():
            raise UsageError(f"Header {name} must be ASCII, got {value!r}")


def raise_for_status(result: HttpResult, *expected: int) -> None:
    """Raise StatusError (or UnauthorizedError) unless status is expected.

    With no expected codes any 2xx is accepted.
    """
    if expected:
        if result.status_code in expected:
            return
    elif result.ok:
        return

    code, message = parse_error(result.body)
    error_cls = UnauthorizedError if result.status_code in (401, 403) else StatusError
    raise error_cls(result.status_code, result.body, code=code, message=message)


def resolve_key(key: str, source_name: str) -> str:
    """Destination key for a transfer: empty or 'dir/' keys get the source basename."""
    basename = posixpath.basename(source_name.replace("\\", "/"))
    if not key:
        return basename
    if key.endswith("/"):
        return key.rstrip("/") + "/" + basename
    return key


class OssClient:
    """Signed REST client for one OSS endpoint.

    Args:
        config: Immutable client configuration
        http_client: Optional pre-built httpx client (tests inject a
                     MockTransport here)
    """

    def __init__(self, config: ClientConfig, http_client: Optional[httpx.Client] = None):
        self.config = config
        self.signer = RequestSigner(config.access_id, config.access_secret)
        self.transport = Transport(http_client or httpx.Client(timeout=config.timeout))

    def __enter__(self) -> "OssClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        self.transport.close()

    # -- request plumbing -------------------------------------------------

    def bucket_url(self, bucket: str) -> str:
        return f"{self.config.scheme}://{bucket}.{self.config.host}"

    def object_url(self, bucket: str, key: str) -> str:
        return f"{self.bucket_url(bucket)}/{quote(key, safe='/')}"

    def request(
        self,
        method: str,
        bucket: str,
        key: str = "",
        *,
        subresource: Optional[str] = None,
        query: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Union[bytes, Iterable[bytes], None] = None,
    ) -> HttpResult:
        """Sign and send one request.

        Args:
            method: HTTP verb
            bucket: Bucket name
            key: Object key, empty for bucket-level requests
            subresource: Signed query sub-resource ("uploads", "delete", ...)
            query: Unsigned query parameters (listing filters)
            headers: Extra headers; Content-MD5, Content-Type and x-oss-*
                     entries are included in the signature
            body: Request body

        Returns:
            The raw HttpResult
        """
        request_headers = {"Date": http_date()}
        if headers:
            request_headers.update(headers)
        check_header_values(request_headers)
        request_headers["Authorization"] = self.signer.sign(
            method, request_headers, bucket, key, subresource
        )

        url = self.object_url(bucket, key)
        params = []
        if subresource:
            params.append(subresource)
        if query:
            params.append(urlencode({k: v for k, v in query.items() if v != ""}))
        params = [p for p in params if p]
        if params:
            url += "?" + "&".join(params)

        return self.transport.execute(url, method, request_headers, body)

    # -- single objects ---------------------------------------------------

    def put(
        self,
        body: bytes,
        bucket: str,
        key: str,
        disposition: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> PutResult:
        """Upload body as a single object."""
        request_headers = {"Content-MD5": content_md5(body)}
        content_type = guess_content_type(key)
        if content_type:
            request_headers["Content-Type"] = content_type
        if disposition:
            request_headers["Content-Disposition"] = disposition_header(disposition)
        if headers:
            request_headers.update(headers)

        result = self.request("PUT", bucket, key, headers=request_headers, body=body)
        raise_for_status(result, 200)
        return PutResult(
            bucket=bucket,
            key=key,
            location=self.object_url(bucket, key),
            status_code=result.status_code,
            etag=result.header("ETag"),
            request_id=result.header("x-oss-request-id"),
        )

    def upload_file(
        self,
        file_path: str,
        bucket: str,
        key: str = "",
        disposition: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> PutResult:
        """Read a local file into memory and PUT it."""
        try:
            with open(file_path, "rb") as f:
                body = f.read()
        except OSError as e:
            raise LocalIOError(f"Cannot read {file_path}: {e}") from e

        key = resolve_key(key, file_path)
        return self.put(body, bucket, key, disposition=disposition, headers=headers)

    def copy(
        self,
        bucket: str,
        key: str,
        source: str,
        disposition: Optional[str] = None,
    ) -> CopyResult:
        """Server-side copy of a whole object.

        Args:
            bucket: Destination bucket
            key: Destination key
            source: Fully-qualified source, "/bucket/key"
        """
        request_headers = {"x-oss-copy-source": quote(source, safe="/")}
        if disposition:
            request_headers["Content-Disposition"] = disposition_header(disposition)

        result = self.request("PUT", bucket, key, headers=request_headers, body=b"")
        raise_for_status(result, 200)

        etag = result.header("ETag")
        last_modified = None
        if result.body:
            parsed = parse_copy_result(result.body)
            etag = parsed["ETag"] or etag
            last_modified = parse_iso_time(parsed["LastModified"])
        return CopyResult(
            bucket=bucket,
            key=key,
            source=source,
            status_code=result.status_code,
            etag=etag,
            last_modified=last_modified,
        )

    def delete(self, bucket: str, key: str) -> int:
        """Delete one object; returns the status code (204)."""
        result = self.request("DELETE", bucket, key)
        raise_for_status(result, 204)
        return result.status_code

    def head(self, bucket: str, key: str) -> ObjectHead:
        """Fetch object metadata.

        Raises:
            StatusError: If the object does not exist or access is denied
        """
        result = self.request("HEAD", bucket, key)
        raise_for_status(result, 200)

        length = result.header("Content-Length") or "0"
        try:
            content_length = int(length)
        except ValueError as e:
            raise OssError(f"Invalid Content-Length: {length}") from e

        return ObjectHead(
            bucket=bucket,
            key=key,
            status_code=result.status_code,
            content_length=content_length,
            last_modified=parse_http_time(result.header("Last-Modified")),
            etag=result.header("ETag"),
            content_type=result.header("Content-Type"),
            headers=result.headers,
        )

    def stat(self, bucket: str, key: str) -> Optional[ObjectHead]:
        """Like head(), but returns None when the object does not exist."""
        try:
            return self.head(bucket, key)
        except StatusError as e:
            if e.status_code == 404:
                return None
            raise

    def get_range(self, bucket: str, key: str, byte_range: Optional[str] = None) -> bytes:
        """GET the whole object, or one "bytes=start-end" range of it."""
        headers = {"Range": byte_range} if byte_range else None
        result = self.request("GET", bucket, key, headers=headers)
        raise_for_status(result, 200, 206)
        return result.body

    # -- listing ----------------------------------------------------------

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        marker: str = "",
        delimiter: str = "",
        max_keys: Optional[int] = None,
    ) -> ListPage:
        """Fetch one page of a bucket listing."""
        query = {
            "prefix": prefix,
            "marker": marker,
            "delimiter": delimiter,
            "max-keys": str(max_keys) if max_keys else "",
        }
        result = self.request("GET", bucket, "", query=query)
        raise_for_status(result, 200)
        return parse_list_objects(result.body, bucket)

    def iter_list_pages(
        self,
        bucket: str,
        prefix: str = "",
        marker: str = "",
        delimiter: str = "",
        max_keys: int = LIST_PAGE_SIZE,
    ) -> Iterator[ListPage]:
        """Yield listing pages lazily, following the marker until not truncated.

        Each page is one idempotent request keyed by its marker, so the walk
        can be restarted from any page's marker.
        """
        while True:
            page = self.list_objects(
                bucket, prefix=prefix, marker=marker, delimiter=delimiter, max_keys=max_keys
            )
            yield page
            next_marker = page.continuation_marker
            if next_marker is None:
                return
            marker = next_marker

    def delete_multiple(self, bucket: str, keys: Iterable[str], quiet: bool = True) -> HttpResult:
        """Quiet multi-delete of up to 1000 keys.

        The HTTP status is returned unevaluated; bulk deletion decides what
        a non-200 means for its counts.
        """
        body = build_delete_body(keys, quiet=quiet)
        headers = {
            "Content-MD5": content_md5(body),
            "Content-Type": "application/xml",
        }
        return self.request("POST", bucket, "", subresource="delete", headers=headers, body=body)

    # -- multipart primitives ---------------------------------------------

    def initiate_multipart_upload(
        self,
        bucket: str,
        key: str,
        disposition: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> UploadSession:
        """Start a multipart upload and return its session.

        Raises:
            InitError: On transport failure, non-200 status or a missing UploadId
        """
        request_headers = {}
        content_type = guess_content_type(key)
        if content_type:
            request_headers["Content-Type"] = content_type
        if disposition:
            request_headers["Content-Disposition"] = disposition_header(disposition)
        if headers:
            request_headers.update(headers)

        try:
            result = self.request(
                "POST", bucket, key, subresource="uploads", headers=request_headers
            )
            raise_for_status(result, 200)
            parsed = parse_initiate(result.body)
        except UsageError:
            raise
        except OssError as e:
            raise InitError(f"Cannot initiate upload for /{bucket}/{key}: {e}") from e

        if not parsed["UploadId"]:
            raise InitError(f"Service returned no UploadId for /{bucket}/{key}")

        logger.info("Initiated multipart upload %s for /%s/%s", parsed["UploadId"], bucket, key)
        return UploadSession(bucket=bucket, key=key, upload_id=parsed["UploadId"])

    @staticmethod
    def part_subresource(part_number: int, upload_id: str) -> str:
        return f"partNumber={part_number}&uploadId={upload_id}"

    def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        body: Union[bytes, Iterable[bytes]],
        size: int,
    ) -> str:
        """Upload one part and return its ETag.

        Args:
            session: The multipart session
            part_number: 1-based part number
            body: Part bytes, or an iterator streaming exactly `size` bytes
            size: Content-Length of the part
        """
        request_headers = {"Content-Length": str(size)}
        content_type = guess_content_type(session.key)
        if content_type:
            request_headers["Content-Type"] = content_type

        result = self.request(
            "PUT",
            session.bucket,
            session.key,
            subresource=self.part_subresource(part_number, session.upload_id),
            headers=request_headers,
            body=body,
        )
        raise_for_status(result, 200)
        etag = result.header("ETag")
        if not etag:
            raise StatusError(result.status_code, result.body, message="missing ETag")
        return etag

    def copy_part(
        self,
        session: UploadSession,
        part_number: int,
        source: str,
        byte_range: str,
    ) -> str:
        """Copy a byte range of "/bucket/key" into one part; returns its ETag."""
        request_headers = {
            "x-oss-copy-source": quote(source, safe="/"),
            "x-oss-copy-source-range": byte_range,
        }
        result = self.request(
            "PUT",
            session.bucket,
            session.key,
            subresource=self.part_subresource(part_number, session.upload_id),
            headers=request_headers,
            body=b"",
        )
        raise_for_status(result, 200)

        etag = result.header("ETag")
        if result.body:
            etag = parse_copy_result(result.body, root="CopyPartResult")["ETag"] or etag
        if not etag:
            raise StatusError(result.status_code, result.body, message="missing ETag")
        return etag

    def complete_multipart_upload(self, session: UploadSession, manifest: bytes) -> CompleteResult:
        """Finalize a multipart upload.

        Raises:
            CompletionError: If the service does not answer 200
        """
        request_headers = {"Content-MD5": content_md5(manifest)}
        content_type = guess_content_type(session.key)
        if content_type:
            request_headers["Content-Type"] = content_type

        result = self.request(
            "POST",
            session.bucket,
            session.key,
            subresource=f"uploadId={session.upload_id}",
            headers=request_headers,
            body=manifest,
        )
        if result.status_code != 200:
            code, message = parse_error(result.body)
            raise CompletionError(result.status_code, result.body, code=code, message=message)

        parsed = parse_complete(result.body) if result.body else {}
        logger.info("Completed multipart upload %s", session.upload_id)
        return CompleteResult(
            bucket=parsed.get("Bucket") or session.bucket,
            key=parsed.get("Key") or session.key,
            location=parsed.get("Location") or self.object_url(session.bucket, session.key),
            etag=parsed.get("ETag") or result.header("ETag"),
        )

    def abort_multipart_upload(self, session: UploadSession) -> None:
        """Discard a multipart session and its uploaded parts."""
        result = self.request(
            "DELETE",
            session.bucket,
            session.key,
            subresource=f"uploadId={session.upload_id}",
        )
        raise_for_status(result, 204)


def local_file_size(file_path: str) -> int:
    try:
        return os.path.getsize(file_path)
    except OSError as e:
        raise LocalIOError(f"Cannot stat {file_path}: {e}") from e
