"""XML request/response bodies for the OSS REST API.

Parsing and building go through xmltodict; list-valued elements are forced
to lists so a single <Contents> entry does not collapse into a dict.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Optional, Sequence
from xml.parsers.expat import ExpatError

import xmltodict

from osscmd.errors import ParseError
from osscmd.models import ListPage, ObjectEntry

ISO_FORMATS = ("%Y-%m-%dT%H:%M:%S.%fZ", "%Y-%m-%dT%H:%M:%SZ")


def parse_iso_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a listing timestamp such as 2024-01-02T03:04:05.000Z."""
    if not value:
        return None
    for fmt in ISO_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ParseError(f"Invalid timestamp: {value}")


def parse_http_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 1123 header timestamp such as Last-Modified."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid HTTP date: {value}") from e


def _parse(body: bytes, root: str, force_list: Sequence[str] = ()) -> dict[str, Any]:
    try:
        document = xmltodict.parse(body, force_list=tuple(force_list))
    except ExpatError as e:
        raise ParseError(f"Malformed XML response: {e}") from e

    if not isinstance(document, dict) or root not in document:
        raise ParseError(f"Expected <{root}> in response")
    # An empty root element parses to None
    return document[root] or {}


def _text(node: dict[str, Any], name: str) -> str:
    value = node.get(name)
    if value is None:
        return ""
    if isinstance(value, dict):
        return value.get("#text") or ""
    return str(value)


def parse_error(body: bytes) -> tuple[Optional[str], Optional[str]]:
    """Extract (Code, Message) from an <Error> body; (None, None) if absent."""
    if not body:
        return None, None
    try:
        error = _parse(body, "Error")
    except ParseError:
        return None, None
    return _text(error, "Code") or None, _text(error, "Message") or None


def parse_list_objects(body: bytes, bucket: str) -> ListPage:
    """Parse a <ListBucketResult> page."""
    result = _parse(body, "ListBucketResult", force_list=("Contents", "CommonPrefixes"))

    entries = []
    for item in result.get("Contents") or []:
        size = _text(item, "Size")
        try:
            size_value = int(size) if size else 0
        except ValueError as e:
            raise ParseError(f"Invalid object size: {size}") from e
        entries.append(
            ObjectEntry(
                bucket=bucket,
                key=_text(item, "Key"),
                size=size_value,
                last_modified=parse_iso_time(_text(item, "LastModified")),
                etag=_text(item, "ETag") or None,
                storage_class=_text(item, "StorageClass") or None,
            )
        )

    prefixes = [_text(p, "Prefix") for p in result.get("CommonPrefixes") or []]

    max_keys = _text(result, "MaxKeys")
    return ListPage(
        bucket=_text(result, "Name") or bucket,
        prefix=_text(result, "Prefix"),
        marker=_text(result, "Marker"),
        delimiter=_text(result, "Delimiter"),
        max_keys=int(max_keys) if max_keys.isdigit() else None,
        is_truncated=_text(result, "IsTruncated").lower() == "true",
        entries=entries,
        common_prefixes=prefixes,
        next_marker=_text(result, "NextMarker") or None,
    )


def parse_initiate(body: bytes) -> dict[str, str]:
    """Parse <InitiateMultipartUploadResult> into Bucket/Key/UploadId."""
    result = _parse(body, "InitiateMultipartUploadResult")
    return {
        "Bucket": _text(result, "Bucket"),
        "Key": _text(result, "Key"),
        "UploadId": _text(result, "UploadId"),
    }


def parse_complete(body: bytes) -> dict[str, str]:
    """Parse <CompleteMultipartUploadResult>."""
    result = _parse(body, "CompleteMultipartUploadResult")
    return {
        "Location": _text(result, "Location"),
        "Bucket": _text(result, "Bucket"),
        "Key": _text(result, "Key"),
        "ETag": _text(result, "ETag"),
    }


def parse_copy_result(body: bytes, root: str = "CopyObjectResult") -> dict[str, str]:
    """Parse <CopyObjectResult> or <CopyPartResult>."""
    result = _parse(body, root)
    return {
        "ETag": _text(result, "ETag"),
        "LastModified": _text(result, "LastModified"),
    }


def build_complete_manifest(etags: Sequence[str]) -> bytes:
    """Completion body listing ETags by ascending 1-based part number."""
    parts = [
        {"PartNumber": str(index + 1), "ETag": etag}
        for index, etag in enumerate(etags)
    ]
    document = {"CompleteMultipartUpload": {"Part": parts}}
    return xmltodict.unparse(document, full_document=False).encode("utf-8")


def build_delete_body(keys: Iterable[str], quiet: bool = True) -> bytes:
    """Multi-delete request body."""
    objects = [{"Key": key} for key in keys]
    document = {
        "Delete": {
            "Quiet": "true" if quiet else "false",
            "Object": objects,
        }
    }
    return xmltodict.unparse(document, full_document=False).encode("utf-8")
