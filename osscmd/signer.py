"""OSS header signing (HMAC-SHA1).

The canonical string the service expects is:

    VERB\\n
    Content-MD5\\n
    Content-Type\\n
    Date\\n
    x-oss-name:value\\n        (one line per custom header, sorted)
    /bucket/key[?subresource]

The Authorization header is then ``OSS <access_id>:<base64(hmac-sha1)>``.
Any deviation from this byte sequence makes every request fail with 403.
"""

import base64
import hashlib
import hmac
from email.utils import formatdate
from typing import Mapping, Optional

OSS_HEADER_PREFIX = "x-oss-"
STANDARD_HEADERS = ("content-md5", "content-type", "date")


def http_date(timestamp: Optional[float] = None) -> str:
    """RFC 1123 date in GMT, as used in the Date header."""
    return formatdate(timestamp, usegmt=True)


def content_md5(body: bytes) -> str:
    """Base64 encoded MD5 digest of body, for the Content-MD5 header."""
    return base64.b64encode(hashlib.md5(body).digest()).decode("ascii")


def canonical_resource(bucket: str, key: str, subresource: Optional[str] = None) -> str:
    resource = f"/{bucket}/{key}"
    if subresource:
        resource += f"?{subresource}"
    return resource


def canonical_string(
    method: str,
    headers: Mapping[str, str],
    bucket: str,
    key: str,
    subresource: Optional[str] = None,
) -> str:
    """Build the exact string that gets signed.

    Args:
        method: HTTP verb
        headers: Request headers; only Content-MD5, Content-Type, Date and
                 x-oss-* headers take part in the signature
        bucket: Bucket name
        key: Object key (may be empty for bucket-level requests)
        subresource: Query sub-resource appended verbatim, e.g. "uploads"

    Returns:
        The canonical signing string
    """
    lowered = {name.lower(): value for name, value in headers.items()}

    lines = [method.upper()]
    lines.extend(lowered.get(name, "") for name in STANDARD_HEADERS)

    custom = sorted(name for name in lowered if name.startswith(OSS_HEADER_PREFIX))
    for name in custom:
        lines.append(f"{name}:{lowered[name].strip()}")

    return "\n".join(lines) + "\n" + canonical_resource(bucket, key, subresource)


class RequestSigner:
    """Signs requests with an access id / secret pair."""

    def __init__(self, access_id: str, access_secret: str):
        self.access_id = access_id
        self._access_secret = access_secret.encode("utf-8")

    def signature(self, string_to_sign: str) -> str:
        digest = hmac.new(
            self._access_secret, string_to_sign.encode("utf-8"), hashlib.sha1
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def sign(
        self,
        method: str,
        headers: Mapping[str, str],
        bucket: str,
        key: str,
        subresource: Optional[str] = None,
    ) -> str:
        """Return the Authorization header value for a request."""
        string_to_sign = canonical_string(method, headers, bucket, key, subresource)
        return f"OSS {self.access_id}:{self.signature(string_to_sign)}"
