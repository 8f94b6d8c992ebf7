"""Exception hierarchy for the OSS client and transfer engine.

Single-object operations raise these to the caller. Bulk and parallel
operations retry per item and surface exhausted items as TransferAborted.
"""

from typing import Any, Optional


class OssError(Exception):
    """Base class for all errors raised by osscmd."""

    pass


class OssConnectionError(OssError):
    """Raised when the HTTP request could not be completed."""

    pass


class StatusError(OssError):
    """Raised when the service answers with an unexpected HTTP status."""

    def __init__(
        self,
        status_code: int,
        body: bytes = b"",
        code: Optional[str] = None,
        message: Optional[str] = None,
    ):
        detail = code or "UnexpectedStatus"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(f"HTTP {status_code} ({detail})")
        self.status_code = status_code
        self.body = body
        self.code = code
        self.message = message


class UnauthorizedError(StatusError):
    """Raised on 401/403, usually a signature or credential mismatch."""

    pass


class InitError(OssError):
    """Raised when a multipart upload session cannot be initiated."""

    pass


class CompletionError(StatusError):
    """Raised when a multipart upload cannot be completed."""

    pass


class ParseError(OssError):
    """Raised when a response body is not the XML we expect."""

    pass


class LocalIOError(OssError):
    """Raised when a local file cannot be opened, read, written or stat'ed."""

    pass


class PathError(OssError):
    """Raised for malformed oss://bucket/key paths."""

    pass


class UsageError(OssError):
    """Raised when a command is called with missing or invalid arguments."""

    pass


class UnknownCommandError(UsageError):
    """Raised for a command name the dispatcher does not know."""

    pass


class TransferAborted(OssError):
    """Raised when a work item exhausted its retries under fail-fast policy.

    Attributes:
        item: Key of the work item that failed (part index, file name, ...)
        cause: The last error raised by the work item
        counts: Aggregate counts at the time the pool drained
    """

    def __init__(self, item: Any, cause: BaseException, counts: Any = None):
        super().__init__(f"Transfer aborted at item {item!r}: {cause}")
        self.item = item
        self.cause = cause
        self.counts = counts
