"""Data models for the OSS client and transfer engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from osscmd.errors import PathError

OSS_SCHEME = "oss://"

KiB = 1024
MiB = 1024 * 1024


class FailurePolicy(Enum):
    """What the worker pool does when an item exhausts its retries."""

    FAIL_FAST = "fail_fast"
    CONTINUE = "continue"


class ItemOutcome(Enum):
    """Terminal outcome of a single work item."""

    FINISH = "finish"
    SKIP = "skip"
    FAIL = "fail"


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings and transfer tunables for one process."""

    host: str
    access_id: str
    access_secret: str
    scheme: str = "http"
    timeout: float = 60.0
    part_min_size: int = 1 * MiB
    part_max_size: int = 100 * MiB
    default_part_size: int = 10 * MiB
    thread_min_num: int = 5
    thread_max_num: int = 100
    default_thread_num: int = 10
    max_retry_num: int = 3
    recv_buffer_size: int = 10 * KiB

    def part_size_for(self, requested: Optional[int] = None) -> int:
        """Part size for one call, clamped into [part_min_size, part_max_size]."""
        if requested is None:
            requested = self.default_part_size
        return _clamp(requested, self.part_min_size, self.part_max_size)

    def thread_num_for(self, requested: Optional[int], total_items: int) -> int:
        """Concurrency for one call.

        The requested (or default) count is clamped into
        [min(thread_min_num, total_items), min(thread_max_num, total_items)]
        and never drops below 1.
        """
        if requested is None:
            requested = self.default_thread_num
        low = min(self.thread_min_num, total_items)
        high = min(self.thread_max_num, total_items)
        return max(1, _clamp(requested, low, high))


@dataclass(frozen=True)
class ObjectRef:
    """A (bucket, key) pair parsed from an oss://bucket/key path."""

    bucket: str
    key: str = ""

    @classmethod
    def parse(cls, path: str) -> "ObjectRef":
        """Parse an oss://bucket/key path.

        Raises:
            PathError: If the bucket is missing or the key starts with '/'.
        """
        rest = path[len(OSS_SCHEME):] if path.startswith(OSS_SCHEME) else path
        bucket, _, key = rest.partition("/")
        if not bucket:
            raise PathError(f"Missing bucket name in path: {path}")
        if key.startswith("/"):
            raise PathError("object name SHOULD NOT begin with /")
        return cls(bucket=bucket, key=key)

    @property
    def path(self) -> str:
        return f"{OSS_SCHEME}{self.bucket}/{self.key}"


@dataclass(frozen=True)
class Part:
    """A contiguous, inclusive byte range of an object."""

    index: int
    start: int
    end: int

    @property
    def number(self) -> int:
        """1-based part number used on the wire."""
        return self.index + 1

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    @property
    def range_header(self) -> str:
        return f"bytes={self.start}-{self.end}"


@dataclass
class HttpResult:
    """Normalized response of one HTTP round trip."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


@dataclass
class UploadSession:
    """A multipart upload session issued by the service."""

    bucket: str
    key: str
    upload_id: str


@dataclass
class PutResult:
    """Result of a single-request object PUT."""

    bucket: str
    key: str
    location: str
    status_code: int
    etag: Optional[str] = None
    request_id: Optional[str] = None


@dataclass
class CopyResult:
    """Result of a server-side object copy."""

    bucket: str
    key: str
    source: str
    status_code: int
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None


@dataclass
class CompleteResult:
    """Result of completing a multipart upload."""

    bucket: str
    key: str
    location: Optional[str] = None
    etag: Optional[str] = None


@dataclass
class ObjectHead:
    """Metadata returned by HEAD on an object."""

    bucket: str
    key: str
    status_code: int
    content_length: int
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ObjectEntry:
    """One object in a bucket listing."""

    bucket: str
    key: str
    size: int
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    storage_class: Optional[str] = None

    @property
    def path(self) -> str:
        return f"{OSS_SCHEME}{self.bucket}/{self.key}"


@dataclass
class ListPage:
    """One page of a bucket listing."""

    bucket: str
    prefix: str = ""
    marker: str = ""
    delimiter: str = ""
    max_keys: Optional[int] = None
    is_truncated: bool = False
    entries: list[ObjectEntry] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    next_marker: Optional[str] = None

    @property
    def continuation_marker(self) -> Optional[str]:
        """Marker for the next page, or None when the listing is complete."""
        if not self.is_truncated:
            return None
        if self.next_marker:
            return self.next_marker
        if self.entries:
            return self.entries[-1].key
        if self.common_prefixes:
            return self.common_prefixes[-1]
        return None


@dataclass
class TransferCounts:
    """Aggregate outcome counts of a bulk operation."""

    total: int = 0
    finish: int = 0
    skip: int = 0

    @property
    def fail(self) -> int:
        return self.total - self.finish - self.skip

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "finish": self.finish,
            "skip": self.skip,
            "fail": self.fail,
        }


@dataclass
class DownloadResult:
    """Result of downloading an object to a local file."""

    bucket: str
    key: str
    local_file: str
    size: int
    parts: int = 0


@dataclass
class ListSummary:
    """Totals gathered while walking a listing."""

    bucket: str
    prefix: str = ""
    count: int = 0
    total_size: int = 0
    common_prefixes: list[str] = field(default_factory=list)


@dataclass
class TransferOptions:
    """Typed view over the CLI option map."""

    headers: dict[str, str] = field(default_factory=dict)
    force: bool = False
    replace: bool = False
    suffixes: list[str] = field(default_factory=list)
    marker: str = ""
    delimiter: str = ""
    max_keys: Optional[int] = None
    part_size: Optional[int] = None
    thread_num: Optional[int] = None
    policy: FailurePolicy = FailurePolicy.FAIL_FAST

    @property
    def disposition(self) -> Optional[str]:
        return self.headers.get("disposition") or None

    @property
    def oss_headers(self) -> dict[str, str]:
        """Custom x-oss-* headers to forward with object writes."""
        return {
            name.lower(): value
            for name, value in self.headers.items()
            if name.lower().startswith("x-oss-")
        }
