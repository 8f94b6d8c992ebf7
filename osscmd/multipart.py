"""Multipart upload and server-side copy.

Both share one state machine:

    initiate -> part x N (through the worker pool) -> complete

Upload parts stream a byte range of a local file. Copy parts ask the
service to copy a byte range of a source object. Each part's ETag is written
to a pre-allocated slot by part index, so completion order does not matter.
"""

import logging
from typing import BinaryIO, Iterator, Mapping, Optional, Union

from osscmd.client import OssClient, local_file_size, resolve_key
from osscmd.errors import CompletionError, LocalIOError, OssError
from osscmd.models import (
    CompleteResult,
    CopyResult,
    ObjectRef,
    Part,
    PutResult,
    TransferOptions,
    UploadSession,
)
from osscmd.planner import plan_parts
from osscmd.pool import WorkerPool
from osscmd.reporters.base import Reporter
from osscmd.responses import build_complete_manifest

logger = logging.getLogger(__name__)

# Read size when streaming a part body from disk
STREAM_CHUNK_SIZE = 64 * 1024


def iter_section(f: BinaryIO, part: Part, chunk_size: int = STREAM_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield exactly part.size bytes of f starting at part.start.

    Raises:
        LocalIOError: If the file is shorter than planned or cannot be read
    """
    try:
        f.seek(part.start)
        remaining = part.size
        while remaining > 0:
            chunk = f.read(min(chunk_size, remaining))
            if not chunk:
                raise LocalIOError(
                    f"Unexpected end of file in part {part.number} "
                    f"({remaining} bytes missing)"
                )
            remaining -= len(chunk)
            yield chunk
    except OSError as e:
        raise LocalIOError(f"Cannot read part {part.number}: {e}") from e


class MultipartUpload:
    """Manages the lifecycle of one multipart upload session.

    This class handles:
    - Initiating the session
    - Recording part ETags in index order
    - Building the completion manifest and completing the upload
    - Aborting the session when the transfer fails

    Can be used as a context manager: entering initiates the session and an
    exception inside the block aborts it.
    """

    def __init__(
        self,
        client: OssClient,
        bucket: str,
        key: str,
        part_count: int,
        disposition: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.client = client
        self.bucket = bucket
        self.key = key
        self.disposition = disposition
        self.headers = dict(headers or {})
        self.session: Optional[UploadSession] = None
        self.etags: list[Optional[str]] = [None] * part_count

    def initiate(self) -> UploadSession:
        """Initiate the session.

        Raises:
            InitError: If the service does not issue an upload id
        """
        self.session = self.client.initiate_multipart_upload(
            self.bucket,
            self.key,
            disposition=self.disposition,
            headers=self.headers,
        )
        return self.session

    def record_part(self, index: int, etag: str) -> None:
        """Record the ETag of a finished part.

        Each index is written by exactly one worker, so no lock is needed.
        """
        self.etags[index] = etag

    def get_uploaded_parts(self) -> list[dict]:
        """Parts recorded so far, as PartNumber/ETag pairs in ascending order."""
        return [
            {"PartNumber": index + 1, "ETag": etag}
            for index, etag in enumerate(self.etags)
            if etag is not None
        ]

    def manifest(self) -> bytes:
        """Completion manifest listing every part by ascending part number.

        Raises:
            CompletionError: If any part has no recorded ETag
        """
        missing = [index + 1 for index, etag in enumerate(self.etags) if etag is None]
        if missing:
            raise CompletionError(0, message=f"parts without ETag: {missing}")
        return build_complete_manifest(self.etags)

    def complete(self) -> CompleteResult:
        """Complete the upload.

        Raises:
            RuntimeError: If upload was not initiated.
            CompletionError: If the service rejects the manifest.
        """
        if self.session is None:
            raise RuntimeError("Upload not initiated")
        return self.client.complete_multipart_upload(self.session, self.manifest())

    def abort(self) -> None:
        """Abort the session, discarding uploaded parts.

        Safe to call even if the upload was never initiated. Abort failures
        are logged and not raised, since an abort always runs while another
        error is already propagating.
        """
        if self.session is None:
            return
        try:
            self.client.abort_multipart_upload(self.session)
            logger.info("Aborted multipart upload %s", self.session.upload_id)
        except OssError as e:
            logger.warning("Could not abort upload %s: %s", self.session.upload_id, e)

    def __enter__(self) -> "MultipartUpload":
        """Enter context manager - initiates upload."""
        self.initiate()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Exit context manager - aborts on exception."""
        if exc_type is not None:
            self.abort()
        return False  # Don't suppress exceptions


class MultipartTransfer:
    """Runs multipart uploads and copies through the worker pool."""

    def __init__(self, client: OssClient, reporter: Optional[Reporter] = None):
        self.client = client
        self.reporter = reporter

    @property
    def config(self):
        return self.client.config

    def upload_file(
        self,
        file_path: str,
        dest: ObjectRef,
        options: Optional[TransferOptions] = None,
    ) -> Union[CompleteResult, PutResult]:
        """Upload a local file in parts.

        Args:
            file_path: Local source file
            dest: Destination; an empty or "dir/" key takes the file's basename
            options: Part size, thread count, headers and failure policy

        Returns:
            CompleteResult, or PutResult for an empty file (which has no parts)
        """
        options = options or TransferOptions()
        size = local_file_size(file_path)
        key = resolve_key(dest.key, file_path)

        parts = plan_parts(size, self.config.part_size_for(options.part_size))
        if not parts:
            return self.client.put(
                b"", dest.bucket, key,
                disposition=options.disposition,
                headers=options.oss_headers,
            )

        logger.info("Uploading %s (%d bytes) to /%s/%s in %d parts",
                    file_path, size, dest.bucket, key, len(parts))
        with MultipartUpload(
            self.client, dest.bucket, key, len(parts),
            disposition=options.disposition,
            headers=options.oss_headers,
        ) as upload:
            self._run_parts(upload, parts, options, "uploadlargefile", self._upload_part, file_path)
            return upload.complete()

    def copy_object(
        self,
        source: ObjectRef,
        dest: ObjectRef,
        options: Optional[TransferOptions] = None,
    ) -> Union[CompleteResult, CopyResult]:
        """Copy an object server-side in parts.

        Args:
            source: Source object
            dest: Destination; an empty or "dir/" key takes the source basename
            options: Part size, thread count, headers and failure policy

        Returns:
            CompleteResult, or CopyResult for an empty source object
        """
        options = options or TransferOptions()
        source_path = f"/{source.bucket}/{source.key}"
        head = self.client.head(source.bucket, source.key)
        key = resolve_key(dest.key, source.key)

        parts = plan_parts(head.content_length, self.config.part_size_for(options.part_size))
        if not parts:
            return self.client.copy(dest.bucket, key, source_path, disposition=options.disposition)

        logger.info("Copying %s (%d bytes) to /%s/%s in %d parts",
                    source_path, head.content_length, dest.bucket, key, len(parts))
        with MultipartUpload(
            self.client, dest.bucket, key, len(parts),
            disposition=options.disposition,
            headers=options.oss_headers,
        ) as upload:
            self._run_parts(upload, parts, options, "copylargefile", self._copy_part, source_path)
            return upload.complete()

    def _run_parts(self, upload, parts, options, label, worker, source) -> None:
        concurrency = self.config.thread_num_for(options.thread_num, len(parts))
        with WorkerPool(
            concurrency,
            max_attempts=self.config.max_retry_num,
            policy=options.policy,
            reporter=self.reporter,
            label=label,
            expected_items=len(parts),
        ) as pool:
            for part in parts:
                pool.submit(part.index, worker, upload, source, part)

    def _upload_part(self, upload: MultipartUpload, file_path: str, part: Part) -> None:
        try:
            f = open(file_path, "rb")
        except OSError as e:
            raise LocalIOError(f"Cannot open {file_path}: {e}") from e
        with f:
            etag = self.client.upload_part(
                upload.session, part.number, iter_section(f, part), part.size
            )
        upload.record_part(part.index, etag)

    def _copy_part(self, upload: MultipartUpload, source_path: str, part: Part) -> None:
        etag = self.client.copy_part(upload.session, part.number, source_path, part.range_header)
        upload.record_part(part.index, etag)
