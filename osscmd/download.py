"""Parallel ranged download and sequential chunked read (cat)."""

import logging
import os
import posixpath
from typing import Iterator, Optional

from osscmd.client import OssClient
from osscmd.errors import LocalIOError, OssConnectionError, TransferAborted
from osscmd.models import DownloadResult, ObjectRef, Part, TransferOptions
from osscmd.planner import plan_parts
from osscmd.pool import WorkerPool
from osscmd.reporters.base import Reporter

logger = logging.getLogger(__name__)


def resolve_local_path(local_path: str, key: str) -> str:
    """Local target for a download.

    An empty path, a path ending in a separator, or an existing directory
    gets the object's basename appended.
    """
    basename = posixpath.basename(key)
    if not local_path:
        return basename
    if local_path.endswith(("/", os.sep)) or os.path.isdir(local_path):
        return os.path.join(local_path, basename)
    return local_path


def _prepare_file(local_file: str, size: int) -> None:
    try:
        parent = os.path.dirname(local_file)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(local_file, "wb") as f:
            f.truncate(size)
    except OSError as e:
        raise LocalIOError(f"Cannot create {local_file}: {e}") from e


def _download_part(client: OssClient, ref: ObjectRef, local_file: str, part: Part) -> None:
    data = client.get_range(ref.bucket, ref.key, part.range_header)
    if len(data) != part.size:
        raise OssConnectionError(
            f"Short read for part {part.number}: got {len(data)} of {part.size} bytes"
        )
    # Each worker has its own handle and writes a disjoint range
    try:
        with open(local_file, "r+b") as f:
            f.seek(part.start)
            f.write(data)
    except OSError as e:
        raise LocalIOError(f"Cannot write part {part.number} to {local_file}: {e}") from e


def download_object(
    client: OssClient,
    ref: ObjectRef,
    local_path: str,
    options: Optional[TransferOptions] = None,
    reporter: Optional[Reporter] = None,
) -> DownloadResult:
    """Download an object with parallel ranged GETs.

    Args:
        client: OSS client
        ref: Object to download
        local_path: Target file or directory
        options: Part size, thread count and failure policy
        reporter: Receives pool progress

    Returns:
        DownloadResult describing the written file

    Raises:
        StatusError: If the object does not exist
        LocalIOError: If the local file cannot be created
        TransferAborted: If any part fails after retries, under either
                         failure policy
    """
    options = options or TransferOptions()
    config = client.config

    head = client.head(ref.bucket, ref.key)
    local_file = resolve_local_path(local_path, ref.key)
    _prepare_file(local_file, head.content_length)

    parts = plan_parts(head.content_length, config.part_size_for(options.part_size))
    if parts:
        logger.info("Downloading %s (%d bytes) in %d parts",
                    ref.path, head.content_length, len(parts))
        with WorkerPool(
            config.thread_num_for(options.thread_num, len(parts)),
            max_attempts=config.max_retry_num,
            policy=options.policy,
            reporter=reporter,
            label="get",
            expected_items=len(parts),
        ) as pool:
            for part in parts:
                pool.submit(part.index, _download_part, client, ref, local_file, part)

        # Under CONTINUE a failed part leaves a hole of zero bytes
        counts = pool.counts
        if counts.finish != len(parts):
            raise TransferAborted(
                ref.path,
                OssConnectionError(f"{counts.fail} of {len(parts)} parts failed"),
                counts=counts,
            )

    return DownloadResult(
        bucket=ref.bucket,
        key=ref.key,
        local_file=local_file,
        size=head.content_length,
        parts=len(parts),
    )


def iter_object_chunks(
    client: OssClient,
    ref: ObjectRef,
    chunk_size: Optional[int] = None,
) -> Iterator[bytes]:
    """Yield an object's content in sequential chunks.

    Chunks default to the configured receive buffer size, so memory stays
    bounded for large objects.
    """
    head = client.head(ref.bucket, ref.key)
    for part in plan_parts(head.content_length, chunk_size or client.config.recv_buffer_size):
        yield client.get_range(ref.bucket, ref.key, part.range_header)
