"""Bulk operations over local directories and bucket prefixes.

Each operation enumerates work items (local files, listed objects, or
batches of keys) and runs them through a WorkerPool. Workers tolerate
non-retryable HTTP statuses as a per-item FAIL, so one bad object does not
stop the rest of the run.
"""

import logging
import os
import posixpath
from typing import Callable, Optional

from osscmd.client import LIST_PAGE_SIZE, OssClient, raise_for_status
from osscmd.errors import LocalIOError, StatusError, UnauthorizedError, UsageError
from osscmd.models import (
    ItemOutcome,
    ListSummary,
    ObjectEntry,
    ObjectRef,
    TransferCounts,
    TransferOptions,
)
from osscmd.pool import WorkerPool
from osscmd.reporters.base import Reporter
from osscmd.retry import is_retryable_error

logger = logging.getLogger(__name__)

# Maximum number of keys in one multi-delete request
DELETE_BATCH_SIZE = 1000


def join_key(prefix: str, name: str) -> str:
    """Destination key under a prefix, never starting with '/'."""
    return (prefix.rstrip("/") + "/" + name).lstrip("/")


def walk_dir(local_dir: str, suffixes: Optional[list[str]] = None) -> list[str]:
    """Recursively list files under local_dir.

    Args:
        local_dir: Directory to walk
        suffixes: Optional allow-list of file suffixes, matched
                  case-insensitively

    Returns:
        Sorted relative paths using '/' separators

    Raises:
        LocalIOError: If local_dir is not a directory
    """
    if not os.path.isdir(local_dir):
        raise LocalIOError(f"Not a directory: {local_dir}")

    allowed = tuple(s.lower() for s in (suffixes or []) if s)
    files = []
    for root, _dirs, names in os.walk(local_dir):
        for name in names:
            if allowed and not name.lower().endswith(allowed):
                continue
            rel = os.path.relpath(os.path.join(root, name), local_dir)
            files.append(rel.replace(os.sep, "/"))
    return sorted(files)


class BulkTransfer:
    """Directory upload, bucket copy, bulk delete and listings."""

    def __init__(self, client: OssClient, reporter: Optional[Reporter] = None):
        self.client = client
        self.reporter = reporter

    @property
    def config(self):
        return self.client.config

    def _pool(
        self,
        label: str,
        options: TransferOptions,
        total_items: int,
        expected_items: Optional[int] = None,
    ) -> WorkerPool:
        return WorkerPool(
            self.config.thread_num_for(options.thread_num, total_items),
            max_attempts=self.config.max_retry_num,
            policy=options.policy,
            reporter=self.reporter,
            label=label,
            expected_items=total_items if expected_items is None else expected_items,
        )

    # -- skip heuristic ---------------------------------------------------

    def is_fresh(self, bucket: str, key: str, size: int, mtime: Optional[float]) -> bool:
        """Whether the destination already holds this content.

        True when the destination exists with the same size and its
        Last-Modified (whole seconds) is not older than mtime. This compares
        size and time only; same-size edits with an older mtime are missed.
        """
        if mtime is None:
            return False
        head = self.client.stat(bucket, key)
        if head is None or head.last_modified is None:
            return False
        return head.content_length == size and int(head.last_modified.timestamp()) >= int(mtime)

    @staticmethod
    def _tolerate(error: StatusError, item: str) -> ItemOutcome:
        # Retryable statuses go back to the pool; auth failures stop the run
        if isinstance(error, UnauthorizedError) or is_retryable_error(error):
            raise error
        logger.error("%s failed: %s", item, error)
        return ItemOutcome.FAIL

    # -- upload from directory --------------------------------------------

    def upload_from_dir(
        self,
        local_dir: str,
        dest: ObjectRef,
        options: Optional[TransferOptions] = None,
    ) -> TransferCounts:
        """Upload every file under local_dir to dest's bucket and prefix."""
        options = options or TransferOptions()
        files = walk_dir(local_dir, options.suffixes)
        if not files:
            return TransferCounts()

        logger.info("Uploading %d files from %s to %s", len(files), local_dir, dest.path)
        with self._pool("uploadfromdir", options, len(files)) as pool:
            for rel in files:
                pool.submit(
                    rel,
                    self._upload_one,
                    os.path.join(local_dir, rel),
                    dest.bucket,
                    join_key(dest.key, rel),
                    rel,
                    options,
                )
        counts = pool.counts
        logger.info("uploadfromdir finished: %s", counts.to_dict())
        return counts

    def _upload_one(
        self,
        file_path: str,
        bucket: str,
        key: str,
        rel: str,
        options: TransferOptions,
    ) -> ItemOutcome:
        if not options.replace:
            try:
                stat = os.stat(file_path)
            except OSError as e:
                raise LocalIOError(f"Cannot stat {file_path}: {e}") from e
            if self.is_fresh(bucket, key, stat.st_size, stat.st_mtime):
                logger.debug("Skipping %s, /%s/%s is up to date", rel, bucket, key)
                return ItemOutcome.SKIP

        try:
            self.client.upload_file(
                file_path, bucket, key, disposition=rel, headers=options.oss_headers
            )
        except StatusError as e:
            return self._tolerate(e, f"Upload of {rel}")
        return ItemOutcome.FINISH

    # -- copy bucket ------------------------------------------------------

    def copy_bucket(
        self,
        source: ObjectRef,
        dest: ObjectRef,
        options: Optional[TransferOptions] = None,
    ) -> TransferCounts:
        """Server-side copy of every object under source's prefix.

        Pages are processed one at a time: all objects of a page are copied
        before the next page is listed.
        """
        options = options or TransferOptions()
        # The object count is unknown until the listing ends
        with self._pool("copybucket", options, LIST_PAGE_SIZE, expected_items=0) as pool:
            for page in self.client.iter_list_pages(source.bucket, prefix=source.key):
                for entry in page.entries:
                    pool.submit(entry.key, self._copy_one, entry, dest, options)
                pool.wait()
        counts = pool.counts
        logger.info("copybucket finished: %s", counts.to_dict())
        return counts

    def _copy_one(self, entry: ObjectEntry, dest: ObjectRef, options: TransferOptions) -> ItemOutcome:
        name = posixpath.basename(entry.key)
        if not name:
            # Directory placeholder objects ("dir/") have no basename
            return ItemOutcome.SKIP
        key = join_key(dest.key, name)

        if not options.replace:
            mtime = entry.last_modified.timestamp() if entry.last_modified else None
            if self.is_fresh(dest.bucket, key, entry.size, mtime):
                logger.debug("Skipping %s, /%s/%s is up to date", entry.path, dest.bucket, key)
                return ItemOutcome.SKIP

        try:
            self.client.copy(dest.bucket, key, f"/{entry.bucket}/{entry.key}")
        except StatusError as e:
            return self._tolerate(e, f"Copy of {entry.path}")
        return ItemOutcome.FINISH

    # -- delete all -------------------------------------------------------

    def delete_all_objects(
        self,
        ref: ObjectRef,
        options: Optional[TransferOptions] = None,
    ) -> TransferCounts:
        """Delete every object under ref's prefix with batched multi-deletes.

        Raises:
            UsageError: Unless options.force is set
        """
        options = options or TransferOptions()
        if not options.force:
            raise UsageError(f"Refusing to delete all objects under {ref.path} without force=true")

        keys = [
            entry.key
            for page in self.client.iter_list_pages(ref.bucket, prefix=ref.key)
            for entry in page.entries
        ]
        if not keys:
            return TransferCounts()

        batches = [keys[i:i + DELETE_BATCH_SIZE] for i in range(0, len(keys), DELETE_BATCH_SIZE)]
        logger.info("Deleting %d objects under %s in %d batches", len(keys), ref.path, len(batches))
        with self._pool("deleteallobject", options, len(batches)) as pool:
            for number, batch in enumerate(batches, start=1):
                pool.submit(number, self._delete_batch, ref.bucket, batch, number, weight=len(batch))
        counts = pool.counts
        logger.info("deleteallobject finished: %s", counts.to_dict())
        return counts

    def _delete_batch(self, bucket: str, keys: list[str], number: int) -> ItemOutcome:
        result = self.client.delete_multiple(bucket, keys)
        try:
            raise_for_status(result, 200)
        except StatusError as e:
            return self._tolerate(e, f"Delete batch {number}")
        return ItemOutcome.FINISH

    # -- listings ---------------------------------------------------------

    def list_all_objects(
        self,
        ref: ObjectRef,
        on_entry: Optional[Callable[[ObjectEntry], None]] = None,
    ) -> ListSummary:
        """Walk every page under ref's prefix, without the pool."""
        summary = ListSummary(bucket=ref.bucket, prefix=ref.key)
        for page in self.client.iter_list_pages(ref.bucket, prefix=ref.key):
            for entry in page.entries:
                summary.count += 1
                summary.total_size += entry.size
                if on_entry:
                    on_entry(entry)
        return summary

    def list_objects(
        self,
        ref: ObjectRef,
        options: Optional[TransferOptions] = None,
        on_entry: Optional[Callable[[ObjectEntry], None]] = None,
    ) -> ListSummary:
        """List under ref's prefix honouring marker, delimiter and max_keys.

        Keeps paging while the listing is truncated, until max_keys entries
        have been returned (or to the end when max_keys is unset).
        """
        options = options or TransferOptions()
        limit = options.max_keys
        page_size = min(limit, LIST_PAGE_SIZE) if limit else LIST_PAGE_SIZE
        summary = ListSummary(bucket=ref.bucket, prefix=ref.key)

        pages = self.client.iter_list_pages(
            ref.bucket,
            prefix=ref.key,
            marker=options.marker,
            delimiter=options.delimiter,
            max_keys=page_size,
        )
        for page in pages:
            summary.common_prefixes.extend(page.common_prefixes)
            for entry in page.entries:
                if limit and summary.count >= limit:
                    break
                summary.count += 1
                summary.total_size += entry.size
                if on_entry:
                    on_entry(entry)
            if limit and summary.count >= limit:
                break
        return summary
