"""Bounded worker pool for transfer work items.

Each submitted item runs on its own executor thread, admitted through a
bounded semaphore so no more than `concurrency` items are in flight. Items
are retried a fixed number of times. Progress events go through a queue to a
single reporter thread, which renders them strictly in completion order.
Before close() returns, a handshake event confirms that the reporter has
drained the final event.

Only three things are shared between threads:
- the counters, updated under a lock
- the progress queue (many producers, one consumer)
- caller-owned slots that work items write by disjoint index
"""

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import TYPE_CHECKING, Any, Callable, Optional

from osscmd.errors import TransferAborted
from osscmd.models import FailurePolicy, ItemOutcome, TransferCounts
from osscmd.retry import RetryExhausted, retry_call

if TYPE_CHECKING:
    from osscmd.reporters.base import Reporter

logger = logging.getLogger(__name__)

_CLOSED = object()


class WorkerPool:
    """Runs work items with bounded parallelism and fixed-count retry.

    Work functions return an ItemOutcome, or None for FINISH. Any exception
    left after retries marks the item as failed. Under FAIL_FAST the first
    such failure stops admission, cancels items that have not started, and
    makes wait()/close() raise TransferAborted. Under CONTINUE the item is
    counted as failed and the pool carries on.

    Usage:
        with WorkerPool(concurrency=4, label="upload") as pool:
            for part in parts:
                pool.submit(part.index, upload_part, part)
        counts = pool.counts
    """

    def __init__(
        self,
        concurrency: int,
        max_attempts: int = 3,
        policy: FailurePolicy = FailurePolicy.FAIL_FAST,
        reporter: Optional["Reporter"] = None,
        label: str = "transfer",
        expected_items: int = 0,
    ):
        self.concurrency = max(1, concurrency)
        self.max_attempts = max(1, max_attempts)
        self.policy = policy
        self.reporter = reporter
        self.label = label
        self.expected_items = expected_items

        self._slots = threading.BoundedSemaphore(self.concurrency)
        self._lock = threading.Lock()
        self._counts = TransferCounts()
        self._submitted = 0
        self._futures: list[Future] = []
        self._failure: Optional[tuple[Any, BaseException]] = None

        self._progress: queue.Queue = queue.Queue(maxsize=1)
        self._drained = threading.Event()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._reporter_thread: Optional[threading.Thread] = None
        self._closed = False

    # -- lifecycle --------------------------------------------------------

    def start(self) -> "WorkerPool":
        if self._executor is not None:
            return self
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix=f"osscmd-{self.label}",
        )
        self._reporter_thread = threading.Thread(
            target=self._report_progress,
            name=f"osscmd-{self.label}-progress",
            daemon=True,
        )
        self._reporter_thread.start()
        if self.reporter:
            self.reporter.on_transfer_start(self.label, self.expected_items)
        return self

    def __enter__(self) -> "WorkerPool":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        # Do not mask an exception already propagating out of the block
        self.close(raise_on_failure=exc_type is None)
        return False

    @property
    def counts(self) -> TransferCounts:
        with self._lock:
            return TransferCounts(
                total=self._counts.total,
                finish=self._counts.finish,
                skip=self._counts.skip,
            )

    @property
    def aborted(self) -> bool:
        with self._lock:
            return self._failure is not None and self.policy is FailurePolicy.FAIL_FAST

    # -- submission -------------------------------------------------------

    def submit(
        self,
        key: Any,
        fn: Callable[..., Optional[ItemOutcome]],
        *args: Any,
        weight: int = 1,
        **kwargs: Any,
    ) -> None:
        """Admit one work item, blocking while all slots are busy.

        Args:
            key: Identifies the item in logs and in TransferAborted
            fn: The work function
            weight: How many units the item adds to the counters (a
                    multi-delete batch counts its keys)

        Raises:
            TransferAborted: If an earlier item already failed under FAIL_FAST
        """
        if self._executor is None:
            self.start()
        if self._closed:
            raise RuntimeError("WorkerPool is closed")

        self._raise_if_aborted()
        self._slots.acquire()
        if self.aborted:
            self._slots.release()
            self._raise_if_aborted()

        with self._lock:
            self._counts.total += weight
            self._submitted += 1

        future = self._executor.submit(self._run_item, key, fn, args, kwargs, weight)
        # Runs on completion and on cancellation alike
        future.add_done_callback(self._release_slot)
        self._futures.append(future)

    def _release_slot(self, future: Future) -> None:
        self._slots.release()

    def _run_item(
        self,
        key: Any,
        fn: Callable[..., Optional[ItemOutcome]],
        args: tuple,
        kwargs: dict,
        weight: int,
    ) -> None:
        try:
            outcome = retry_call(fn, self.max_attempts, args=args, kwargs=kwargs)
        except RetryExhausted as e:
            self._on_failure(key, e.last_error or e)
            return
        except Exception as e:
            self._on_failure(key, e)
            return

        with self._lock:
            if outcome is ItemOutcome.SKIP:
                self._counts.skip += weight
            elif outcome is not ItemOutcome.FAIL:
                self._counts.finish += weight
        self._progress.put(key)

    def _on_failure(self, key: Any, error: BaseException) -> None:
        if self.policy is FailurePolicy.CONTINUE:
            logger.error("%s item %r failed: %s", self.label, key, error)
            self._progress.put(key)
            return

        with self._lock:
            first = self._failure is None
            if first:
                self._failure = (key, error)
        if first:
            logger.error("%s item %r failed, aborting: %s", self.label, key, error)
            for future in list(self._futures):
                future.cancel()

    def _raise_if_aborted(self) -> None:
        with self._lock:
            failure = self._failure
        if failure is not None and self.policy is FailurePolicy.FAIL_FAST:
            key, error = failure
            raise TransferAborted(key, error, counts=self.counts) from error

    # -- completion -------------------------------------------------------

    def wait(self) -> TransferCounts:
        """Barrier: block until every submitted item has finished.

        Raises:
            TransferAborted: If an item failed under FAIL_FAST
        """
        wait_futures(list(self._futures))
        self._raise_if_aborted()
        return self.counts

    def close(self, raise_on_failure: bool = True) -> TransferCounts:
        """Wait for all items, stop the reporter and return the final counts."""
        if self._closed:
            if raise_on_failure:
                self._raise_if_aborted()
            return self.counts
        self._closed = True

        if self._executor is not None:
            wait_futures(list(self._futures))
            self._executor.shutdown(wait=True)
            self._progress.put(_CLOSED)
            self._drained.wait()
            if self.reporter:
                self.reporter.on_transfer_complete(self.label, self.counts)

        if raise_on_failure:
            self._raise_if_aborted()
        return self.counts

    def _report_progress(self) -> None:
        finished = 0
        try:
            while True:
                event = self._progress.get()
                if event is _CLOSED:
                    break
                finished += 1
                if self.reporter:
                    with self._lock:
                        total = max(self.expected_items, self._submitted)
                    try:
                        self.reporter.on_progress(self.label, finished, total)
                    except Exception:
                        logger.exception("Progress reporter failed")
        finally:
            self._drained.set()
