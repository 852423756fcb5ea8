"""Parallel referrer fetching for one level of the referrer tree.

The graph builder hands each tree level to BatchFetcher, which lists the
referrers of every node in the level concurrently on a ThreadPoolExecutor.

Unlike a best-effort batch, a level is all-or-nothing: the first failure
cancels the fetches that have not started and is re-raised once the
in-flight ones finish, so a partial tree is never returned and no worker
thread outlives the call. Results are returned in input order, independent
of completion order.

Example:
    >>> fetcher = BatchFetcher(max_workers=8)
    >>> children = fetcher.fetch_level(referrer_fetcher.fetch, level_digests)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait

import structlog

from refgraph.errors import DiscoveryCancelledError
from refgraph.schemas.oci import Descriptor

logger = structlog.get_logger(__name__)


DEFAULT_MAX_WORKERS = 8
"""Default number of worker threads for parallel referrer fetching."""

MAX_WORKERS_LIMIT = 20
"""Maximum allowed workers to prevent overwhelming registries."""

_POLL_INTERVAL_SECONDS = 0.1


class CancellationToken:
    """Cooperative cancellation flag for one discovery.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        """Return True once cancel() has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation of the discovery."""
        self._event.set()

    def raise_if_cancelled(self, reference: str = "") -> None:
        """Raise DiscoveryCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise DiscoveryCancelledError(reference)


class BatchFetcher:
    """Fetches the referrers of many subjects concurrently.

    Thread Safety:
        Each call to fetch_level() owns its executor; the fetch callable must
        be safe to call from several threads.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        *,
        cancellation: CancellationToken | None = None,
    ) -> None:
        """Initialize BatchFetcher.

        Args:
            max_workers: Maximum number of parallel workers, capped at
                MAX_WORKERS_LIMIT.
            cancellation: Optional token checked while waiting on fetches.
        """
        self._max_workers = max(1, min(max_workers, MAX_WORKERS_LIMIT))
        self._cancellation = cancellation or CancellationToken()

    @property
    def max_workers(self) -> int:
        """Return the maximum number of worker threads."""
        return self._max_workers

    @property
    def cancellation(self) -> CancellationToken:
        """Return the cancellation token observed by this fetcher."""
        return self._cancellation

    def fetch_level(
        self,
        fetch: Callable[[Descriptor], list[Descriptor]],
        subjects: Sequence[Descriptor],
    ) -> list[list[Descriptor]]:
        """Fetch referrers for every subject of one tree level.

        Args:
            fetch: Callable listing the direct referrers of one subject.
            subjects: Subjects in sibling order.

        Returns:
            One referrer list per subject, aligned with ``subjects``.

        Raises:
            DiscoveryCancelledError: If the token is cancelled while waiting.
                Raised after running fetches finish.
            Exception: The first error raised by any fetch.
        """
        self._cancellation.raise_if_cancelled()
        if not subjects:
            return []
        if len(subjects) == 1 or self._max_workers == 1:
            results = []
            for subject in subjects:
                self._cancellation.raise_if_cancelled()
                results.append(fetch(subject))
            return results

        log = logger.bind(subjects=len(subjects), max_workers=self._max_workers)
        log.debug("batch_fetch_started")

        executor = ThreadPoolExecutor(max_workers=self._max_workers)
        futures: list[Future[list[Descriptor]]] = [
            executor.submit(fetch, subject) for subject in subjects
        ]
        try:
            pending = set(futures)
            while pending:
                done, pending = wait(
                    pending, timeout=_POLL_INTERVAL_SECONDS, return_when=FIRST_EXCEPTION
                )
                for future in done:
                    error = future.exception()
                    if error is not None:
                        log.debug("batch_fetch_failed", error=str(error))
                        raise error
                self._cancellation.raise_if_cancelled()
        finally:
            # Queued fetches are dropped; running ones finish before we return.
            executor.shutdown(wait=True, cancel_futures=True)

        log.debug("batch_fetch_completed")
        return [future.result() for future in futures]


__all__ = [
    "DEFAULT_MAX_WORKERS",
    "MAX_WORKERS_LIMIT",
    "BatchFetcher",
    "CancellationToken",
]
