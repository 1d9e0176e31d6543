"""
Threaded computation over contiguous chunks of target cells.

The cell range ``[0, total_cells)`` is split into one contiguous chunk per
thread. Each worker writes only the result slots of its own chunk, so the
outcome does not depend on the number of threads or on scheduling. The
only shared mutable state is a progress counter, incremented under a lock
that is held for the increment alone.

Usage
-----
    from consmaplib.mapping._parallel import ParallelWeightCalculator, ProgressCounter

    def work(start, size, progress):
        for celli in range(start, start + size):
            ...  # fill slot celli
            progress.increment()

    progress = ProgressCounter(n_cells)
    ParallelWeightCalculator(work, progress).run(n_threads=4, total_cells=n_cells)
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def chunk_ranges(total_cells: int, n_threads: int) -> list[tuple[int, int]]:
    """Split ``[0, total_cells)`` into contiguous ``(start, size)`` chunks.

    All chunks have ``total_cells // n_threads`` cells except the last,
    which also takes the remainder. ``n_threads`` is clamped to
    ``[1, total_cells]`` so no chunk is empty (unless there are no cells).
    """
    if total_cells <= 0:
        return [(0, 0)]
    n = max(1, min(int(n_threads), int(total_cells)))
    size = total_cells // n
    chunks = [(i * size, size) for i in range(n - 1)]
    start = (n - 1) * size
    chunks.append((start, total_cells - start))
    return chunks


class ProgressCounter:
    """Processed-cell counter shared by all workers.

    Parameters
    ----------
    total : int
        Number of cells to process.
    report_every : float
        Log a progress message every time this fraction of ``total`` is
        passed. Zero or negative disables reporting.
    label : str
        Prefix of the progress messages.
    """

    def __init__(self, total: int, report_every: float = 0.1, label: str = 'Addressing'):
        self.total = int(total)
        self.label = label
        self._lock = threading.Lock()
        self._count = 0
        if report_every > 0.0 and self.total > 0:
            self._step = max(1, int(round(report_every * self.total)))
        else:
            self._step = 0

    @property
    def count(self) -> int:
        return self._count

    def increment(self) -> int:
        """Add one processed cell and return the new count."""
        with self._lock:
            self._count += 1
            count = self._count
        if self._step and (count % self._step == 0 or count == self.total):
            logger.info("%s: %d / %d cells (%.0f%%)", self.label, count,
                        self.total, 100.0 * count / self.total)
        return count


class ParallelWeightCalculator:
    """Runs a chunk worker on one thread per chunk and waits for all of them.

    Parameters
    ----------
    work_fn : callable
        ``work_fn(start, size, progress)`` processes cells
        ``start .. start + size - 1``, writing only their result slots, and
        calls ``progress.increment()`` after each cell.
    progress : ProgressCounter or None
        Shared counter; a silent one is created when None.
    """

    def __init__(self, work_fn: Callable, progress: Optional[ProgressCounter] = None):
        self.work_fn = work_fn
        self.progress = progress

    def run(self, n_threads: int, total_cells: int) -> None:
        """Process all cells; returns once every worker has finished.

        Raises
        ------
        Exception
            The first exception raised by any worker, after all have joined.
        """
        if self.progress is None:
            self.progress = ProgressCounter(total_cells, report_every=0.0)

        chunks = chunk_ranges(total_cells, n_threads)

        if len(chunks) == 1:
            start, size = chunks[0]
            self.work_fn(start, size, self.progress)
            return

        errors = [None] * len(chunks)

        def target(slot, start, size):
            try:
                self.work_fn(start, size, self.progress)
            except Exception as exc:  # re-raised in the calling thread
                errors[slot] = exc

        threads = [
            threading.Thread(
                target=target, args=(slot, start, size),
                name=f"consmap-worker-{slot}",
            )
            for slot, (start, size) in enumerate(chunks)
        ]
        logger.debug("Starting %d workers over %d cells", len(threads), total_cells)
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for exc in errors:
            if exc is not None:
                raise exc
