"""Process-pool execution engine for independent simulation trials.

Trials carry no ordering dependency, so they are split into chunks and
mapped over a ``ProcessPoolExecutor``. Read-only inputs (the trial context
holding the synthesized curve) travel with each chunk as keyword arguments
of the work function. Results are returned in work-item order regardless of
completion order, so serial and parallel runs produce identical output.

Features:
    - Chunk sizing based on CPU resources and workload
    - tqdm progress bar and an optional progress callback
    - Cooperative cancellation that keeps completed chunks
    - Errors raised by a work item propagate to the caller

Example:
    >>> from noncat_sim.parallel_executor import ParallelExecutor
    >>> executor = ParallelExecutor(n_workers=4)
    >>> trials = executor.map_chunks(
    ...     work_function=simulate_trial,
    ...     work_items=range(1, 10_001),
    ...     shared_data={"context": context},
    ... )
"""

from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
import logging
import multiprocessing as mp
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import psutil
from tqdm import tqdm

logger = logging.getLogger(__name__)


@dataclass
class CPUProfile:
    """CPU and memory resources used for worker and chunk decisions."""

    n_cores: int
    n_threads: int
    available_memory: int

    @classmethod
    def detect(cls) -> "CPUProfile":
        """Detect current CPU profile.

        Returns:
            CPUProfile: Current system CPU profile
        """
        return cls(
            n_cores=psutil.cpu_count(logical=False) or 1,
            n_threads=psutil.cpu_count(logical=True) or 1,
            available_memory=psutil.virtual_memory().available,
        )


@dataclass
class ChunkingStrategy:
    """Chunking strategy for parallel workloads."""

    initial_chunk_size: int = 1000
    min_chunk_size: int = 50
    max_chunk_size: int = 10000
    target_chunks_per_worker: int = 4

    def calculate_optimal_chunk_size(self, n_items: int, n_workers: int) -> int:
        """Calculate a chunk size that keeps every worker busy.

        Args:
            n_items: Total number of work items
            n_workers: Number of parallel workers

        Returns:
            int: Chunk size, never larger than ``initial_chunk_size``
        """
        balanced = n_items // max(1, n_workers * self.target_chunks_per_worker)
        size = min(self.initial_chunk_size, max(self.min_chunk_size, balanced))
        return max(1, min(size, self.max_chunk_size))


@dataclass
class PerformanceMetrics:
    """Performance metrics of the last parallel run."""

    total_time: float = 0.0
    computation_time: float = 0.0
    total_items: int = 0
    completed_items: int = 0
    n_chunks: int = 0
    memory_peak: int = 0
    items_per_second: float = 0.0

    def summary(self) -> str:
        """Generate performance summary.

        Returns:
            str: Formatted performance summary
        """
        return (
            f"Performance Summary\n"
            f"{'=' * 50}\n"
            f"Total Time: {self.total_time:.2f}s\n"
            f"Computation: {self.computation_time:.2f}s\n"
            f"Items: {self.completed_items}/{self.total_items} in {self.n_chunks} chunks\n"
            f"Throughput: {self.items_per_second:.0f} items/s\n"
            f"Peak Memory: {self.memory_peak / 1024**2:.1f} MB\n"
        )


class ParallelExecutor:
    """Chunked process-pool executor for embarrassingly parallel trials.

    Results are re-ordered to match the work items. When a cancel event
    is set, pending chunks are abandoned, results of completed chunks are
    returned and :attr:`cancelled` is set.
    """

    def __init__(
        self,
        n_workers: Optional[int] = None,
        chunk_size: Optional[int] = None,
        chunking_strategy: Optional[ChunkingStrategy] = None,
    ):
        """Initialize parallel executor.

        Args:
            n_workers: Number of parallel workers (None for auto)
            chunk_size: Fixed items per chunk (None to derive from the
                chunking strategy)
            chunking_strategy: Strategy for work distribution
        """
        self.cpu_profile = CPUProfile.detect()

        if n_workers is None:
            # Leave one core free for the parent process
            n_workers = max(1, min(self.cpu_profile.n_cores, self.cpu_profile.n_cores - 1))
        self.n_workers = n_workers
        self.chunk_size = chunk_size
        self.chunking_strategy = chunking_strategy or ChunkingStrategy()
        self.performance_metrics = PerformanceMetrics()
        self.cancelled = False

    def map_chunks(
        self,
        work_function: Callable,
        work_items: Union[Sequence, range],
        shared_data: Optional[Dict[str, Any]] = None,
        progress_bar: bool = True,
        progress_callback: Optional[Callable[[int, int, float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Any]:
        """Map a work function over the items in chunks on the process pool.

        Args:
            work_function: Picklable module-level function called as
                ``work_function(item, **shared_data)``
            work_items: Sequence or range of work items
            shared_data: Read-only keyword arguments passed to every call
            progress_bar: Show progress bar
            progress_callback: Optional callback invoked with
                ``(completed, total, elapsed_seconds)`` after each chunk.
            cancel_event: Optional :class:`threading.Event`; when set the
                executor stops collecting chunks and returns partial results.

        Returns:
            List[Any]: One result per completed work item, in work-item order
        """
        start_time = time.time()
        self.cancelled = False

        work_items = list(work_items)
        n_items = len(work_items)
        chunk_size = self.chunk_size or self.chunking_strategy.calculate_optimal_chunk_size(
            n_items, self.n_workers
        )
        chunks = self._create_chunks(work_items, chunk_size)

        comp_start = time.time()
        results = self._execute_parallel(
            work_function,
            chunks,
            shared_data or {},
            progress_bar,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
            total_items=n_items,
        )
        self.performance_metrics.computation_time = time.time() - comp_start

        metrics = self.performance_metrics
        metrics.total_time = time.time() - start_time
        metrics.total_items = n_items
        metrics.n_chunks = len(chunks)
        metrics.items_per_second = (
            metrics.completed_items / metrics.total_time if metrics.total_time > 0 else 0.0
        )
        metrics.memory_peak = max(metrics.memory_peak, psutil.Process().memory_info().rss)

        logger.debug(
            "Parallel run: %d/%d items, %d chunks, %d workers, %.2fs",
            metrics.completed_items,
            n_items,
            len(chunks),
            self.n_workers,
            metrics.total_time,
        )
        return results

    def _create_chunks(self, work_items: List, chunk_size: int) -> List[Tuple[int, int, List]]:
        """Create work chunks.

        Args:
            work_items: Items to chunk
            chunk_size: Size of each chunk

        Returns:
            List[Tuple[int, int, List]]: List of (start_idx, end_idx, items)
        """
        chunks = []
        n_items = len(work_items)

        for i in range(0, n_items, chunk_size):
            end = min(i + chunk_size, n_items)
            chunks.append((i, end, work_items[i:end]))

        return chunks

    def _execute_parallel(
        self,
        work_function: Callable,
        chunks: List[Tuple[int, int, List]],
        shared_data: Dict[str, Any],
        progress_bar: bool,
        progress_callback: Optional[Callable[[int, int, float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        total_items: int = 0,
    ) -> List[Any]:
        """Execute chunks on the process pool.

        Args:
            work_function: Function to execute
            chunks: Work chunks
            shared_data: Keyword arguments for every call
            progress_bar: Show progress
            progress_callback: Optional callback with (completed, total, elapsed)
            cancel_event: Optional cancel event
            total_items: Total number of work items (for progress reporting)

        Returns:
            List[Any]: Results of all completed chunks in work-item order
        """
        results = []
        exec_start = time.time()
        completed_items = 0

        with ProcessPoolExecutor(max_workers=self.n_workers, mp_context=mp.get_context()) as executor:
            futures = {
                executor.submit(_execute_chunk, work_function, chunk, shared_data): chunk
                for chunk in chunks
            }

            pbar = tqdm(total=len(chunks), desc="Processing chunks") if progress_bar else None

            for future in as_completed(futures):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Cancellation requested during parallel execution")
                    for f in futures:
                        f.cancel()
                    self.cancelled = True
                    break

                chunk_info = futures[future]
                results.append((chunk_info[0], future.result()))
                completed_items += chunk_info[1] - chunk_info[0]

                if pbar is not None:
                    pbar.update(1)

                if progress_callback is not None and total_items > 0:
                    progress_callback(completed_items, total_items, time.time() - exec_start)

            if pbar is not None:
                pbar.close()

        self.performance_metrics.completed_items = completed_items

        results.sort(key=lambda x: x[0])
        flattened_results: List[Any] = []
        for _, chunk_results in results:
            flattened_results.extend(chunk_results)
        return flattened_results


def _execute_chunk(
    work_function: Callable,
    chunk: Tuple[int, int, List],
    shared_data: Dict[str, Any],
) -> List[Any]:
    """Execute a chunk of work (runs in worker process).

    Args:
        work_function: Function to execute
        chunk: Work chunk (start_idx, end_idx, items)
        shared_data: Keyword arguments for every call

    Returns:
        List[Any]: One result per item
    """
    _start_idx, _end_idx, items = chunk
    return [work_function(item, **shared_data) for item in items]

