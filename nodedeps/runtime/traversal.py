"""Bounded concurrent traversal over a completed dependency map.

Each record gets one task on a fixed-size thread pool. A task runs the
caller's filter and reports whether the record is kept. A failing task only
drops its own record; the pool always drains and every error is reported
together afterwards.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, List, Mapping, Optional, TypeVar, Union

from nodedeps.errors import TraversalError

logger = logging.getLogger("nodedeps.runtime.traversal")

R = TypeVar("R")

FilterFunc = Callable[[R], bool]


@dataclass
class TaskResult(Generic[R]):
    """Outcome of filtering one record.

    Attributes:
        record: The record the task ran on.
        kept: Whether the filter kept it.
        error: Exception raised by the filter, if any.
        execution_time: Time taken in seconds.
    """

    record: R
    kept: bool = False
    error: Optional[BaseException] = None
    execution_time: float = 0.0


def _run_filter(filter_fn: Optional[FilterFunc], record: R) -> TaskResult[R]:
    start = time.time()
    if filter_fn is None:
        return TaskResult(record=record, kept=True)
    try:
        kept = bool(filter_fn(record))
    except Exception as exc:  # noqa: BLE001 - reported through TraversalError
        return TaskResult(record=record, error=exc, execution_time=time.time() - start)
    return TaskResult(record=record, kept=kept, execution_time=time.time() - start)


def run_tasks(
    records: Iterable[R],
    filter_fn: Optional[FilterFunc],
    threads: int = 3,
) -> List[TaskResult[R]]:
    """Run the filter over every record and return results in submission order."""
    if threads < 1:
        raise ValueError(f"threads must be at least 1, got {threads}")
    items = list(records)
    if not items:
        return []
    with ThreadPoolExecutor(max_workers=threads, thread_name_prefix="traverse") as executor:
        futures = [executor.submit(_run_filter, filter_fn, record) for record in items]
        return [future.result() for future in futures]


def traverse(
    records: Union[Mapping[str, R], Iterable[R]],
    filter_fn: Optional[FilterFunc] = None,
    threads: int = 3,
) -> List[R]:
    """Apply ``filter_fn`` to every record on a pool of ``threads`` workers.

    Args:
        records: Dependency map (values are traversed) or any iterable.
        filter_fn: Returns True to keep a record. None keeps everything.
        threads: Worker count.

    Returns:
        List[R]: Kept records. Callers must not rely on the order.

    Raises:
        TraversalError: After the pool drained, if any filter raised. Its
            ``kept`` attribute holds the records kept by the other tasks and
            ``errors`` every exception in submission order.
    """
    items = records.values() if isinstance(records, Mapping) else records
    results = run_tasks(items, filter_fn, threads)

    kept = [r.record for r in results if r.kept]
    errors = [r.error for r in results if r.error is not None]
    logger.debug(
        "Traversal completed: %d records, %d kept, %d failed", len(results), len(kept), len(errors)
    )
    if errors:
        raise TraversalError(errors, kept) from errors[0]
    return kept
