"""
Bounded fan-out
===============
Thread pool helper for parallel upstream fetches.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Sequence, TypeVar

T = TypeVar('T')
R = TypeVar('R')


def run_with_concurrency(items: Sequence[T], max_workers: int, worker: Callable[[T], R]) -> List[R]:
    """
    Run worker over items on at most max_workers threads.

    Args:
        items: Work items
        max_workers: Pool size, at least 1
        worker: Called once per item

    Returns:
        Results in input order. The first worker exception is re-raised.

    Raises:
        ValueError: if max_workers < 1
    """
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    items = list(items)
    if not items:
        return []

    results: List[R] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as executor:
        future_to_index = {executor.submit(worker, item): index for index, item in enumerate(items)}

        for future in as_completed(future_to_index):
            results[future_to_index[future]] = future.result()

    return results
