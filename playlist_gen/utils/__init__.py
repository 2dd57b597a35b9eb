"""
Utility functions for playlist-gen.

    - run_in_parallel: Thread pool fan-out that fails the whole batch on
      the first worker error, once every worker has finished.

Usage:
    from playlist_gen.utils import run_in_parallel
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, TypeVar

from tqdm import tqdm

from playlist_gen.core.logger import get_logger

logger = get_logger(__name__)


# Type variables for generic parallel processing
T = TypeVar("T")
R = TypeVar("R")


def run_in_parallel(
    func: Callable[[T], R],
    items: Iterable[T],
    num_threads: int = 4,
    description: str = "Processing",
    show_progress: bool = False
) -> list[tuple[T, R]]:
    """
    Run a function over items using a thread pool.

    Args:
        func: Function to call for each item. Takes one argument.
        items: Iterable of items to process.
        num_threads: Number of parallel threads.
        description: Description for the progress bar.
        show_progress: Whether to show a tqdm progress bar.

    Returns:
        List of (item, result) tuples, in completion order.

    Raises:
        The first exception raised by a worker. It is re-raised only after
        every submitted call has finished, so work that already started
        (a playlist creation and its database row, for instance) is never
        abandoned halfway.
    """
    items_list = list(items)
    results: list[tuple[T, R]] = []
    first_error: BaseException | None = None

    if not items_list:
        return results

    with ThreadPoolExecutor(max_workers=num_threads) as executor:
        future_to_item = {
            executor.submit(func, item): item
            for item in items_list
        }

        iterator = as_completed(future_to_item)
        if show_progress:
            iterator = tqdm(
                iterator,
                total=len(items_list),
                desc=description,
                unit="item"
            )

        for future in iterator:
            item = future_to_item[future]
            error = future.exception()
            if error is None:
                results.append((item, future.result()))
            elif first_error is None:
                first_error = error
            else:
                logger.debug(f"{description}: additional failure for {item!r}: {error}")

    if first_error is not None:
        raise first_error
    return results
