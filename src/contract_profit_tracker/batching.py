"""
Block-window batching and bounded-concurrency fan-out.

Etherscan caps each listing call (10,000 rows for txlist, 1,000 for getLogs),
so long block ranges are walked in fixed-size windows.
"""

from typing import Callable, Iterator, List, Sequence, Tuple, TypeVar
from concurrent.futures import ThreadPoolExecutor, as_completed
import logging

from .errors import FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def block_windows(start_block: int, end_block: int, step: int) -> Iterator[Tuple[int, int]]:
    """
    Yield inclusive (low, high) windows covering [start_block, end_block].

    Each window's upper bound is min(low + step, end_block) and the next window
    starts one block after it, so windows never overlap.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    low = start_block
    while low <= end_block:
        high = min(low + step, end_block)
        yield low, high
        low = high + 1


def fetch_windows(fetch: Callable[[int, int], List[T]], start_block: int,
                  end_block: int, step: int, description: str = "records") -> List[T]:
    """
    Call `fetch(low, high)` for every window in order and concatenate results.

    A window whose fetch raises FetchError contributes nothing; the walk goes on.
    """
    results: List[T] = []
    failed = 0

    for low, high in block_windows(start_block, end_block, step):
        logger.info(f"Fetching {description} from {low} to {high}")
        try:
            batch = fetch(low, high)
        except FetchError as e:
            failed += 1
            logger.warning(f"Skipping window [{low}, {high}]: {e}")
            continue
        logger.info(f"Got {len(batch)} {description}")
        results.extend(batch)

    if failed:
        logger.warning(
            f"{failed} window(s) of [{start_block}, {end_block}] failed; "
            f"{description} may be incomplete")
    return results


def fan_out(items: Sequence[T], task: Callable[[T], R], concurrency: int,
            default: R) -> List[R]:
    """
    Run `task` over items with at most `concurrency` calls in flight.

    Results line up with `items` by position. A failing item is logged and
    replaced by `default`; it never stops the others.
    """
    if concurrency <= 0:
        raise ValueError(f"concurrency must be positive, got {concurrency}")

    results: List[R] = [default] * len(items)
    if not items:
        return results

    with ThreadPoolExecutor(max_workers=min(concurrency, len(items))) as executor:
        future_map = {executor.submit(task, item): index
                      for index, item in enumerate(items)}
        for future in as_completed(future_map):
            index = future_map[future]
            try:
                results[index] = future.result()
            except Exception as e:
                logger.warning(f"Task for {items[index]!r} failed: {e}")

    return results
