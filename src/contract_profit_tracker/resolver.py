"""
Map a calendar date to the block range covering its 24-hour window.
"""

import time
import logging
from datetime import datetime, timezone
from typing import Optional

from .errors import ValidationError, ResolutionError
from .models import TimeWindow, BlockRange, SECONDS_PER_DAY
from .utils import validate_date

logger = logging.getLogger(__name__)


def day_window(date: str, anchor_hour: int) -> TimeWindow:
    """Build the [start, start + 24h) window for a YYYY-MM-DD date, opening at anchor_hour UTC."""
    if not validate_date(date):
        raise ValidationError(
            f"Invalid date {date!r}. Please use YYYY-MM-DD format")
    if not 0 <= anchor_hour <= 23:
        raise ValidationError(
            f"Anchor hour must be between 0 and 23, got {anchor_hour}")

    year, month, day = (int(part) for part in date.split("-"))
    start = datetime(year, month, day, anchor_hour, 0, 0, tzinfo=timezone.utc)
    start_timestamp = int(start.timestamp())
    return TimeWindow(start_timestamp, start_timestamp + SECONDS_PER_DAY)


def resolve_block_range(client, window: TimeWindow,
                        now: Optional[float] = None) -> BlockRange:
    """
    Resolve a time window to blocks using the ledger client.

    The start block is the first block at or after the window start. The end
    block is the last block at or before the window end, or the chain head
    when the window ends in the future. Raises ResolutionError on any failed
    lookup.
    """
    if now is None:
        now = time.time()

    try:
        latest_block = client.get_latest_block()
        start_block = client.get_block_by_timestamp(
            window.start_timestamp, "after")
        if window.end_timestamp > now:
            end_block = latest_block
        else:
            end_block = client.get_block_by_timestamp(
                window.end_timestamp, "before")
    except ResolutionError:
        raise
    except Exception as e:
        raise ResolutionError(
            f"Could not resolve blocks for window "
            f"{window.start_timestamp}-{window.end_timestamp}: {e}") from e

    if end_block > latest_block:
        logger.warning(
            f"End block {end_block} is beyond latest block {latest_block}, using latest block")
        end_block = latest_block

    if start_block > end_block:
        raise ResolutionError(
            f"Start block {start_block} is after end block {end_block}; "
            f"the window has not started yet")

    logger.info(f"Block range: {start_block} to {end_block}")
    return BlockRange(start_block, end_block)
