"""
Utility functions shared by services
"""
import math
from datetime import datetime, timezone
from typing import List, Sequence, Tuple, TypeVar

T = TypeVar("T")

MAX_PAGE_SIZE = 100


def utc_now() -> datetime:
    """Timezone-aware current time; every stored timestamp is UTC"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def paginate(items: Sequence[T], page: int = 1, limit: int = 10) -> Tuple[List[T], int, int]:
    """
    Slice a list for page-based listings

    Returns:
        (page_items, total_pages, total_items)
    """
    page = max(int(page), 1)
    limit = min(max(int(limit), 1), MAX_PAGE_SIZE)
    total = len(items)
    pages = math.ceil(total / limit) if total else 0
    start = (page - 1) * limit
    return list(items[start:start + limit]), pages, total
