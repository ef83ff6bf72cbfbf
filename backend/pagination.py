from __future__ import annotations

import math

MAX_LIMIT = 100


def clamp_window(page: int, limit: int, max_limit: int = MAX_LIMIT) -> tuple[int, int, int]:
    """Return ``(page, limit, skip)`` with page >= 1 and 1 <= limit <= max_limit."""
    page = max(1, int(page))
    limit = max(1, min(int(limit), max_limit))
    return page, limit, (page - 1) * limit


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
