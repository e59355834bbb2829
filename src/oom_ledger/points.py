"""oom_ledger.points

Order-of-Merit points awarded by finishing position (F1-style).
This table is the only place the points scale is defined.
"""

from __future__ import annotations

from typing import Any

POINTS_BY_POSITION: dict[int, int] = {
    1: 25,
    2: 18,
    3: 15,
    4: 12,
    5: 10,
    6: 8,
    7: 6,
    8: 4,
    9: 2,
    10: 1,
}


def points_for_position(position: Any) -> int:
    """Return OOM points for a finishing position; 0 outside 1..10."""
    if isinstance(position, bool) or not isinstance(position, int):
        return 0
    return POINTS_BY_POSITION.get(position, 0)
