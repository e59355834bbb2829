"""Normalization functions for loosely-typed score and ledger values.

Values arrive from JSON exports, hand-edited store documents and UI input,
so every function accepts Any and returns the appropriate type or None.
None of these functions raise.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any

_LEADING_YEAR = re.compile(r"^(\d{4})")

SCORING_MODES = ("stableford", "strokeplay", "both")
SCORE_TYPES = ("stableford", "strokeplay")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: Any) -> str | None:
    """Strip leading/trailing whitespace; treat empty or non-string as None.

    Integers are accepted and stringified so numeric ids survive JSON.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if not isinstance(value, str):
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: parse_number
# ---------------------------------------------------------------------------

def parse_number(value: Any) -> int | float | None:
    """Return a finite int/float, or None.

    Booleans are rejected.  Numeric strings are parsed; integral floats are
    returned as int so that 25.0 points compares and prints as 25.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        num = value
    elif isinstance(value, str):
        v = value.strip()
        if not v:
            return None
        try:
            num = float(v)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(num):
        return None
    if num.is_integer():
        return int(num)
    return num


# ---------------------------------------------------------------------------
# Rule 3: parse_position
# ---------------------------------------------------------------------------

def parse_position(value: Any) -> int | None:
    """Return a 1-based integer position, or None when not an integer >= 1."""
    num = parse_number(value)
    if not isinstance(num, int) or num < 1:
        return None
    return num


# ---------------------------------------------------------------------------
# Rule 4: event_year
# ---------------------------------------------------------------------------

def event_year(value: Any) -> int | None:
    """Extract the calendar year of an event date.

    Accepts date/datetime objects, ISO strings, and anything else that starts
    with a plausible four-digit year (e.g. "2024/06/01", "2024-6-1 tee 9am").
    Returns None when no year in (1900, 2100) can be recovered.
    """
    if isinstance(value, (date, datetime)):
        return value.year
    v = trim(value)
    if v is None:
        return None
    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).year
    except ValueError:
        pass
    m = _LEADING_YEAR.match(v)
    if not m:
        return None
    year = int(m.group(1))
    if 1900 < year < 2100:
        return year
    return None


# ---------------------------------------------------------------------------
# Rule 5: scoring mode / score type
# ---------------------------------------------------------------------------

def normalize_scoring_mode(value: Any) -> str:
    """Map an event format ("Stableford", "Strokeplay", "Both", ...) to a mode.

    Unrecognised formats rank as strokeplay.
    """
    v = trim(value)
    if v is None:
        return "strokeplay"
    v = re.sub(r"[\s_-]+", "", v.lower())
    if v == "stroke":
        return "strokeplay"
    if v in SCORING_MODES:
        return v
    return "strokeplay"


def normalize_score_type(value: Any) -> str:
    """Return "stableford" or "strokeplay"; unrecognised values → "stableford"."""
    v = trim(value)
    if v is not None and v.lower() in SCORE_TYPES:
        return v.lower()
    return "stableford"


def parse_flag(value: Any) -> bool:
    """Truthy only for True, 1, or "true"/"yes"/"1" strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    v = trim(value)
    return v is not None and v.lower() in ("true", "yes", "1")
