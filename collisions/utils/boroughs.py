"""Canonical NYC labels: boroughs, months and victim categories."""

from __future__ import annotations

import calendar
from typing import Dict, Optional, Tuple


# Display order used by every borough-keyed chart series.
BOROUGHS: Tuple[str, ...] = (
    "Manhattan",
    "Brooklyn",
    "Queens",
    "Bronx",
    "Staten Island",
)

BOROUGH_COLORS: Dict[str, str] = {
    "Manhattan": "#47BDEF",
    "Brooklyn": "#47D79A",
    "Queens": "#FFBA00",
    "Bronx": "#660099",
    "Staten Island": "#883F1C",
}

_BOROUGH_LOOKUP: Dict[str, str] = {b.lower(): b for b in BOROUGHS}

MONTH_NAMES: Tuple[str, ...] = tuple(calendar.month_name[1:])

VICTIM_CATEGORIES: Tuple[str, ...] = ("pedestrian", "cyclist", "motorist")

VICTIM_LABELS: Dict[str, str] = {
    "pedestrian": "Pedestrians",
    "cyclist": "Cyclists",
    "motorist": "Motorists",
}


def normalize_borough(label: Optional[str]) -> Optional[str]:
    """Map a raw borough label to its canonical spelling, or None if it is not one of the five."""
    if label is None or not isinstance(label, str):
        return None
    key = " ".join(label.split()).lower()
    return _BOROUGH_LOOKUP.get(key)


def month_name(month: int) -> str:
    """Return the English month name for 1-12."""
    if not 1 <= int(month) <= 12:
        raise ValueError(f"Month out of range: {month}")
    return MONTH_NAMES[int(month) - 1]


def month_number(name: str) -> int:
    """Inverse of month_name; accepts any casing."""
    lookup = {m.lower(): i for i, m in enumerate(MONTH_NAMES, start=1)}
    try:
        return lookup[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown month name: {name}") from None


def victim_field(category: str, metric: str) -> str:
    """Column holding the count for a victim category, e.g. ('cyclist', 'killed') -> 'cyclist_killed'."""
    if category not in VICTIM_CATEGORIES:
        raise ValueError(f"Unknown victim category: {category}")
    return f"{category}_{metric}"


__all__ = [
    "BOROUGHS",
    "BOROUGH_COLORS",
    "MONTH_NAMES",
    "VICTIM_CATEGORIES",
    "VICTIM_LABELS",
    "normalize_borough",
    "month_name",
    "month_number",
    "victim_field",
]
