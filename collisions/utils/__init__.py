from .boroughs import (
    BOROUGHS,
    BOROUGH_COLORS,
    MONTH_NAMES,
    VICTIM_CATEGORIES,
    VICTIM_LABELS,
    normalize_borough,
    month_name,
    month_number,
    victim_field,
)

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
