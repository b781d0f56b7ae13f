"""Victim-category breakdowns for the pie detail and the map marker popups."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

import pandas as pd

from collisions.filters import FilterState, Metric, apply_filters
from collisions.utils import VICTIM_CATEGORIES, VICTIM_LABELS, month_number, victim_field
from collisions.utils.logger_config import setup_logger

logger = setup_logger(__name__)

MARKER_MIN_SIZE = 2
MARKER_MAX_SIZE = 50


class Distribution(NamedTuple):
    pedestrian: float = 0
    cyclist: float = 0
    motorist: float = 0

    @property
    def is_empty(self) -> bool:
        # callers skip rendering when nothing was counted
        return not any(self)

    @staticmethod
    def labels() -> List[str]:
        return [VICTIM_LABELS[c] for c in VICTIM_CATEGORIES]


def _sum_categories(rows: pd.DataFrame, metric: Metric) -> Distribution:
    totals = []
    for category in VICTIM_CATEGORIES:
        col = victim_field(category, metric.value)
        value = rows[col].sum() if col in rows.columns else 0
        totals.append(value.item() if hasattr(value, 'item') else value)
    return Distribution(*totals)


def victim_distribution(
        df: pd.DataFrame,
        state: FilterState,
        month: Optional[Union[int, str]] = None,
        vehicle: Optional[str] = None,
        neighborhood: Optional[str] = None,
        ) -> Distribution:
    """
    Pedestrian / cyclist / motorist totals for one exact combination

    Args:
        df (pd.DataFrame): Normalized rows
        state (FilterState): Supplies the year and borough filters and the metric
        month (int | str): Month number or name (matrix cell)
        vehicle (str): Vehicle label; defaults to the vehicle selected in state
        neighborhood (str): Neighborhood name (map marker)

    Returns:
        Distribution: May be all zero; check is_empty before rendering
    """
    rows = apply_filters(df, state, year=True, borough=True)

    if month is not None:
        number = month_number(month) if isinstance(month, str) else int(month)
        rows = rows[rows['month'].eq(number).fillna(False).astype(bool)]

    if vehicle is None and state.vehicle.is_selected:
        vehicle = state.vehicle.value
    if vehicle is not None:
        rows = rows[rows['vehicle'].eq(vehicle).fillna(False).astype(bool)]

    if neighborhood is not None:
        rows = rows[rows['neighborhood'].eq(neighborhood).fillna(False).astype(bool)]

    return _sum_categories(rows, state.metric)


def marker_size(total_incidents: float) -> float:
    return min(max(total_incidents / 10, MARKER_MIN_SIZE), MARKER_MAX_SIZE)


@dataclass(frozen=True)
class Marker:
    neighborhood: str
    borough: str
    lat: float
    lon: float
    size: float
    total_incidents: int
    total_injured: int
    total_killed: int
    injured: Distribution
    killed: Distribution


def neighborhood_markers(
        df: pd.DataFrame,
        state: FilterState,
        centroids: Dict[str, Tuple[float, float]],
        ) -> List[Marker]:
    """
    One marker per neighborhood for the selected vehicle in a specific year.

    Nothing is placed while the year is ALL or no vehicle is selected.
    Neighborhoods missing from the centroid lookup are skipped.
    """
    if state.year.is_all or not state.vehicle.is_selected:
        return []

    rows = apply_filters(df, state, year=True, borough=True, vehicle=True)
    if rows.empty:
        return []

    counts = ['total_incidents', 'total_injured', 'total_killed'] + [
        victim_field(c, m.value) for m in Metric for c in VICTIM_CATEGORIES
    ]
    grouped = rows.groupby(['neighborhood', 'borough'], sort=False, observed=True)[counts].sum().reset_index()

    markers = []
    skipped = 0
    for record in grouped.to_dict('records'):
        position = centroids.get(record['neighborhood'])
        if position is None:
            skipped += 1
            continue
        markers.append(Marker(
            neighborhood=record['neighborhood'],
            borough=record['borough'],
            lat=position[0],
            lon=position[1],
            size=marker_size(record['total_incidents']),
            total_incidents=int(record['total_incidents']),
            total_injured=int(record['total_injured']),
            total_killed=int(record['total_killed']),
            injured=Distribution(*(record[victim_field(c, 'injured')] for c in VICTIM_CATEGORIES)),
            killed=Distribution(*(record[victim_field(c, 'killed')] for c in VICTIM_CATEGORIES)),
        ))
    if skipped:
        logger.debug(f'{skipped} neighborhoods without a centroid were not placed')
    return markers
