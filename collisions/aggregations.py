"""
Grouping & reduction of normalized collision rows into chart-ready tables.

Every table is rebuilt from the retained rows on each call; nothing here keeps
state between calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple

import pandas as pd

from collisions.filters import FilterState, Metric, apply_filters
from collisions.utils import BOROUGHS, month_name
from collisions.utils.exceptions import DataProcessingError
from collisions.utils.logger_config import setup_logger

logger = setup_logger(__name__)

GROUP_KEYS = ('year', 'month', 'time', 'borough', 'vehicle', 'neighborhood')

TOP_N_VEHICLES = 6


@dataclass(frozen=True)
class AggregateTable:
    """
    outer key -> inner key -> summed value, zero-filled over the full cross product.

    For a single-key grouping the only inner key is the reduced field name.
    """
    outer: str
    inner: Optional[str]
    field: str
    outer_keys: Tuple[Hashable, ...]
    inner_keys: Tuple[Hashable, ...]
    values: Tuple[Tuple[float, ...], ...]
    # rows left out because a group key was missing (e.g. an invalid month)
    excluded: int = 0

    def to_dict(self) -> Dict[Hashable, Dict[Hashable, float]]:
        return {
            o: dict(zip(self.inner_keys, row))
            for o, row in zip(self.outer_keys, self.values)
        }

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(list(self.values), index=list(self.outer_keys), columns=list(self.inner_keys))

    def series(self) -> Dict[Hashable, List[float]]:
        """inner key -> values aligned with outer_keys (one chart series per inner key)"""
        return {
            key: [row[i] for row in self.values]
            for i, key in enumerate(self.inner_keys)
        }

    def outer_totals(self) -> Dict[Hashable, float]:
        return {o: sum(row) for o, row in zip(self.outer_keys, self.values)}

    def cell(self, outer_key: Hashable, inner_key: Hashable) -> float:
        return self.values[self.outer_keys.index(outer_key)][self.inner_keys.index(inner_key)]

    def total(self) -> float:
        return sum(sum(row) for row in self.values)

    def max_value(self) -> float:
        return max((v for row in self.values for v in row), default=0)

    @property
    def is_empty(self) -> bool:
        return not self.outer_keys

    def map_outer(self, func: Callable[[Hashable], Hashable]) -> "AggregateTable":
        return AggregateTable(
            outer=self.outer,
            inner=self.inner,
            field=self.field,
            outer_keys=tuple(func(k) for k in self.outer_keys),
            inner_keys=self.inner_keys,
            values=self.values,
            excluded=self.excluded,
        )


def _check_key(key: Optional[str], df: pd.DataFrame) -> None:
    if key is None:
        return
    if key not in GROUP_KEYS:
        raise DataProcessingError(f'Cannot group by {key}. Expected one of {GROUP_KEYS}')
    if key not in df.columns:
        raise DataProcessingError(f'Group key {key} not present in rows')


def _plain(value):
    # numpy scalars -> python scalars so tables compare and serialize cleanly
    return value.item() if hasattr(value, 'item') else value


def _order_keys(key: str, column: pd.Series) -> Tuple[Hashable, ...]:
    seen = [_plain(v) for v in pd.unique(column)]
    if key == 'year':
        return tuple(sorted(seen, key=int))
    if key == 'month':
        return tuple(sorted(int(v) for v in seen))
    if key == 'borough':
        canonical = [b for b in BOROUGHS if b in seen]
        return tuple(canonical + [b for b in seen if b not in BOROUGHS])
    return tuple(seen)


def group_and_reduce(
        df: pd.DataFrame,
        outer: str,
        inner: Optional[str] = None,
        field: str = 'total_injured',
        inner_keys: Optional[Sequence[Hashable]] = None,
        ) -> AggregateTable:
    """
    Sum field per outer key (and inner key), zero-filling missing combinations

    Args:
        df (pd.DataFrame): Normalized (and already filtered) rows
        outer (str): Primary grouping key
        inner (str): Optional secondary grouping key
        field (str): Numeric column to sum
        inner_keys (Sequence): Fixed inner categories; replaces the observed ones

    Returns:
        AggregateTable: Outer keys observed in df, inner keys observed (or given)

    Raises:
        DataProcessingError: Unknown group key or missing column
    """
    _check_key(outer, df)
    _check_key(inner, df)
    if field not in df.columns:
        raise DataProcessingError(f'Cannot reduce missing column {field}')

    keys = [outer] + ([inner] if inner else [])
    working = df.dropna(subset=keys)
    excluded = len(df) - len(working)
    if excluded:
        logger.info(f'{excluded} rows without {keys} left out of {field} table')

    outer_order = _order_keys(outer, working[outer])
    if inner:
        inner_order = tuple(inner_keys) if inner_keys is not None else _order_keys(inner, working[inner])
    else:
        inner_order = (field,)

    if working.empty:
        grid = pd.DataFrame(0, index=list(outer_order), columns=list(inner_order))
    elif inner:
        sums = working.groupby(keys, sort=False, observed=True)[field].sum()
        grid = sums.unstack(inner, fill_value=0)
        grid = grid.reindex(index=list(outer_order), columns=list(inner_order), fill_value=0)
    else:
        sums = working.groupby(outer, sort=False, observed=True)[field].sum()
        grid = sums.reindex(list(outer_order), fill_value=0).to_frame(field)

    return AggregateTable(
        outer=outer,
        inner=inner,
        field=field,
        outer_keys=outer_order,
        inner_keys=inner_order,
        values=tuple(tuple(row) for row in grid.to_numpy().tolist()),
        excluded=excluded,
    )


def yearly_by_borough(df: pd.DataFrame, metric: Metric = Metric.INJURED) -> AggregateTable:
    """Line chart table: year x all five boroughs."""
    return group_and_reduce(df, 'year', 'borough', metric.total_field, inner_keys=BOROUGHS)


def monthly_by_vehicle(df: pd.DataFrame, state: FilterState) -> AggregateTable:
    """Matrix table: month name x vehicle over rows passing the year and borough filters."""
    filtered = apply_filters(df, state, year=True, borough=True)
    table = group_and_reduce(filtered, 'month', 'vehicle', state.metric.total_field)
    return table.map_outer(month_name)


def time_bucket_totals(df: pd.DataFrame, state: FilterState) -> AggregateTable:
    """Radar table: time bucket -> total over rows passing the year and borough-set filters."""
    filtered = apply_filters(df, state, year=True, borough=True)
    return group_and_reduce(filtered, 'time', None, state.metric.total_field)


def top_vehicle_types(df: pd.DataFrame, state: FilterState, n: int = TOP_N_VEHICLES) -> List[str]:
    """
    Most frequent vehicle labels (row counts) for the selected year.

    Ties keep first-seen order, so identical inputs always rank identically.
    """
    filtered = apply_filters(df, state, year=True, borough=False)
    labels = filtered['vehicle'].dropna() if 'vehicle' in filtered.columns else pd.Series(dtype='string')
    if labels.empty:
        return []
    counts = labels.groupby(labels.to_numpy(), sort=False).size()
    ranked = counts.sort_values(ascending=False, kind='stable')
    return [str(v) for v in ranked.index[:n]]
