"""
Filter state for the dashboard views.

A FilterState is an immutable value: every transition returns a new instance.
Category constraints are expressed as Filter variants (ALL, Specific, AnyOf)
rather than an "All" string; the string form only exists at the navigation
boundary (to_query_params / from_query_params).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Hashable, Iterable, Mapping, Optional, Tuple, Union

import pandas as pd

from collisions.utils import normalize_borough


ALL_LABEL = "All"


class Metric(str, Enum):
    INJURED = "injured"
    KILLED = "killed"

    @property
    def total_field(self) -> str:
        return f"total_{self.value}"

    @property
    def label(self) -> str:
        return "Injury" if self is Metric.INJURED else "Fatality"

    @classmethod
    def parse(cls, raw: Optional[str], default: "Metric" = None) -> "Metric":
        default = default or cls.INJURED
        if raw is None:
            return default
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return default


class Filter:
    """Constraint on one categorical column."""

    is_all = False

    def matches(self, column: pd.Series) -> pd.Series:
        raise NotImplementedError

    def accepts(self, value) -> bool:
        raise NotImplementedError


class _All(Filter):
    is_all = True

    def matches(self, column: pd.Series) -> pd.Series:
        return pd.Series(True, index=column.index)

    def accepts(self, value) -> bool:
        return True

    def __repr__(self) -> str:
        return "ALL"


ALL = _All()


@dataclass(frozen=True)
class Specific(Filter):
    value: str

    def matches(self, column: pd.Series) -> pd.Series:
        return column.eq(self.value).fillna(False).astype(bool)

    def accepts(self, value) -> bool:
        return value == self.value


@dataclass(frozen=True)
class AnyOf(Filter):
    """Multi-value selection; an empty selection constrains nothing."""
    values: Tuple[str, ...] = ()

    @property
    def is_all(self) -> bool:
        return not self.values

    def matches(self, column: pd.Series) -> pd.Series:
        if not self.values:
            return pd.Series(True, index=column.index)
        return column.isin(self.values).fillna(False).astype(bool)

    def accepts(self, value) -> bool:
        return not self.values or value in self.values


@dataclass(frozen=True)
class Selection:
    """
    Click/toggle selection: Unselected -> Selected(v) -> Unselected on re-selecting v,
    or Selected(v) -> Selected(w).
    """
    value: Optional[Hashable] = None

    @property
    def is_selected(self) -> bool:
        return self.value is not None

    def toggle(self, value: Optional[Hashable]) -> "Selection":
        if value is None or value == self.value:
            return UNSELECTED
        return Selection(value)

    def select(self, value: Optional[Hashable]) -> "Selection":
        return Selection(value)


UNSELECTED = Selection()

FilterLike = Union[Filter, str, None]

_YEAR_RE = re.compile(r"^\d{4}$")


def _year_filter(year: FilterLike) -> Filter:
    if isinstance(year, Filter):
        return year
    if year is None:
        return ALL
    year = str(year).strip()
    if year in ("", ALL_LABEL) or not _YEAR_RE.match(year):
        return ALL
    return Specific(year)


def _borough_filter(borough: Union[FilterLike, Iterable[str]]) -> Filter:
    if isinstance(borough, Filter):
        return borough
    if borough is None:
        return ALL
    if isinstance(borough, str):
        if borough.strip() in ("", ALL_LABEL):
            return ALL
        if "," in borough:
            return _borough_filter(borough.split(","))
        canonical = normalize_borough(borough)
        return Specific(canonical) if canonical else ALL
    picked = []
    for b in borough:
        canonical = normalize_borough(b)
        if canonical and canonical not in picked:
            picked.append(canonical)
    return AnyOf(tuple(picked)) if picked else ALL


@dataclass(frozen=True)
class FilterState:
    year: Filter = ALL
    borough: Filter = ALL
    vehicle: Selection = field(default=UNSELECTED)
    metric: Metric = Metric.INJURED

    def with_year(self, year: FilterLike) -> "FilterState":
        """Change the year; the vehicle selection is reset with it."""
        new_year = _year_filter(year)
        if new_year == self.year:
            return self
        return replace(self, year=new_year, vehicle=UNSELECTED)

    def with_borough(self, borough: Union[FilterLike, Iterable[str]]) -> "FilterState":
        return replace(self, borough=_borough_filter(borough))

    def with_metric(self, metric: Union[Metric, str]) -> "FilterState":
        return replace(self, metric=Metric.parse(metric) if not isinstance(metric, Metric) else metric)

    def toggle_vehicle(self, vehicle: Optional[str]) -> "FilterState":
        return replace(self, vehicle=self.vehicle.toggle(vehicle))

    def select_vehicle(self, vehicle: Optional[str]) -> "FilterState":
        return replace(self, vehicle=self.vehicle.select(vehicle))

    def to_query_params(self) -> dict:
        """Navigation parameters: year, type and borough as strings."""
        if isinstance(self.borough, Specific):
            borough = self.borough.value
        elif isinstance(self.borough, AnyOf) and self.borough.values:
            borough = ",".join(self.borough.values)
        else:
            borough = ALL_LABEL
        year = self.year.value if isinstance(self.year, Specific) else ALL_LABEL
        return {"year": year, "type": self.metric.value, "borough": borough}

    @classmethod
    def from_query_params(cls, params: Mapping[str, Union[str, Iterable[str]]]) -> "FilterState":
        """Inverse of to_query_params; unknown or missing values fall back to the defaults."""

        def first(key):
            value = params.get(key)
            if value is None or isinstance(value, str):
                return value
            value = list(value)
            return value[0] if value else None

        return cls(
            year=_year_filter(first("year")),
            borough=_borough_filter(first("borough")),
            metric=Metric.parse(first("type")),
        )


def apply_filters(
        df: pd.DataFrame,
        state: FilterState,
        year: bool = True,
        borough: bool = True,
        vehicle: bool = False,
        ) -> pd.DataFrame:
    """Rows of df passing the chosen parts of state. Always returns a new frame."""
    mask = pd.Series(True, index=df.index)
    if year and not state.year.is_all:
        mask &= state.year.matches(df["year"])
    if borough and not state.borough.is_all:
        mask &= state.borough.matches(df["borough"])
    if vehicle and state.vehicle.is_selected:
        mask &= df["vehicle"].eq(state.vehicle.value).fillna(False).astype(bool)
    return df.loc[mask].copy()
