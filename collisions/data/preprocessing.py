"""
Normalization of raw collision tables.

Each dataset variant has an explicit schema. A raw frame (all columns read as
strings) is checked against its schema once, then:

- headers are standardized (`Pedestrians Injured` -> `pedestrian_injured`)
- a canonical year is derived (explicit `year` column, else the leading 4-digit
  segment of `date`, else the year of the parsed date)
- the borough is matched case-insensitively against the five boroughs
- count columns are coerced to numbers (missing / non-numeric -> 0)
- blank vehicle, time or neighborhood labels become `Unspecified` so the row still
  lands in every table
- rows without a year or borough are dropped and counted in the report
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

import pandas as pd

from collisions.utils import normalize_borough
from collisions.utils.exceptions import DataProcessingError, MalformedRowError
from collisions.utils.logger_config import setup_logger

# === Configs ===
logger = setup_logger(__name__)
# === END Configs ===


COLUMN_ALIASES: Dict[str, str] = {
    'pedestrians_injured': 'pedestrian_injured',
    'pedestrians_killed': 'pedestrian_killed',
    'cyclists_injured': 'cyclist_injured',
    'cyclists_killed': 'cyclist_killed',
    'motorists_injured': 'motorist_injured',
    'motorists_killed': 'motorist_killed',
    'number_of_persons_injured': 'total_injured',
    'number_of_persons_killed': 'total_killed',
    'time_bin': 'time',
    'crash_date': 'date',
    'vehicle_type': 'vehicle',
}

COUNT_COLUMNS: Tuple[str, ...] = (
    'total_incidents',
    'total_injured',
    'total_killed',
    'pedestrian_injured',
    'pedestrian_killed',
    'cyclist_injured',
    'cyclist_killed',
    'motorist_injured',
    'motorist_killed',
)

TEXT_COLUMNS: Tuple[str, ...] = ('date', 'neighborhood', 'vehicle', 'time')

# Grouping labels; a blank one is kept under UNSPECIFIED instead of NA
LABEL_COLUMNS: Tuple[str, ...] = ('neighborhood', 'vehicle', 'time')
UNSPECIFIED = 'Unspecified'

_CATEGORY_COUNTS = COUNT_COLUMNS[3:]


@dataclass(frozen=True)
class DatasetSchema:
    """Columns a dataset variant must carry and the counts it is expected to provide."""
    name: str
    required: Tuple[str, ...]
    counts: Tuple[str, ...]


SCHEMAS: Dict[str, DatasetSchema] = {
    'accidents': DatasetSchema('accidents', ('borough',), ('total_injured', 'total_killed')),
    'matrix': DatasetSchema('matrix', ('month', 'borough', 'vehicle'), ('total_injured', 'total_killed') + _CATEGORY_COUNTS),
    'spider': DatasetSchema('spider', ('borough', 'time'), ('total_injured', 'total_killed')),
    'geomap': DatasetSchema(
        'geomap',
        ('borough', 'neighborhood', 'vehicle'),
        ('total_incidents', 'total_injured', 'total_killed') + _CATEGORY_COUNTS,
    ),
}


@dataclass(frozen=True)
class NormalizationReport:
    variant: str
    rows_in: int
    rows_kept: int
    missing_year: int
    missing_borough: int
    coerced_values: Dict[str, int] = field(default_factory=dict)
    unlabeled_values: Dict[str, int] = field(default_factory=dict)

    @property
    def rows_dropped(self) -> int:
        return self.rows_in - self.rows_kept

    def as_record(self) -> Dict[str, int]:
        record = {
            'variant': self.variant,
            'rows_in': self.rows_in,
            'rows_kept': self.rows_kept,
            'rows_dropped': self.rows_dropped,
            'missing_year': self.missing_year,
            'missing_borough': self.missing_borough,
            'coerced_values': sum(self.coerced_values.values()),
            'unlabeled_values': sum(self.unlabeled_values.values()),
        }
        return record


def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lower-case and underscore headers, then apply known aliases"""
    renamed = (
        df.columns.astype(str)
        .str.strip()
        .str.lower()
        .str.replace(r'[\s\-]+', '_', regex=True)
    )
    df = df.copy()
    df.columns = [COLUMN_ALIASES.get(c, c) for c in renamed]
    return df


def _derive_year(df: pd.DataFrame) -> pd.Series:
    year = pd.Series(pd.NA, index=df.index, dtype='string')
    if 'year' in df.columns:
        explicit = df['year'].astype('string').str.strip().str.extract(r'^(\d{4})(?:\.0+)?$')[0]
        year = year.fillna(explicit)
    if 'date' in df.columns:
        dates = df['date'].astype('string')
        from_date = dates.str.extract(r'^\s*(\d{4})(?!\d)')[0]
        unparsed = from_date.isna() & dates.notna()
        if unparsed.any():
            parsed = pd.to_datetime(dates[unparsed], errors='coerce', format='mixed')
            from_date.loc[unparsed] = parsed.dt.year.astype('Int64').astype('string')
        year = year.fillna(from_date)
    return year


def _derive_month(df: pd.DataFrame) -> pd.Series:
    if 'month' in df.columns:
        month = pd.to_numeric(df['month'], errors='coerce')
    elif 'date' in df.columns:
        month = pd.to_datetime(df['date'], errors='coerce', format='mixed').dt.month
    else:
        return pd.Series(pd.NA, index=df.index, dtype='Int64')
    valid = month.between(1, 12) & (month % 1 == 0)
    return month.where(valid).astype('Int64')


def _coerce_counts(df: pd.DataFrame, columns) -> Tuple[pd.DataFrame, Dict[str, int]]:
    coerced: Dict[str, int] = {}
    out = pd.DataFrame(index=df.index)
    for col in columns:
        if col not in df.columns:
            out[col] = 0
            continue
        raw = df[col]
        values = pd.to_numeric(raw, errors='coerce')
        present = (raw.notna() & raw.astype('string').str.strip().ne('')).fillna(False)
        bad = int((present & values.isna()).sum())
        if bad:
            coerced[col] = bad
        values = values.fillna(0)
        if (values % 1 == 0).all():
            values = values.astype('int64')
        out[col] = values
    return out, coerced


def normalize_rows(df: pd.DataFrame, variant: str, strict: bool = False) -> Tuple[pd.DataFrame, NormalizationReport]:
    """
    Validate a raw table against its schema and produce canonical rows

    Args:
        df (pd.DataFrame): Raw table as parsed from CSV
        variant (str): Schema name, one of SCHEMAS
        strict (bool): Raise instead of dropping rows without year or borough

    Returns:
        Tuple[pd.DataFrame, NormalizationReport]: Normalized rows (fresh frame) and data quality counts

    Raises:
        DataProcessingError: Unknown variant, or the table lacks a required column
        MalformedRowError: In strict mode, when any row has no derivable year or borough
    """
    try:
        schema = SCHEMAS[variant]
    except KeyError:
        raise DataProcessingError(f'Unknown dataset variant {variant}. Expected one of {sorted(SCHEMAS)}')

    df = standardize_columns(df)

    missing_cols = [c for c in schema.required if c not in df.columns]
    if 'year' not in df.columns and 'date' not in df.columns:
        missing_cols.append('year|date')
    if missing_cols:
        logger.error(f'{variant}: missing required columns {missing_cols}')
        raise DataProcessingError(f'Missing required columns for {variant}: {missing_cols}')

    absent_counts = [c for c in schema.counts if c not in df.columns]
    if absent_counts:
        logger.debug(f'{variant}: count columns {absent_counts} not present, defaulting to 0')

    year = _derive_year(df)
    borough = df['borough'].map(normalize_borough).astype('string')

    no_year = year.isna()
    no_borough = borough.isna()
    invalid = no_year | no_borough

    if strict and invalid.any():
        bad_rows = df.index[invalid].tolist()
        raise MalformedRowError(
            f'{variant}: {len(bad_rows)} rows without a derivable year or borough',
            row_indices=bad_rows,
        )

    counts, coerced = _coerce_counts(df, COUNT_COLUMNS)

    out = pd.DataFrame({'year': year, 'month': _derive_month(df), 'borough': borough}, index=df.index)
    unlabeled = {}
    for col in TEXT_COLUMNS:
        if col in df.columns:
            text = df[col].astype('string').str.strip()
            text = text.mask(text.eq('').fillna(False))
            if col in LABEL_COLUMNS:
                blank = text.isna() & ~invalid
                if blank.any():
                    unlabeled[col] = int(blank.sum())
                text = text.fillna(UNSPECIFIED)
            out[col] = text
    out = pd.concat([out, counts], axis=1)
    out = out[~invalid].reset_index(drop=True)

    report = NormalizationReport(
        variant=variant,
        rows_in=len(df),
        rows_kept=len(out),
        missing_year=int(no_year.sum()),
        missing_borough=int((no_borough & ~no_year).sum()),
        coerced_values=coerced,
        unlabeled_values=unlabeled,
    )

    logger.info(f'Data Quality Check - {variant}: {report.rows_in:,} rows read, {report.rows_kept:,} kept')
    if report.rows_dropped:
        logger.info(
            f'Data Quality Check - {variant}: dropped {report.rows_dropped:,} rows '
            f'({report.missing_year:,} without year, {report.missing_borough:,} without borough)'
        )
    if coerced:
        logger.warning(f'Data Quality Check - {variant}: non-numeric counts set to 0 {coerced}')
    if unlabeled:
        logger.info(f'Data Quality Check - {variant}: blank labels kept as {UNSPECIFIED} {unlabeled}')

    return out, report
