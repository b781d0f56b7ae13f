"""
Runtime configuration for the collisions pipeline.

Values come from the environment (optionally a `.env` file loaded with python-dotenv):

    COLLISIONS_DATA_BASE_URL   Base URL or local directory holding the CSV datasets
    COLLISIONS_HTTP_TIMEOUT    Per-request timeout in seconds (default 30)
    COLLISIONS_MAX_WORKERS     Parallel fetches (default 4)
    COLLISIONS_LOG_DIR         Log directory (read by setup_logger)
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from collisions.utils.exceptions import ConfigError


DEFAULT_BASE_URL = 'https://raw.githubusercontent.com/tengis0/infoviz-final/main/Dataset'

# Dataset name -> file name under the base location
DATASET_FILES: Dict[str, str] = {
    'accidents_part1': 'nyc_accidents_part1.csv',
    'accidents_part2': 'nyc_accidents_part2.csv',
    'matrix': 'matrix_data.csv',
    'spider': 'spider_chart.csv',
    'geomap': 'geomap_data.csv',
    'centroids': 'nyc_neighborhood.csv',
    'boundaries': 'nyc.geojson',
}

# Logical dataset -> (sources concatenated in order, schema variant)
DATASETS: Dict[str, Tuple[Tuple[str, ...], str]] = {
    'accidents': (('accidents_part1', 'accidents_part2'), 'accidents'),
    'matrix': (('matrix',), 'matrix'),
    'spider': (('spider',), 'spider'),
    'geomap': (('geomap',), 'geomap'),
}


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    http_timeout: float = 30.0
    max_workers: int = 4
    sources: Dict[str, str] = field(default_factory=dict)

    def source(self, name: str) -> str:
        try:
            return self.sources[name]
        except KeyError:
            raise ConfigError(f'Unknown dataset source: {name}. Known: {sorted(self.sources)}')


def _resolve_sources(base: str) -> Dict[str, str]:
    if base.startswith(('http://', 'https://')):
        root = base.rstrip('/')
        return {name: f'{root}/{fname}' for name, fname in DATASET_FILES.items()}
    return {name: os.path.join(base, fname) for name, fname in DATASET_FILES.items()}


def _read_number(key: str, default, cast):
    raw = os.environ.get(key)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f'{key} must be a number, got {raw!r}')
    if value <= 0:
        raise ConfigError(f'{key} must be positive, got {raw!r}')
    return value


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment

    Args:
        env_file (str): Optional path to a .env file. Defaults to python-dotenv's lookup.

    Returns:
        Settings: Frozen settings instance

    Raises:
        ConfigError: If a numeric variable cannot be parsed
    """
    load_dotenv(env_file)

    base = os.environ.get('COLLISIONS_DATA_BASE_URL', DEFAULT_BASE_URL).strip() or DEFAULT_BASE_URL
    return Settings(
        base_url=base,
        http_timeout=_read_number('COLLISIONS_HTTP_TIMEOUT', 30.0, float),
        max_workers=_read_number('COLLISIONS_MAX_WORKERS', 4, int),
        sources=_resolve_sources(base),
    )
