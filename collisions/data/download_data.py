"""
NYC Collision Dataset Downloader Module.

Fetches the CSV tables and the borough GeoJSON behind the dashboard (over HTTP
with requests, or from a local directory) and parses them. Sources of one logical
dataset are fetched in parallel and joined before anything is normalized: if any
of them fails the whole dataset is unavailable and DatasetDownloadError is raised.
There is no retry.

Usage:
    python -m collisions.data.download_data [dataset ...]
"""

import json
import os
import sys
from io import StringIO
from multiprocessing.pool import ThreadPool
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
import requests

from collisions.config import DATASET_FILES, DATASETS, Settings, load_settings
from collisions.data.preprocessing import NormalizationReport, normalize_rows
from collisions.utils import normalize_borough
from collisions.utils.exceptions import CollisionsException, DatasetDownloadError
from collisions.utils.logger_config import setup_logger

# === Configs ===
logger = setup_logger(__name__)
# === END Configs ===


class CollisionDatasetDownloader:
    """
    A class to handle parallel download of the raw NYC collision tables.

    Attributes:
        settings (Settings): Resolved configuration, including the source table
        timeout (float): Per-request timeout in seconds
        max_workers (int): Maximum number of sources fetched at once

    Example:
        >>> downloader = CollisionDatasetDownloader(load_settings())
        >>> accidents = downloader.fetch_all(['accidents_part1', 'accidents_part2'])
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
        ) -> None:
        self.settings = settings or load_settings()
        self.timeout = timeout or self.settings.http_timeout
        self.max_workers = max_workers or self.settings.max_workers

    def _resolve(self, source: str) -> str:
        """Dataset names map through settings; anything else is taken as a URL or path"""
        if source in DATASET_FILES:
            return self.settings.source(source)
        return source

    @staticmethod
    def _parse_csv(text: str, location: str) -> pd.DataFrame:
        try:
            df = pd.read_csv(StringIO(text), dtype=str, skipinitialspace=True)
        except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
            raise DatasetDownloadError(f'Malformed CSV from {location}: {str(e)}')
        df.columns = df.columns.str.strip()
        return df

    def _request_text(self, url: str) -> str:
        """
        Make a single HTTP GET for a CSV source

        Args:
            url (str): Source URL

        Returns:
            str: Response body

        Raises:
            DatasetDownloadError: On network errors or a non-200 status
        """
        try:
            logger.debug(f'Requesting: {url}')
            response = requests.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f'Network error for {url}: {str(e)}')
            raise DatasetDownloadError(f'Network error for {url}: {str(e)}')

        if response.status_code != 200:
            logger.error(f'Request failed with status {response.status_code}: {url}')
            raise DatasetDownloadError(f'Request for {url} failed with status {response.status_code}')
        return response.text

    def _read_source(self, source: str) -> Tuple[str, str]:
        """
        Raw text of one source and the location it was read from

        Raises:
            DatasetDownloadError: Unreachable URL, missing or unreadable file, or a file that is not UTF-8
        """
        location = self._resolve(source)
        if location.startswith(('http://', 'https://')):
            return self._request_text(location), location

        if not os.path.isfile(location):
            logger.error(f'Source file not found: {location}')
            raise DatasetDownloadError(f'Source file not found: {location}')
        try:
            with open(location, encoding='utf-8') as fh:
                return fh.read(), location
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f'Could not read {location}: {str(e)}')
            raise DatasetDownloadError(f'Could not read {location}: {str(e)}')

    def fetch_table(self, source: str) -> pd.DataFrame:
        """
        Fetch and parse one source into a DataFrame of strings

        Args:
            source (str): Dataset name from settings, URL, or local CSV path

        Returns:
            pd.DataFrame: Parsed table, one column per header field

        Raises:
            DatasetDownloadError: Source unreachable, missing, unreadable, or not a CSV table
        """
        text, location = self._read_source(source)
        df = self._parse_csv(text, location)
        if df.columns.empty:
            raise DatasetDownloadError(f'No header row in {location}')
        logger.info(f'Fetched {len(df):,} rows from {source}')
        return df

    def fetch_all(self, sources: Iterable[str]) -> pd.DataFrame:
        """
        Fetch sources concurrently and concatenate them in the given order

        Args:
            sources (Iterable[str]): Source identifiers

        Returns:
            pd.DataFrame: Rows of the first source, then the second, and so on

        Raises:
            DatasetDownloadError: If any source fails; no partial result is returned
        """
        sources = list(sources)
        if not sources:
            raise DatasetDownloadError('No sources requested')

        workers = max(1, min(self.max_workers, len(sources)))
        try:
            with ThreadPool(workers) as pool:
                # map keeps input order and re-raises the first failure
                frames = pool.map(self.fetch_table, sources)
        except DatasetDownloadError as e:
            logger.error(f'Dataset unavailable, {sources} not loaded: {str(e)}')
            raise

        combined = pd.concat(frames, ignore_index=True, sort=False)
        logger.debug(f'Combined {len(combined):,} rows from {len(frames)} sources')
        return combined

    def load_centroids(self, source: str = 'centroids') -> Dict[str, Tuple[float, float]]:
        """
        Build the neighborhood -> (lat, lon) lookup used to place map markers

        Rows with a missing name or unparseable coordinates are skipped.
        """
        df = self.fetch_table(source)
        missing = {'neighborhood', 'lat', 'lon'} - set(df.columns)
        if missing:
            raise DatasetDownloadError(f'Centroid table {source} is missing columns {sorted(missing)}')

        lat = pd.to_numeric(df['lat'], errors='coerce')
        lon = pd.to_numeric(df['lon'], errors='coerce')
        names = df['neighborhood'].str.strip()
        usable = names.notna() & lat.notna() & lon.notna()
        if (~usable).any():
            logger.warning(f'Skipped {int((~usable).sum())} centroid rows without a name or coordinates')

        return {name: (float(la), float(lo)) for name, la, lo in zip(names[usable], lat[usable], lon[usable])}

    def load_boundaries(self, source: str = 'boundaries', name_field: str = 'boro_name') -> Dict:
        """
        Borough outlines as a GeoJSON FeatureCollection

        Each kept feature gets its canonical borough name as `id`, so map layers can
        key on it directly. Features whose name is not one of the five boroughs are skipped.

        Raises:
            DatasetDownloadError: Source unreadable or not a GeoJSON FeatureCollection
        """
        text, location = self._read_source(source)
        try:
            collection = json.loads(text)
        except ValueError as e:
            raise DatasetDownloadError(f'Malformed GeoJSON from {location}: {str(e)}')
        if not isinstance(collection, dict) or not isinstance(collection.get('features'), list):
            raise DatasetDownloadError(f'{location} is not a GeoJSON FeatureCollection')

        features = []
        for feature in collection['features']:
            if not isinstance(feature, dict):
                continue
            borough = normalize_borough((feature.get('properties') or {}).get(name_field))
            if borough is None or not feature.get('geometry'):
                continue
            features.append({**feature, 'id': borough})

        skipped = len(collection['features']) - len(features)
        if skipped:
            logger.warning(f'Skipped {skipped} boundary features without a known borough')
        logger.info(f'Loaded {len(features)} borough boundaries from {source}')
        return {'type': 'FeatureCollection', 'features': features}


def load_dataset(
        downloader: CollisionDatasetDownloader,
        dataset: str,
        strict: bool = False,
        ) -> Tuple[pd.DataFrame, NormalizationReport]:
    """
    Fetch every source of a logical dataset and normalize the combined rows

    Args:
        downloader (CollisionDatasetDownloader): Configured downloader
        dataset (str): Key of collisions.config.DATASETS
        strict (bool): Passed through to normalize_rows

    Returns:
        Tuple[pd.DataFrame, NormalizationReport]: Normalized rows and the data quality report
    """
    try:
        sources, variant = DATASETS[dataset]
    except KeyError:
        raise DatasetDownloadError(f'Unknown dataset {dataset}. Known: {sorted(DATASETS)}')

    raw = downloader.fetch_all(sources)
    return normalize_rows(raw, variant, strict=strict)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Fetch and normalize datasets, logging the data quality report of each

    Important:
    Run as python -m collisions.data.download_data [dataset ...]; defaults to every dataset
    """
    names = list(argv if argv is not None else sys.argv[1:]) or list(DATASETS)
    downloader = CollisionDatasetDownloader(load_settings())

    failed = []
    for name in names:
        try:
            _, report = load_dataset(downloader, name)
            logger.info(f'{name}: {report.as_record()}')
        except CollisionsException as e:
            logger.error(f'{name} could not be loaded. {str(e)}')
            failed.append(name)

    if failed:
        logger.error(f'Failed datasets: {failed}')
        return 1
    logger.info('All datasets loaded')
    return 0


if __name__ == '__main__':
    sys.exit(main())
