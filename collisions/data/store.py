"""In-memory holder for the datasets of one dashboard session."""

import threading
from multiprocessing.pool import ThreadPool
from typing import Any, Callable, Dict, Optional, Tuple

import pandas as pd

from collisions.data.preprocessing import NormalizationReport
from collisions.utils.exceptions import CollisionsException
from collisions.utils.logger_config import setup_logger

logger = setup_logger(__name__)

# normalized frames come with a report; map lookups (centroids, boundaries) with None
Loader = Callable[[], Tuple[Any, Optional[NormalizationReport]]]


class CollisionDataStore:
    """
    Retains one loaded table per dataset name.

    Every load is tagged with a generation token from begin(). commit() only
    stores the result if no newer load of the same dataset started in the
    meantime, so a slow fetch that resolves late cannot overwrite fresher data.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generations: Dict[str, int] = {}
        self._frames: Dict[str, pd.DataFrame] = {}
        self._reports: Dict[str, NormalizationReport] = {}

    def begin(self, name: str) -> int:
        with self._lock:
            token = self._generations.get(name, 0) + 1
            self._generations[name] = token
        logger.debug(f'Load of {name} started, generation {token}')
        return token

    def commit(
            self,
            name: str,
            token: int,
            frame: pd.DataFrame,
            report: Optional[NormalizationReport] = None,
            ) -> bool:
        with self._lock:
            current = self._generations.get(name)
            if token != current:
                logger.info(f'Discarding stale load of {name} (generation {token}, current {current})')
                return False
            self._frames[name] = frame
            if report is not None:
                self._reports[name] = report
        return True

    def load(self, name: str, loader: Loader) -> Optional[pd.DataFrame]:
        """
        Run loader under a fresh generation token and keep its result if still current

        Exceptions from the loader propagate and leave any previously stored frame untouched.

        Returns:
            Optional[pd.DataFrame]: The frame now held for name (may be a newer one than this load produced)
        """
        token = self.begin(name)
        frame, report = loader()
        self.commit(name, token, frame, report)
        return self.get(name)

    def load_all(self, loaders: Dict[str, Loader], max_workers: int = 4) -> Dict[str, CollisionsException]:
        """
        Run several loads concurrently

        Args:
            loaders (Dict[str, Loader]): Dataset name -> loader
            max_workers (int): Maximum loads in flight

        Returns:
            Dict[str, CollisionsException]: The failure of each load that did not complete; empty when all did
        """
        if not loaders:
            return {}

        def attempt(item):
            name, loader = item
            try:
                self.load(name, loader)
            except CollisionsException as e:
                logger.error(f'{name} could not be loaded. {str(e)}')
                return name, e
            return name, None

        workers = max(1, min(max_workers, len(loaders)))
        with ThreadPool(workers) as pool:
            results = pool.map(attempt, list(loaders.items()))
        return {name: error for name, error in results if error is not None}

    def get(self, name: str) -> Optional[pd.DataFrame]:
        with self._lock:
            return self._frames.get(name)

    def report(self, name: str) -> Optional[NormalizationReport]:
        with self._lock:
            return self._reports.get(name)

    def is_loaded(self, name: str) -> bool:
        with self._lock:
            return name in self._frames
