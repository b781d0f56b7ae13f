from .download_data import CollisionDatasetDownloader, load_dataset
from .preprocessing import SCHEMAS, NormalizationReport, normalize_rows
from .store import CollisionDataStore

__all__ = [
    "CollisionDatasetDownloader",
    "CollisionDataStore",
    "NormalizationReport",
    "SCHEMAS",
    "load_dataset",
    "normalize_rows",
]
