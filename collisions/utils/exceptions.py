class CollisionsException(Exception):
    """Base Exception Class"""
    pass
class DatasetDownloadError(CollisionsException):
    """Error class for when a source dataset cannot be fetched or parsed"""
    pass
class DataProcessingError(CollisionsException):
    """Error for Processing the Data"""
    pass
class MalformedRowError(DataProcessingError):
    """Raised in strict normalization when a row has no derivable year or borough"""

    def __init__(self, message, row_indices=()):
        super().__init__(message)
        self.row_indices = tuple(row_indices)
class ConfigError(CollisionsException):
    """Config Error"""
    pass
