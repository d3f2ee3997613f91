from .config import MAX_BATCH_SIZE, DatastoreConfig

__all__ = [
    "DatastoreConfig",
    "MAX_BATCH_SIZE",
]
