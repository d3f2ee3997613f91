"""
Core infrastructure components for Datastore operations.

This module contains the foundational components used by the query builder:
- DatastoreDB: Connection handle with a lazily created client
- connect: Factory that creates the client eagerly
- map_datastore_error: Backend error classification
"""

from .connection import DatastoreDB, connect
from .errors import STORE_NAME, map_datastore_error

__all__ = [
    "DatastoreDB",
    "STORE_NAME",
    "connect",
    "map_datastore_error",
]
