# Base mixins for record types
from .base import (
    DatastoreMixin,
    DateTimeMixin,
)

__all__ = [
    "DatastoreMixin",
    "DateTimeMixin",
]
