"""
Datastore Wrapper Utilities - Consolidated Module

This single module contains the helper functions shared by the connection
handle and the query builder.

Key Features:
- Record serialization/deserialization (pydantic model <-> Datastore entity)
- UTC normalization for datetimes written to the store
- Kind name resolution for record types
- Chunking helper for batch operations

Architecture Compliance:
- Gateway layer stores UTC only; naive datetimes are assumed to be UTC
- Generic model support: works with any Pydantic BaseModel
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, List, Optional, Sequence, Type, TypeVar

from google.cloud import datastore
from pydantic import BaseModel

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T')
M = TypeVar('M', bound=BaseModel)


# =============================================================================
# Timezone Utilities
# =============================================================================

def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC.

    Handles both timezone-aware and naive datetimes. Naive datetimes are assumed
    to already be in UTC.

    Args:
        dt: Datetime to convert to UTC

    Returns:
        Datetime in UTC timezone, or None if input is None

    Examples:
        >>> dt = datetime(2024, 1, 1, 10, 0)
        >>> to_utc(dt)  # -> 2024-01-01 10:00:00+00:00
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


# =============================================================================
# Data Serialization (Gateway Layer - UTC Only)
# =============================================================================

def to_datastore_value(obj: Any) -> Any:
    """Recursively convert a Python value into a type Datastore can store.

    - datetime → UTC datetime
    - Enum → its value
    - Decimal → float
    - tuple / set / frozenset → list
    - dict → embedded Entity
    - everything else → unchanged
    """
    if isinstance(obj, dict):
        embedded = datastore.Entity()
        embedded.update({k: to_datastore_value(v) for k, v in obj.items()})
        return embedded
    elif isinstance(obj, (list, tuple, set, frozenset)):
        return [to_datastore_value(item) for item in obj]
    elif isinstance(obj, datetime):
        return to_utc(obj)
    elif isinstance(obj, Enum):
        return to_datastore_value(obj.value)
    elif isinstance(obj, Decimal):
        return float(obj)
    else:
        return obj


def from_datastore_value(obj: Any) -> Any:
    """Recursively unwrap embedded entities into plain dicts and lists."""
    if isinstance(obj, dict):
        return {k: from_datastore_value(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [from_datastore_value(item) for item in obj]
    return obj


def _build_entity(
    model: BaseModel,
    key: datastore.Key,
    exclude_from_indexes: Sequence[str] = ()
) -> datastore.Entity:
    try:
        entity = datastore.Entity(key=key, exclude_from_indexes=tuple(exclude_from_indexes))
        entity.update({name: to_datastore_value(value) for name, value in model.model_dump().items()})
        return entity
    except Exception as e:
        logger.error(f"Failed to convert {type(model).__name__} to entity: {e}")
        raise ValidationError(f"Failed to convert {type(model).__name__} to entity: {e}", original_error=e) from e


def _validate_entity(entity: datastore.Entity, model_class: Type[M]) -> M:
    try:
        return model_class.model_validate(from_datastore_value(dict(entity)))
    except Exception as e:
        logger.error(f"Failed to convert entity to {model_class.__name__}: {e}")
        raise ValidationError(f"Failed to convert entity to {model_class.__name__}: {e}", original_error=e) from e


def model_to_entity(
    model: BaseModel,
    key: datastore.Key,
    exclude_from_indexes: Sequence[str] = ()
) -> datastore.Entity:
    """Convert Pydantic model to a Datastore entity stored under ``key``.

    Models inheriting DatastoreMixin provide their own conversion hook.

    Args:
        model: Pydantic model instance
        key: Complete or incomplete key for the entity
        exclude_from_indexes: Property names to leave unindexed

    Returns:
        datastore.Entity ready for put / put_multi

    Raises:
        ValidationError: If the model cannot be converted
    """
    hook = getattr(model, 'to_datastore_entity', None)
    if callable(hook):
        return hook(key)
    return _build_entity(model, key, exclude_from_indexes)


def entity_to_model(entity: datastore.Entity, model_class: Type[M]) -> M:
    """Convert Datastore entity to Pydantic model.

    Args:
        entity: Entity returned by a query or lookup
        model_class: Target Pydantic model class

    Returns:
        Pydantic model instance

    Raises:
        ValidationError: If conversion fails
    """
    hook = getattr(model_class, 'from_datastore_entity', None)
    if callable(hook):
        return hook(entity)
    return _validate_entity(entity, model_class)


# =============================================================================
# Kind and Batch Utilities
# =============================================================================

def get_model_kind(model_class: Type[Any]) -> str:
    """Return the kind name declared by a model (``__kind__``) or its class name."""
    return getattr(model_class, '__kind__', None) or model_class.__name__


def get_model_unindexed_fields(model_class: Type[Any]) -> List[str]:
    """Return the property names a model wants excluded from indexes."""
    return list(getattr(model_class, '__exclude_from_indexes__', ()) or ())


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` holding at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def key_identity(key: Optional[datastore.Key]) -> Optional[tuple]:
    """Hashable identity for a key (its flat path), used to match lookup results."""
    if key is None:
        return None
    return tuple(key.flat_path)

