"""
Base Model Components and Mixins

Any ``pydantic.BaseModel`` can be used as a record type with the query
builder. The mixins below are optional and let a model take control of
how it is stored.

## Components

- DateTimeMixin: Accepts ISO strings and naive datetimes for datetime
  fields and normalises them to timezone-aware UTC values, matching what
  Datastore returns on reads.
- DatastoreMixin: Declares the kind name and the unindexed properties of a
  model, and exposes ``to_datastore_entity`` / ``from_datastore_entity``.

## Usage Example

```python
class User(DatastoreMixin, DateTimeMixin, BaseModel):
    __kind__ = "User"
    __exclude_from_indexes__ = ("bio",)

    name: str
    status: str = "active"
    bio: str = ""
    created_at: Optional[datetime] = None

users = query(db, User).with_filter("status", FilterOperator.EQUAL, "active").select()
```
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Tuple

from google.cloud import datastore
from pydantic import BaseModel, field_validator


class DateTimeMixin(BaseModel):
    """
    Mixin providing consistent datetime validation.

    Features:
    - ISO string parsing with 'Z' suffix handling
    - Naive datetimes interpreted as UTC
    - Non-datetime fields left untouched
    """

    @field_validator('*', mode='before')
    @classmethod
    def validate_datetime_fields(cls, v, info):
        """
        Validate datetime fields consistently across all models.

        Args:
            v: Field value to validate
            info: Field information from Pydantic

        Returns:
            Validated datetime object or original value for non-datetime fields

        Raises:
            ValueError: If datetime format is invalid
        """
        from typing import get_args, get_origin

        field = cls.model_fields.get(info.field_name) if info.field_name else None
        annotation = getattr(field, 'annotation', None)
        if annotation is None:
            return v

        # Handle Optional[datetime] and Union types
        if get_origin(annotation) is not None:
            if not any(arg is datetime for arg in get_args(annotation)):
                return v
        elif annotation is not datetime:
            return v

        if v is None:
            return v

        if isinstance(v, str):
            try:
                v = datetime.fromisoformat(v.replace('Z', '+00:00'))
            except ValueError as e:
                raise ValueError(f"Invalid datetime format: {v}. Expected ISO format.") from e

        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)

        return v


class DatastoreMixin(BaseModel):
    """
    Mixin providing Datastore serialization and deserialization.

    Class attributes:
        __kind__: Kind name used when the builder is created without one
                  (defaults to the class name)
        __exclude_from_indexes__: Properties stored without an index
                  (large strings, blobs, embedded data never filtered on)
    """

    __kind__: ClassVar[Optional[str]] = None
    __exclude_from_indexes__: ClassVar[Tuple[str, ...]] = ()

    def to_datastore_entity(self, key: datastore.Key) -> datastore.Entity:
        """
        Convert model to a Datastore entity under ``key``.

        Example:
            entity = user.to_datastore_entity(db.key("User", "user-123"))
            db.client.put(entity)
        """
        from ..utils import _build_entity

        return _build_entity(self, key, self.__exclude_from_indexes__)

    @classmethod
    def from_datastore_entity(cls, entity: Any):
        """
        Create model instance from a Datastore entity.

        Raises:
            ValidationError: If entity data is invalid for the model
        """
        from ..utils import _validate_entity

        return _validate_entity(entity, cls)
