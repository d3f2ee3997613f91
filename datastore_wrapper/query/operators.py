"""Filter operators, sort orders and outcome markers used by the query builder."""

from enum import Enum
from typing import Any, NamedTuple

# Special field name used to filter by entity key. Pass the string id of the
# entity as the value; it is converted to a Key of the builder's kind.
FIELD_KEY = "__key__"


class FilterOperator(str, Enum):
    """Comparison operators accepted by Datastore property filters."""
    EQUAL = "="
    GREATER = ">"
    GREATER_EQUAL = ">="
    LESS = "<"
    LESS_EQUAL = "<="
    # Value must be a list, e.g. ["a", "b", "c"]
    IN = "IN"
    NOT_IN = "NOT_IN"


class ApplyOutcome(str, Enum):
    """What a builder configuration call did with its input."""
    APPLIED = "applied"
    IGNORED_INVALID = "ignored-invalid"
    IGNORED_NON_POSITIVE = "ignored-non-positive"
    IGNORED_EMPTY = "ignored-empty"


class FilterPredicate(NamedTuple):
    field: str
    operator: FilterOperator
    value: Any


class SortOrder(NamedTuple):
    field: str
    descending: bool = False

    @property
    def expression(self) -> str:
        """Order string in the client library's format ("-field" for descending)."""
        return f"-{self.field}" if self.descending else self.field
