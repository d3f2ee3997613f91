"""
Query construction and execution.

- QueryBuilder / query: fluent builder, execution and batch mutation
- FilterOperator, FIELD_KEY: filter vocabulary
- ApplyOutcome: result of each builder configuration call
- encode_cursor / decode_cursor: cursor codec
"""

from .builder import COUNT_ALIAS, QueryBuilder, query
from .cursor import decode_cursor, encode_cursor
from .operators import FIELD_KEY, ApplyOutcome, FilterOperator, FilterPredicate, SortOrder

__all__ = [
    "ApplyOutcome",
    "COUNT_ALIAS",
    "FIELD_KEY",
    "FilterOperator",
    "FilterPredicate",
    "QueryBuilder",
    "SortOrder",
    "decode_cursor",
    "encode_cursor",
    "query",
]
