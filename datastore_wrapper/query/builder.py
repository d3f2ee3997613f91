"""
Fluent Query Builder

This module provides ``QueryBuilder``, a generic wrapper over
``google.cloud.datastore.Query`` for one entity kind and one pydantic record
type. It covers three jobs:

1. Configuration: filters, orders, limit, offset, cursor, ancestor,
   projection, distinct and keys-only, chained fluently.
2. Execution: ``select``, ``select_with_cursor``, ``select_keys``, ``get``
   and ``total``.
3. Batch mutation: ``upsert``, ``upsert_multi``, ``get_multi``,
   ``insert_with_auto_id`` and ``delete``.

Pagination modes:
- Offset pagination (``with_offset`` + ``select``) and cursor pagination
  (``with_cursor`` + ``select_with_cursor``) are mutually exclusive. The
  conflict is detected when an execution method runs, never while
  configuring, so ``with_offset(...).with_cursor(...)`` is accepted and the
  outcome depends on the execution method called afterwards.

Invalid configuration input (empty or malformed cursor, non-string key
filter value, non-positive limit/offset, ``None`` ancestor) is ignored
rather than raised. Every configuration call records an ``ApplyOutcome``
on ``last_outcome`` and ``outcomes`` so callers can tell.

A QueryBuilder is owned by a single caller: its methods mutate shared state
without locking, and an instance should be executed once. Share the
DatastoreDB, not the builder.

Example:
    users = (
        query(db, User)
        .with_filter("status", FilterOperator.EQUAL, "active")
        .with_order_desc("created_at")
        .with_limit(50)
        .select()
    )
"""

import logging
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from google.api_core import exceptions as core_exceptions
from google.cloud import datastore
from google.cloud.datastore.query import PropertyFilter
from pydantic import BaseModel

from ..core.connection import DatastoreDB
from ..core.errors import STORE_NAME, map_datastore_error
from ..exceptions import AggregationError, PaginationConflictError, ValidationError
from ..utils import (
    chunked,
    entity_to_model,
    get_model_kind,
    get_model_unindexed_fields,
    key_identity,
    model_to_entity,
)
from .cursor import decode_cursor, encode_cursor, to_start_cursor, track_end_cursor
from .operators import FIELD_KEY, ApplyOutcome, FilterOperator, FilterPredicate, SortOrder

T = TypeVar('T', bound=BaseModel)

logger = logging.getLogger(__name__)

# Alias of the count aggregation used by total()
COUNT_ALIAS = "total"

# Exceptions raised by the client library for failed backend calls
BACKEND_EXCEPTIONS = (core_exceptions.GoogleAPICallError, core_exceptions.RetryError)

_OPERATOR_ALIASES = {
    "==": FilterOperator.EQUAL,
    "in": FilterOperator.IN,
    "not in": FilterOperator.NOT_IN,
    "not_in": FilterOperator.NOT_IN,
}


def _coerce_operator(operator: Union[FilterOperator, str]) -> FilterOperator:
    if isinstance(operator, FilterOperator):
        return operator
    if isinstance(operator, str):
        alias = _OPERATOR_ALIASES.get(operator.strip().lower())
        if alias is not None:
            return alias
        try:
            return FilterOperator(operator.strip().upper())
        except ValueError:
            pass
    valid = ", ".join(op.value for op in FilterOperator)
    raise ValidationError(f"Unsupported filter operator {operator!r}; expected one of: {valid}")


class QueryBuilder(Generic[T]):
    """
    Fluent builder and executor for Datastore queries on one kind.

    Attributes:
        db: Connection the builder runs against
        model_class: Record type entities are converted into
        kind: Entity kind (with the configured prefix applied)
        query: The underlying ``datastore.Query``, mutated by every call
        filters: Predicates added so far (AND-combined)
        orders: Sort orders in the sequence they were added
        limit: Maximum results (0 = unbounded)
        offset: Results skipped before the first returned one
        start_cursor: Raw cursor bytes the query resumes from
        ancestor: Ancestor key constraint
        using_offset: Set by an applied ``with_offset``
        using_cursor: Set by an applied ``with_cursor``
        last_outcome: Outcome of the most recent configuration call
        outcomes: ``(operation, outcome)`` for every configuration call
    """

    def __init__(self, db: DatastoreDB, model_class: Type[T], kind: Optional[str] = None):
        """Initialize an empty query.

        Args:
            db: Datastore connection
            model_class: Pydantic model entities are converted into
            kind: Entity kind; defaults to the model's ``__kind__`` or class name
        """
        self.db = db
        self.model_class = model_class
        self.kind = db.kind_name(kind or get_model_kind(model_class))
        self.query = db.client.query(kind=self.kind)

        self.filters: List[FilterPredicate] = []
        self.orders: List[SortOrder] = []
        self.projection: List[str] = []
        self.limit = 0
        self.offset = 0
        self.start_cursor: Optional[bytes] = None
        self.ancestor: Optional[datastore.Key] = None
        self.distinct = False
        self.is_keys_only = False
        self.using_offset = False
        self.using_cursor = False
        self.timeout = db.config.timeout_seconds

        self.last_outcome: Optional[ApplyOutcome] = None
        self.outcomes: List[Tuple[str, ApplyOutcome]] = []

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _record(self, operation: str, outcome: ApplyOutcome, detail: Any = None) -> 'QueryBuilder[T]':
        self.last_outcome = outcome
        self.outcomes.append((operation, outcome))
        if outcome is not ApplyOutcome.APPLIED:
            logger.debug(f"{STORE_NAME} {self.kind} {operation} {outcome.value}: {detail!r}")
        return self

    def _key(self, identifier: Any = None) -> datastore.Key:
        """Key of this builder's kind, under the ancestor when one is set."""
        return self.db.key(self.kind, identifier, parent=self.ancestor)

    def _to_entity(self, record: T, key: datastore.Key) -> datastore.Entity:
        return model_to_entity(record, key, get_model_unindexed_fields(type(record)))

    def _to_model(self, entity: datastore.Entity) -> T:
        return entity_to_model(entity, self.model_class)

    def _fetch_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {'timeout': self.timeout}
        if self.limit:
            kwargs['limit'] = self.limit
        if self.offset:
            kwargs['offset'] = self.offset
        if self.start_cursor is not None:
            kwargs['start_cursor'] = self._resume_token()
        return kwargs

    def _resume_token(self) -> Optional[bytes]:
        """Cursor this query resumed from; an empty batch leaves the position unchanged."""
        if self.start_cursor is None:
            return None
        return to_start_cursor(self.start_cursor)

    def _backend_failure(self, operation: str, error: Exception, resource_id: Optional[str] = None):
        logger.error(f"{STORE_NAME} {self.kind} {operation}-error {error}")
        return map_datastore_error(error, operation, self.kind, resource_id)

    def _reject_cursor_mode(self, operation: str) -> None:
        if self.using_cursor:
            raise PaginationConflictError("query defined to use cursor", self.kind, operation)

    # =========================================================================
    # Configuration
    # =========================================================================

    def with_filter(self, field: str, operator: Union[FilterOperator, str], value: Any) -> 'QueryBuilder[T]':
        """
        Add a filter condition (AND-combined with the others).

        When filtering by FIELD_KEY ("__key__"), pass the string id as the
        value; it is converted to a key of this builder's kind (under the
        ancestor, if one was set before this call). Non-string values for
        FIELD_KEY are ignored.

        Args:
            field: Property name, or FIELD_KEY
            operator: FilterOperator (or its string form)
            value: Comparison value; a list for IN / NOT_IN

        Raises:
            ValidationError: If the operator is not supported
        """
        op = _coerce_operator(operator)

        if field == FIELD_KEY:
            if not isinstance(value, str):
                return self._record("with-filter", ApplyOutcome.IGNORED_INVALID, value)
            value = self._key(value)

        self.query.add_filter(filter=PropertyFilter(field, op.value, value))
        self.filters.append(FilterPredicate(field, op, value))
        return self._record("with-filter", ApplyOutcome.APPLIED)

    def with_order(self, field: str) -> 'QueryBuilder[T]':
        """Add an ascending sort order. Index requirements are checked by the backend."""
        order = SortOrder(field)
        self.query.order = [*self.query.order, order.expression]
        self.orders.append(order)
        return self._record("with-order", ApplyOutcome.APPLIED)

    def with_order_desc(self, field: str) -> 'QueryBuilder[T]':
        """Add a descending sort order."""
        order = SortOrder(field, descending=True)
        self.query.order = [*self.query.order, order.expression]
        self.orders.append(order)
        return self._record("with-order-desc", ApplyOutcome.APPLIED)

    def with_limit(self, limit: int) -> 'QueryBuilder[T]':
        """Set the maximum number of results. Zero or negative values are ignored."""
        if limit > 0:
            self.limit = limit
            return self._record("with-limit", ApplyOutcome.APPLIED)
        return self._record("with-limit", ApplyOutcome.IGNORED_NON_POSITIVE, limit)

    def with_offset(self, offset: int) -> 'QueryBuilder[T]':
        """
        Skip ``offset`` results. Zero or negative values are ignored.

        Marks the query as offset-paginated, which makes ``select_with_cursor``
        fail. Whether a cursor was already applied is not checked here.
        Datastore still reads skipped entities; prefer cursors for deep pages.
        """
        if offset > 0:
            self.offset = offset
            self.using_offset = True
            return self._record("with-offset", ApplyOutcome.APPLIED)
        return self._record("with-offset", ApplyOutcome.IGNORED_NON_POSITIVE, offset)

    def with_cursor(self, cursor: Optional[str]) -> 'QueryBuilder[T]':
        """
        Resume from a cursor returned by an earlier ``select_with_cursor``.

        The earlier query must have had the same filters and orders. Empty or
        malformed cursors are ignored. Marks the query as cursor-paginated,
        which makes ``select``, ``select_keys`` and ``get`` fail.
        """
        if not cursor:
            return self._record("with-cursor", ApplyOutcome.IGNORED_EMPTY, cursor)

        raw = decode_cursor(cursor)
        if raw is None:
            return self._record("with-cursor", ApplyOutcome.IGNORED_INVALID, cursor)

        self.start_cursor = raw
        self.using_cursor = True
        return self._record("with-cursor", ApplyOutcome.APPLIED)

    def with_ancestor_key(self, ancestor_key: Optional[datastore.Key]) -> 'QueryBuilder[T]':
        """
        Restrict results to descendants of ``ancestor_key``.

        Ancestor queries are strongly consistent. Keys built afterwards by
        this builder (key filters, upserts, lookups) are created under the
        ancestor. ``None`` is ignored.
        """
        if ancestor_key is None:
            return self._record("with-ancestor-key", ApplyOutcome.IGNORED_EMPTY)
        self.query.ancestor = ancestor_key
        self.ancestor = ancestor_key
        return self._record("with-ancestor-key", ApplyOutcome.APPLIED)

    def with_projection(self, *fields: str) -> 'QueryBuilder[T]':
        """Return only the named properties (projection query)."""
        self.projection = list(fields)
        self.query.projection = list(fields)
        if self.distinct:
            self.query.distinct_on = list(fields)
        return self._record("with-projection", ApplyOutcome.APPLIED)

    def with_distinct(self) -> 'QueryBuilder[T]':
        """De-duplicate results over the projected properties."""
        self.distinct = True
        self.query.distinct_on = list(self.projection)
        return self._record("with-distinct", ApplyOutcome.APPLIED)

    def keys_only(self) -> 'QueryBuilder[T]':
        """Fetch keys without entity properties."""
        self.query.keys_only()
        self.is_keys_only = True
        return self._record("keys-only", ApplyOutcome.APPLIED)

    def with_timeout(self, seconds: float) -> 'QueryBuilder[T]':
        """Override the per-call deadline for this builder. Non-positive values are ignored."""
        if seconds > 0:
            self.timeout = seconds
            return self._record("with-timeout", ApplyOutcome.APPLIED)
        return self._record("with-timeout", ApplyOutcome.IGNORED_NON_POSITIVE, seconds)

    # =========================================================================
    # Execution
    # =========================================================================

    def select(self) -> List[T]:
        """
        Run the query and return every matching record.

        Honours limit and offset.

        Raises:
            PaginationConflictError: If the builder was configured with a cursor
            BackendError: If the backend call fails
        """
        self._reject_cursor_mode("select")

        try:
            entities = list(self.query.fetch(**self._fetch_kwargs()))
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("select", e) from e

        return [self._to_model(entity) for entity in entities]

    def select_keys(self) -> List[datastore.Key]:
        """
        Run the query keys-only and return the matching keys.

        Raises:
            PaginationConflictError: If the builder was configured with a cursor
            BackendError: If the backend call fails
        """
        self._reject_cursor_mode("select-keys")

        if not self.is_keys_only:
            self.query.keys_only()
            self.is_keys_only = True

        try:
            return [entity.key for entity in self.query.fetch(**self._fetch_kwargs())]
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("select-keys", e) from e

    def select_with_cursor(self) -> Tuple[List[T], str]:
        """
        Run the query and return one page of records plus a resume cursor.

        Entities are read one at a time until the results or the limit run
        out; the cursor then marks the position after the last entity read,
        also on the last page, so resuming from it never repeats entities.
        Pass it to ``with_cursor`` on a builder with the same filters and
        orders to fetch the next page. The cursor is "" when the backend
        reports none.

        Raises:
            PaginationConflictError: If the builder was configured with an offset
            BackendError: If the backend fails at any point (no partial page is returned)

        Example:
            cursor = ""
            while True:
                page, cursor = (
                    query(db, User)
                    .with_filter("status", FilterOperator.EQUAL, "active")
                    .with_limit(100)
                    .with_cursor(cursor)
                    .select_with_cursor()
                )
                handle(page)
                if len(page) < 100:
                    break
        """
        if self.using_offset:
            raise PaginationConflictError("query defined to use offset instead of cursor", self.kind, "select-with-cursor")

        result: List[T] = []
        try:
            iterator = track_end_cursor(self.query.fetch(**self._fetch_kwargs()))
            for entity in iterator:
                result.append(self._to_model(entity))
            cursor = encode_cursor(iterator.end_cursor or iterator.next_page_token or self._resume_token())
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("select-with-cursor", e) from e

        return result, cursor

    def get(self) -> Optional[T]:
        """
        Run the query and return the first matching record, or None.

        Combine with ``with_limit(1)`` when only one result is needed.

        Raises:
            PaginationConflictError: If the builder was configured with a cursor
            BackendError: If the backend call fails
        """
        self._reject_cursor_mode("get")

        results = self.select()
        if results:
            return results[0]
        return None

    def total(self) -> int:
        """
        Count matching entities with an aggregation query.

        Only filters and the ancestor constraint are used; orders, limit,
        offset and cursor do not affect the count.

        Raises:
            BackendError: If the aggregation call fails
            AggregationError: If the count is missing or not an integer
        """
        count_query = self.db.client.query(kind=self.kind)
        if self.ancestor is not None:
            count_query.ancestor = self.ancestor
        for predicate in self.filters:
            count_query.add_filter(filter=PropertyFilter(predicate.field, predicate.operator.value, predicate.value))

        results: Dict[str, Any] = {}
        try:
            aggregation = self.db.client.aggregation_query(count_query).count(alias=COUNT_ALIAS)
            for batch in aggregation.fetch(timeout=self.timeout):
                for result in batch:
                    results[result.alias] = result.value
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("total", e) from e

        if COUNT_ALIAS not in results:
            logger.error(f"{STORE_NAME} {self.kind} total-error count result not found")
            raise AggregationError("count result not found", self.kind, COUNT_ALIAS)

        count = results[COUNT_ALIAS]
        # A zero count arrives as 0.0: the client reads integer_value or double_value
        if isinstance(count, float) and count.is_integer():
            count = int(count)
        if isinstance(count, bool) or not isinstance(count, int):
            logger.error(f"{STORE_NAME} {self.kind} total-error unexpected count type {type(count).__name__}")
            raise AggregationError(f"unexpected count type: {type(count).__name__}", self.kind, COUNT_ALIAS)

        return count

    # =========================================================================
    # Batch mutation
    # =========================================================================

    def upsert(self, identifier: str, record: T) -> None:
        """
        Insert or overwrite one entity under (kind, identifier).

        On a builder with an ancestor the key is (ancestor, kind, identifier),
        which is a different entity from the root-level one with the same id.

        Raises:
            ValidationError: If the record cannot be converted
            BackendError: If the put fails
        """
        entity = self._to_entity(record, self._key(identifier))
        try:
            self.db.client.put(entity, timeout=self.timeout)
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("upsert", e, identifier) from e

        logger.info(f"Upserted {self.kind} entity: {identifier}")

    def upsert_multi(self, items: Mapping[str, T]) -> None:
        """
        Insert or overwrite many entities.

        Keys are built like ``upsert`` (under the ancestor when one is set).
        Every record is converted first; the entities are then written in
        chunks of ``config.batch_size`` (500 by default), one ``put_multi``
        per chunk, in order. The first failing chunk aborts the call;
        chunks written before it stay written.

        Raises:
            ValidationError: If any record cannot be converted (nothing is written)
            BackendError: If a put_multi call fails
        """
        if not items:
            return

        entities = [self._to_entity(record, self._key(identifier)) for identifier, record in items.items()]

        written = 0
        for batch in chunked(entities, self.db.config.batch_size):
            try:
                self.db.client.put_multi(batch, timeout=self.timeout)
            except BACKEND_EXCEPTIONS as e:
                error = self._backend_failure("upsert-multi", e)
                error.context['written'] = written
                raise error from e
            written += len(batch)

        logger.info(f"Upserted {written} {self.kind} entities")

    def get_multi(self, identifiers: Sequence[str]) -> List[Optional[T]]:
        """
        Look up entities by id in one call.

        The result has one slot per id, in the same order; ids with no
        stored entity get None. After ``with_ancestor_key`` the ids are
        looked up under the ancestor, not at the root of the kind.

        Raises:
            BackendError: If the lookup fails
        """
        if not identifiers:
            return []

        keys = [self._key(identifier) for identifier in identifiers]
        try:
            found = self.db.client.get_multi(keys, timeout=self.timeout)
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("get-multi", e) from e

        # Lookup results come back in no particular order
        by_key = {key_identity(entity.key): entity for entity in found}
        return [
            self._to_model(by_key[key_identity(key)]) if key_identity(key) in by_key else None
            for key in keys
        ]

    def insert_with_auto_id(self, record: T) -> datastore.Key:
        """
        Insert an entity with a backend-allocated numeric id.

        The key is created under the ancestor when one is set.

        Returns:
            The completed key

        Raises:
            ValidationError: If the record cannot be converted
            BackendError: If the put fails
        """
        entity = self._to_entity(record, self._key())
        try:
            self.db.client.put(entity, timeout=self.timeout)
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("insert", e) from e

        logger.info(f"Inserted {self.kind} entity with id {entity.key.id}")
        return entity.key

    def delete(self) -> int:
        """
        Delete every entity matching the current query.

        Runs the query keys-only, then deletes the keys in chunks of
        ``config.batch_size`` (500 by default), one ``delete_multi`` per
        chunk, in order. The first failing chunk aborts the call; chunks
        deleted before it stay deleted.

        Warning: Without filters this deletes every entity of the kind.

        Returns:
            Number of entities deleted

        Raises:
            BackendError: If the key query or a delete_multi call fails
        """
        self.query.keys_only()
        self.is_keys_only = True

        try:
            keys = [entity.key for entity in self.query.fetch(**self._fetch_kwargs())]
        except BACKEND_EXCEPTIONS as e:
            raise self._backend_failure("delete-query", e) from e

        deleted = 0
        for batch in chunked(keys, self.db.config.batch_size):
            try:
                self.db.client.delete_multi(batch, timeout=self.timeout)
            except BACKEND_EXCEPTIONS as e:
                error = self._backend_failure("delete-multi", e)
                error.context['deleted'] = deleted
                raise error from e
            deleted += len(batch)

        if deleted:
            logger.info(f"Deleted {deleted} {self.kind} entities")
        return deleted


def query(db: DatastoreDB, model_class: Type[T], kind: Optional[str] = None) -> QueryBuilder[T]:
    """
    Create a QueryBuilder for ``model_class`` entities of ``kind``.

    Example:
        class User(BaseModel):
            name: str
            email: str
            status: str

        users = query(db, User, "User").with_filter("status", FilterOperator.EQUAL, "active").select()
    """
    return QueryBuilder(db, model_class, kind)
