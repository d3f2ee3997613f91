"""
Tests for QueryBuilder execution: select, select_keys, select_with_cursor,
get and total, including backend failure handling.
"""

import logging
from unittest.mock import Mock

import pytest
from google.api_core import exceptions as core_exceptions
from google.cloud.datastore import Entity

from datastore_wrapper import (
    FIELD_KEY,
    AggregationError,
    BackendError,
    FilterOperator,
    IndexRequiredError,
    RetryableError,
    ValidationError,
    query,
)
from datastore_wrapper.query import COUNT_ALIAS
from tests.helpers import User


class TestSelect:
    """Test select and get."""

    def test_select_with_filter(self, db, seeded_users):
        """Test only matching entities come back, converted to models."""
        results = query(db, User).with_filter("status", FilterOperator.EQUAL, "active").select()

        assert results == [User(name="Alice", status="active", age=31)]

    def test_select_without_filters_returns_all(self, db, seeded_users):
        """Test an unfiltered select returns every entity of the kind."""
        results = query(db, User).select()

        assert [user.name for user in results] == ["Alice", "Bob"]

    def test_select_order_desc(self, db, seeded_users):
        """Test descending order is honoured."""
        results = query(db, User).with_order_desc("age").select()

        assert [user.age for user in results] == [42, 31]

    def test_select_limit_and_offset(self, db, many_users):
        """Test limit and offset are passed to the backend."""
        results = query(db, User).with_order("age").with_offset(5).with_limit(3).select()

        assert [user.age for user in results] == [25, 26, 27]
        _, payload = many_users.calls[-1]
        assert payload["limit"] == 3
        assert payload["offset"] == 5
        assert payload["timeout"] == db.config.timeout_seconds

    def test_unset_limit_and_offset_not_sent(self, db, seeded_users):
        """Test an unconfigured builder sends no limit or offset."""
        query(db, User).select()

        _, payload = seeded_users.calls[-1]
        assert payload["limit"] is None
        assert payload["offset"] == 0
        assert payload["start_cursor"] is None

    def test_select_by_key(self, db, seeded_users):
        """Test filtering on the key field with a string id."""
        results = query(db, User).with_filter(FIELD_KEY, FilterOperator.EQUAL, "b").select()

        assert [user.name for user in results] == ["Bob"]

    def test_select_projection(self, db, seeded_users):
        """Test projected selects fill only the projected properties."""
        results = query(db, User).with_projection("name").select()

        assert [(user.name, user.status) for user in results] == [("Alice", ""), ("Bob", "")]

    def test_select_empty_kind(self, db):
        """Test selecting from an empty kind returns an empty list."""
        assert query(db, User).select() == []

    def test_get_returns_first(self, db, seeded_users):
        """Test get returns the first matching record."""
        user = query(db, User).with_order_desc("age").with_limit(1).get()

        assert user.name == "Bob"

    def test_get_returns_none_when_nothing_matches(self, db, seeded_users):
        """Test get returns None on no match."""
        assert query(db, User).with_filter("status", FilterOperator.EQUAL, "deleted").get() is None

    def test_select_keys(self, db, seeded_users):
        """Test select_keys returns keys of matching entities."""
        keys = query(db, User).with_filter("age", FilterOperator.GREATER, 40).select_keys()

        assert [key.name for key in keys] == ["b"]

    def test_invalid_entity_raises_validation_error(self, db, fake_client):
        """Test entities that do not fit the model raise ValidationError."""
        entity = Entity(key=db.key("User", "broken"))
        entity.update({"name": "Broken", "status": "active", "age": "not-a-number"})
        fake_client.store[tuple(entity.key.flat_path)] = entity

        with pytest.raises(ValidationError, match="Failed to convert entity to User"):
            query(db, User).select()

    def test_custom_timeout_reaches_backend(self, db, seeded_users):
        """Test with_timeout overrides the configured deadline."""
        query(db, User).with_timeout(2.5).select()

        _, payload = seeded_users.calls[-1]
        assert payload["timeout"] == 2.5


class TestAncestorQueries:
    """Test ancestor-scoped reads and writes."""

    def test_ancestor_scopes_results_and_writes(self, db, seeded_users):
        """Test entities written under an ancestor are found only by ancestor queries."""
        org = db.key("Org", "acme")
        query(db, User).with_ancestor_key(org).upsert("c", User(name="Carol", status="active"))

        scoped = query(db, User).with_ancestor_key(org)
        results = scoped.select()

        assert [user.name for user in results] == ["Carol"]
        assert query(db, User).with_ancestor_key(org).total() == 1
        assert ("Org", "acme", "User", "c") in seeded_users.store

    def test_key_filter_under_ancestor(self, db, seeded_users):
        """Test key filters match child entities when the ancestor is set first."""
        org = db.key("Org", "acme")
        query(db, User).with_ancestor_key(org).upsert("c", User(name="Carol"))

        results = (
            query(db, User)
            .with_ancestor_key(org)
            .with_filter(FIELD_KEY, FilterOperator.EQUAL, "c")
            .select()
        )

        assert [user.name for user in results] == ["Carol"]


class TestCursorPagination:
    """Test select_with_cursor."""

    def test_pages_cover_the_full_result(self, db, many_users):
        """Test consecutive cursor pages concatenate to the full result."""
        full = query(db, User).with_filter("status", FilterOperator.EQUAL, "active").select()

        pages = []
        cursor = ""
        while True:
            page, cursor = (
                query(db, User)
                .with_filter("status", FilterOperator.EQUAL, "active")
                .with_limit(10)
                .with_cursor(cursor)
                .select_with_cursor()
            )
            pages.append(page)
            if len(page) < 10:
                break

        assert [len(page) for page in pages] == [10, 10, 5]
        assert [user for page in pages for user in page] == full
        assert cursor != ""

    def test_cursor_is_passed_back_unchanged(self, db, many_users):
        """Test the cursor handed out is what the backend receives next."""
        _, cursor = query(db, User).with_limit(5).select_with_cursor()

        query(db, User).with_limit(5).with_cursor(cursor).select_with_cursor()

        _, payload = many_users.calls[-1]
        assert payload["start_cursor"] == cursor.encode("ascii")

    def test_cursor_after_last_page_moves_past_the_end(self, db, seeded_users):
        """Test the cursor of an exhausted result resumes after it, not from the start."""
        page1, cursor = query(db, User).with_limit(5).select_with_cursor()
        page2, next_cursor = query(db, User).with_limit(5).with_cursor(cursor).select_with_cursor()

        assert [user.name for user in page1] == ["Alice", "Bob"]
        assert cursor != ""
        assert page2 == []
        assert next_cursor == cursor

    def test_first_page_without_cursor(self, db, seeded_users):
        """Test an unbounded cursor select returns everything and a cursor."""
        results, cursor = query(db, User).select_with_cursor()

        assert len(results) == 2
        assert isinstance(cursor, str)

    def test_backend_failure_returns_no_partial_page(self, db, many_users):
        """Test a failure while iterating raises instead of returning a page."""
        many_users.fail_on("run_query", core_exceptions.ServiceUnavailable("down"))

        with pytest.raises(RetryableError) as exc_info:
            query(db, User).with_limit(10).select_with_cursor()

        assert exc_info.value.operation == "select-with-cursor"


class TestTotal:
    """Test the count aggregation."""

    def test_total_counts_matches(self, db, seeded_users):
        """Test total counts only entities matching the filters."""
        assert query(db, User).with_filter("status", FilterOperator.EQUAL, "active").total() == 1
        assert query(db, User).total() == 2

    def test_total_ignores_order_limit_and_offset(self, db, many_users):
        """Test order, limit and offset do not change the count."""
        builder = query(db, User).with_order("age").with_limit(3).with_offset(2)

        assert builder.total() == 25
        _, payload = many_users.calls[-1]
        assert payload["order"] == []
        assert payload["timeout"] == db.config.timeout_seconds

    def test_total_ignores_cursor(self, db, many_users):
        """Test total is available on a cursor-paginated builder."""
        _, cursor = query(db, User).with_limit(10).select_with_cursor()

        assert query(db, User).with_cursor(cursor).total() == 25

    def test_total_on_empty_kind(self, db):
        """Test the count of an empty kind is zero."""
        assert query(db, User).total() == 0

    @pytest.mark.parametrize("value,expected", [(0.0, 0), (3.0, 3)])
    def test_integral_float_count_accepted(self, db, value, expected):
        """Test whole-number float counts are returned as integers."""
        self._mock_aggregation(db, [Mock(alias=COUNT_ALIAS, value=value)])

        total = query(db, User).total()

        assert total == expected
        assert type(total) is int

    def _mock_aggregation(self, db, results):
        client = Mock()
        client.aggregation_query.return_value.count.return_value.fetch.return_value = [results]
        db._client = client
        return client

    def test_missing_alias_raises_aggregation_error(self, db):
        """Test a result without the count alias is a protocol error."""
        self._mock_aggregation(db, [Mock(alias="other", value=3)])

        with pytest.raises(AggregationError, match="count result not found") as exc_info:
            query(db, User).total()

        assert exc_info.value.alias == COUNT_ALIAS
        assert not isinstance(exc_info.value, BackendError)

    @pytest.mark.parametrize("value,type_name", [(2.5, "float"), ("7", "str"), (True, "bool"), (None, "NoneType")])
    def test_non_integer_count_raises_aggregation_error(self, db, value, type_name):
        """Test a count that is not an integer is a protocol error."""
        self._mock_aggregation(db, [Mock(alias=COUNT_ALIAS, value=value)])

        with pytest.raises(AggregationError, match=f"unexpected count type: {type_name}"):
            query(db, User).total()

    def test_count_requested_under_alias(self, db):
        """Test the aggregation asks for the count under the expected alias."""
        client = self._mock_aggregation(db, [Mock(alias=COUNT_ALIAS, value=4)])

        assert query(db, User).total() == 4
        client.aggregation_query.return_value.count.assert_called_once_with(alias=COUNT_ALIAS)

    def test_total_backend_failure(self, db, seeded_users):
        """Test aggregation failures are mapped."""
        seeded_users.fail_on(
            "run_aggregation_query",
            core_exceptions.FailedPrecondition("no matching index found"),
        )

        with pytest.raises(IndexRequiredError):
            query(db, User).with_filter("status", FilterOperator.EQUAL, "active").total()


class TestBackendFailures:
    """Test backend errors surfaced by execution methods."""

    def test_select_failure_is_mapped_and_chained(self, db, seeded_users):
        """Test the mapped error keeps the backend exception as its cause."""
        failure = core_exceptions.ServiceUnavailable("backend down")
        seeded_users.fail_on("run_query", failure)

        with pytest.raises(RetryableError) as exc_info:
            query(db, User).select()

        assert exc_info.value.__cause__ is failure
        assert exc_info.value.original_error is failure
        assert exc_info.value.kind == "User"
        assert exc_info.value.operation == "select"

    def test_failure_is_logged(self, db, seeded_users, caplog):
        """Test failures are logged as '<store> <kind> <operation>-error <details>'."""
        seeded_users.fail_on("run_query", core_exceptions.InvalidArgument("bad filter"))

        with caplog.at_level(logging.ERROR, logger="datastore_wrapper"):
            with pytest.raises(BackendError):
                query(db, User).select()

        assert "datastore User select-error" in caplog.text
        assert "bad filter" in caplog.text

    def test_select_keys_failure(self, db, seeded_users):
        """Test keys-only failures are mapped."""
        seeded_users.fail_on("run_query", core_exceptions.PermissionDenied("nope"))

        with pytest.raises(BackendError) as exc_info:
            query(db, User).select_keys()

        assert exc_info.value.operation == "select-keys"
