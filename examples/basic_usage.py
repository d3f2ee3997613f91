#!/usr/bin/env python3
"""
Basic usage examples for the Datastore wrapper library.

This example demonstrates:
1. Setting up configuration and connecting
2. Writing records with upsert_multi and auto-allocated ids
3. Filtered, ordered and offset-paginated queries
4. Cursor pagination across requests
5. Counting, batch lookups and query-driven deletes

Run it against the local emulator:
    gcloud beta emulators datastore start --project=local-project
    $(gcloud beta emulators datastore env-init)
    python examples/basic_usage.py
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel

from datastore_wrapper import (
    ApplyOutcome,
    DatastoreConfig,
    DatastoreMixin,
    DateTimeMixin,
    FilterOperator,
    PaginationConflictError,
    connect,
    query,
)


class Task(DatastoreMixin, DateTimeMixin, BaseModel):
    __kind__ = "Task"
    __exclude_from_indexes__ = ("description",)

    title: str
    status: str = "open"
    priority: int = 0
    description: str = ""
    labels: List[str] = []
    created_at: Optional[datetime] = None


def main():
    """Demonstrate basic usage of the Datastore wrapper."""

    # 1. Configure and connect
    print("1. Connecting to Datastore...")
    config = DatastoreConfig.for_emulator()  # or DatastoreConfig.from_env()
    db = connect(config=config)

    # 2. Write records
    print("2. Writing tasks...")
    now = datetime.now(timezone.utc)
    query(db, Task).upsert_multi({
        f"task-{i:03d}": Task(title=f"Task {i}", priority=i % 5, created_at=now)
        for i in range(120)
    })
    key = query(db, Task).insert_with_auto_id(Task(title="Unplanned", status="blocked"))
    print(f"   Inserted task with id {key.id}")

    # 3. Filter, order and paginate by offset
    print("3. Querying high priority tasks...")
    urgent = (
        query(db, Task)
        .with_filter("status", FilterOperator.EQUAL, "open")
        .with_filter("priority", FilterOperator.GREATER_EQUAL, 3)
        .with_order_desc("priority")
        .with_limit(10)
        .with_offset(10)
        .select()
    )
    print(f"   Second page of urgent tasks: {[task.title for task in urgent]}")

    # Invalid configuration is ignored, not raised
    builder = query(db, Task).with_limit(0)
    if builder.last_outcome is not ApplyOutcome.APPLIED:
        print(f"   with_limit(0) was {builder.last_outcome.value}")

    # 4. Cursor pagination
    print("4. Walking all open tasks with cursors...")
    cursor = ""
    pages = 0
    while True:
        page, cursor = (
            query(db, Task)
            .with_filter("status", FilterOperator.EQUAL, "open")
            .with_limit(50)
            .with_cursor(cursor)
            .select_with_cursor()
        )
        pages += 1
        if len(page) < 50:
            break
    print(f"   Read {pages} pages")

    # Mixing offset and cursor pagination is rejected when executed
    try:
        query(db, Task).with_offset(5).with_cursor(cursor).select_with_cursor()
    except PaginationConflictError as e:
        print(f"   Rejected: {e}")

    # 5. Count, look up and delete
    print("5. Counting, looking up and deleting...")
    total = query(db, Task).with_filter("status", FilterOperator.EQUAL, "open").total()
    print(f"   Open tasks: {total}")

    found = query(db, Task).get_multi(["task-000", "task-001", "no-such-task"])
    print(f"   Lookup: {[task.title if task else None for task in found]}")

    deleted = query(db, Task).delete()
    print(f"   Deleted {deleted} tasks")


if __name__ == "__main__":
    main()
