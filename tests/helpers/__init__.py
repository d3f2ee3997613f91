"""Test helpers: in-memory Datastore client, canned client responses and sample record types."""

from .datastore_api import MoreResults, count_response, lookup_response, make_client, query_response
from .fake_datastore import FakeDatastoreClient
from .models import Account, Plan, User

__all__ = [
    "Account",
    "MoreResults",
    "FakeDatastoreClient",
    "Plan",
    "User",
    "count_response",
    "lookup_response",
    "make_client",
    "query_response",
]
