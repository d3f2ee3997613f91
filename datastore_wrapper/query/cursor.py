"""
Cursor codec.

Datastore cursors are opaque bytes. The client library exposes them as
url-safe base64 text (``Iterator.next_page_token``) and expects the same
text back as ``start_cursor``. This layer hands that text to callers
untouched and only decodes it to check that it is well formed.
"""

import base64
import binascii
from typing import Any, Optional, Union


def encode_cursor(raw: Union[bytes, str, None]) -> str:
    """Return the caller-facing cursor string for a backend page token."""
    if not raw:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("ascii")
    return raw


def decode_cursor(token: Optional[str]) -> Optional[bytes]:
    """
    Decode a cursor string to raw cursor bytes.

    Returns None for empty or malformed input instead of raising.
    """
    if not token:
        return None
    try:
        padded = token + "=" * (-len(token) % 4)
        raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        return None
    return raw or None


def to_start_cursor(raw: bytes) -> bytes:
    """Encode raw cursor bytes in the form ``Query.fetch(start_cursor=...)`` expects."""
    return base64.urlsafe_b64encode(raw)


def track_end_cursor(iterator: Any) -> Any:
    """
    Keep the end cursor of every result batch on ``iterator.end_cursor``.

    The client library clears ``next_page_token`` once a batch reports
    NO_MORE_RESULTS, although the batch still carries the position after its
    last entity. Resuming from that position returns only entities that
    appear later, so it is recorded here (url-safe base64, like the page token).
    """
    iterator.end_cursor = None
    process = iterator._process_query_results

    def _process_query_results(response_pb):
        entity_pbs = process(response_pb)
        if response_pb.batch.end_cursor:
            iterator.end_cursor = base64.urlsafe_b64encode(response_pb.batch.end_cursor)
        return entity_pbs

    iterator._process_query_results = _process_query_results
    return iterator
