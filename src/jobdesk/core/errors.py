"""Typed errors surfaced by gateways, the query planner and list controllers."""

from __future__ import annotations


class JobdeskError(Exception):
    """Base class for all errors raised by jobdesk."""

    kind = "error"


class QueryFailed(JobdeskError):
    """A read could not be served: gateway unavailable, timed out, or the predicates were malformed."""

    kind = "query_failed"


class WriteFailed(JobdeskError):
    """A create, update or delete was rejected."""

    kind = "write_failed"


class NotFound(JobdeskError):
    """The referenced record id is not (or no longer) present."""

    kind = "not_found"

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection}/{record_id} not found")
        self.collection = collection
        self.record_id = record_id


class StaleOperation(JobdeskError):
    """A read was superseded by a newer one before it resolved. Never leaves the controller."""

    kind = "stale"
