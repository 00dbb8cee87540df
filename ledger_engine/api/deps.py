"""
Shared FastAPI dependencies for the API layer.

Every endpoint is tenant-scoped through the X-Tenant-ID header.
Services raise LedgerError subclasses; http_error() turns one
into the HTTP response the client sees.
"""

from fastapi import Header, HTTPException

from ledger_engine.events import EventPublisher, get_event_publisher
from ledger_engine.exceptions import LedgerError


def get_tenant_id(
    x_tenant_id: str = Header(min_length=1, max_length=64),
) -> str:
    return x_tenant_id


def get_publisher() -> EventPublisher:
    return get_event_publisher()


def http_error(error: LedgerError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_dict())
