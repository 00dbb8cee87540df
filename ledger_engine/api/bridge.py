"""
Integration bridge endpoint.

Other modules deliver their domain events here; each supported
subject becomes one posted journal entry. Redelivering an event
returns the entry it already produced.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledger_engine.api.deps import get_publisher, get_tenant_id, http_error
from ledger_engine.events import EventPublisher
from ledger_engine.exceptions import LedgerError
from ledger_engine.models.base import get_db
from ledger_engine.services.bridge_service import BridgeService
from ledger_engine.schemas.bridge import BridgeEvent
from ledger_engine.schemas.ledger import JournalEntryResponse

router = APIRouter(prefix="/bridge", tags=["Integration Bridge"])


@router.get("/subjects", response_model=list[str])
def list_subjects(db: Session = Depends(get_db)):
    return BridgeService(db).subjects


@router.post("/events", response_model=JournalEntryResponse, status_code=201)
def handle_event(
    event: BridgeEvent,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        return BridgeService(db, publisher).handle(
            event.subject, tenant_id, event.payload
        )
    except LedgerError as e:
        raise http_error(e)
