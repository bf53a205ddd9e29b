import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ticketdesk.api.dependencies import get_store
from ticketdesk.api.errors import to_http_error
from ticketdesk.api.routes.distribution import to_response
from ticketdesk.api.security import get_current_user, require_admin
from ticketdesk.core.errors import TicketDeskError
from ticketdesk.models.user import User
from ticketdesk.schemas.distribution_schema import UploadResponse
from ticketdesk.schemas.ticket_schema import (
    ClosedTicketResponse,
    CompleteTicketRequest,
    TicketLogResponse,
    TicketRecord,
    TicketUploadRequest,
)
from ticketdesk.services.archival import daily_reset
from ticketdesk.services.distribution import run_distribution_cycle
from ticketdesk.services.ingest_service import ingest_batch
from ticketdesk.services.lifecycle import COMPLETED, utcnow
from ticketdesk.services.report_service import day_bounds
from ticketdesk.services.ticket_service import claim_ticket, complete_ticket
from ticketdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[TicketRecord])
def list_tickets(
    view: Optional[Literal["dashboard", "log"]] = None,
    store: TicketStore = Depends(get_store),
    user: User = Depends(get_current_user),
):
    """dashboard: work still in flight; log: completed work; default: every live ticket."""
    try:
        if view == "dashboard":
            return store.load_tickets(exclude_statuses=[COMPLETED])
        if view == "log":
            return store.load_tickets(statuses=[COMPLETED])
        return store.load_all_tickets()
    except TicketDeskError as e:
        raise to_http_error(e)


@router.post("/upload", response_model=UploadResponse)
def upload_tickets(
    request: TicketUploadRequest,
    store: TicketStore = Depends(get_store),
    admin: User = Depends(require_admin),
):
    """Merge a parsed batch into the live tickets, then run a bulk distribution cycle."""
    try:
        summary = ingest_batch(store, request.tickets)
        result = run_distribution_cycle(store, admin.username, is_bulk_upload=True)
    except TicketDeskError as e:
        raise to_http_error(e)

    return UploadResponse(
        inserted=summary.inserted,
        updated=summary.updated,
        escalated=summary.escalated,
        closed=summary.closed,
        expired=summary.expired,
        distribution=to_response(result),
    )


@router.get("/closed", response_model=List[ClosedTicketResponse])
def list_closed_tickets(store: TicketStore = Depends(get_store), user: User = Depends(get_current_user)):
    try:
        return store.load_closed_tickets()
    except TicketDeskError as e:
        raise to_http_error(e)


@router.post("/daily-reset")
def reset_day(store: TicketStore = Depends(get_store), admin: User = Depends(require_admin)):
    try:
        archived = daily_reset(store, utcnow())
    except TicketDeskError as e:
        raise to_http_error(e)
    return {"success": True, "archived": archived}


@router.get("/last-upload")
def last_upload_time(store: TicketStore = Depends(get_store), user: User = Depends(get_current_user)):
    try:
        return {"lastUploadTime": store.get_last_upload_time()}
    except TicketDeskError as e:
        raise to_http_error(e)


@router.get("/logs", response_model=List[TicketLogResponse])
def ticket_logs(
    day: date = Query(..., alias="date"),
    store: TicketStore = Depends(get_store),
    user: User = Depends(get_current_user),
):
    start, end = day_bounds(day)
    try:
        return store.load_logs_between(start, end)
    except TicketDeskError as e:
        raise to_http_error(e)


@router.post("/{incident}/claim", response_model=TicketRecord)
def claim(incident: str, store: TicketStore = Depends(get_store), user: User = Depends(get_current_user)):
    try:
        return claim_ticket(store, user.username, incident)
    except TicketDeskError as e:
        raise to_http_error(e)


@router.post("/{incident}/complete", response_model=TicketRecord)
def complete(
    incident: str,
    request: CompleteTicketRequest,
    store: TicketStore = Depends(get_store),
    user: User = Depends(get_current_user),
):
    try:
        return complete_ticket(store, user.username, incident, request)
    except TicketDeskError as e:
        raise to_http_error(e)
