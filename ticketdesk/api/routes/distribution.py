import logging

from fastapi import APIRouter, Depends

from ticketdesk.api.dependencies import get_store
from ticketdesk.api.errors import to_http_error
from ticketdesk.api.security import get_current_user
from ticketdesk.core.errors import TicketDeskError
from ticketdesk.models.user import User
from ticketdesk.schemas.distribution_schema import DistributionRequest, DistributionResponse
from ticketdesk.services.distribution import CycleResult, run_distribution_cycle
from ticketdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)
router = APIRouter()


def to_response(result: CycleResult) -> DistributionResponse:
    return DistributionResponse(
        outcome=result.outcome,
        assigned_tickets=result.assigned_tickets,
        newly_assigned=result.newly_assigned,
        archived_count=result.archived_count,
    )


@router.post("/cycle", response_model=DistributionResponse)
def run_cycle(
    request: DistributionRequest,
    user: User = Depends(get_current_user),
    store: TicketStore = Depends(get_store),
):
    """Run housekeeping and hand the calling agent its next ticket, if any."""
    try:
        result = run_distribution_cycle(
            store,
            user.username,
            is_bulk_upload=request.is_bulk_upload,
            excluded_ticket_ids=request.excluded_tickets,
        )
    except TicketDeskError as e:
        raise to_http_error(e)
    return to_response(result)
