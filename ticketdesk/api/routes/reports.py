from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends

from ticketdesk.api.dependencies import get_store
from ticketdesk.api.errors import to_http_error
from ticketdesk.api.security import require_admin
from ticketdesk.core.errors import TicketDeskError
from ticketdesk.models.user import User
from ticketdesk.schemas.report_schema import AgentPerformance
from ticketdesk.services.report_service import build_performance_report
from ticketdesk.services.ticket_store import TicketStore

router = APIRouter()


@router.get("/performance", response_model=List[AgentPerformance])
def agent_performance(
    day: Optional[date] = None,
    store: TicketStore = Depends(get_store),
    admin: User = Depends(require_admin),
):
    """Tickets handled and average handling time per agent for one day (UTC, default today)."""
    try:
        return build_performance_report(store, day)
    except TicketDeskError as e:
        raise to_http_error(e)
