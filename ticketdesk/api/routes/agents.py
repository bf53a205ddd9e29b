from typing import List

from fastapi import APIRouter, Depends

from ticketdesk.api.dependencies import get_store
from ticketdesk.api.errors import to_http_error
from ticketdesk.api.security import get_current_user
from ticketdesk.core.errors import TicketDeskError
from ticketdesk.models.user import User
from ticketdesk.schemas.agent_schema import AgentRecord, AgentStatusRequest
from ticketdesk.services.agent_service import list_active_agents, set_working
from ticketdesk.services.ticket_store import TicketStore

router = APIRouter()


@router.post("/me/status", response_model=AgentRecord)
def update_my_status(
    request: AgentStatusRequest,
    user: User = Depends(get_current_user),
    store: TicketStore = Depends(get_store),
):
    """Start or stop receiving tickets."""
    try:
        return set_working(store, user.username, request.is_working)
    except TicketDeskError as e:
        raise to_http_error(e)


@router.get("/active", response_model=List[AgentRecord])
def get_active_agents(store: TicketStore = Depends(get_store), user: User = Depends(get_current_user)):
    try:
        return list_active_agents(store)
    except TicketDeskError as e:
        raise to_http_error(e)
