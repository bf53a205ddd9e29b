"""Agent presence bookkeeping: who is logged in and who is taking tickets."""
import logging
from datetime import datetime
from typing import List, Optional

from ticketdesk.core.errors import AgentNotFoundError
from ticketdesk.schemas.agent_schema import AgentRecord
from ticketdesk.services.lifecycle import utcnow
from ticketdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)


def mark_logged_in(store: TicketStore, username: str, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    if not store.update_agent(username, logged_in=True, last_activity=now):
        raise AgentNotFoundError(username)
    store.commit()
    logger.info("Agent %s logged in", username)


def mark_logged_out(store: TicketStore, username: str, now: Optional[datetime] = None) -> None:
    """Logging out also stops the agent from receiving tickets."""
    now = now or utcnow()
    if not store.update_agent(username, logged_in=False, is_working=False, last_logout_time=now):
        raise AgentNotFoundError(username)
    store.commit()
    logger.info("Agent %s logged out", username)


def set_working(store: TicketStore, username: str, is_working: bool, now: Optional[datetime] = None) -> AgentRecord:
    now = now or utcnow()
    if not store.update_agent(username, is_working=is_working, last_activity=now):
        raise AgentNotFoundError(username)
    store.commit()
    logger.info("Agent %s is_working=%s", username, is_working)
    return store.load_agent(username)


def list_active_agents(store: TicketStore) -> List[AgentRecord]:
    return store.load_online_agents()
