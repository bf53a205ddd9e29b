import logging
from datetime import datetime
from typing import Optional

from ticketdesk.core.errors import (
    AgentNotFoundError,
    AgentNotWorkingError,
    TicketConflictError,
    TicketDeskError,
    TicketNotFoundError,
)
from ticketdesk.schemas.ticket_schema import CompleteTicketRequest, TicketRecord
from ticketdesk.services import lifecycle
from ticketdesk.services.lifecycle import ACTIVE, OPEN, DistributionPolicy, utcnow
from ticketdesk.services.ticket_store import LogEntry, TicketStore, UpsertOp

logger = logging.getLogger(__name__)


def claim_ticket(
    store: TicketStore,
    username: str,
    incident: str,
    now: Optional[datetime] = None,
    policy: Optional[DistributionPolicy] = None,
) -> TicketRecord:
    """Let a working agent pick a specific Open ticket instead of waiting for distribution.

    Distribution's eligibility rules still apply. The agent must be online and
    working, and must not have handled the ticket before.
    """
    policy = policy or DistributionPolicy.from_settings()
    now = now or utcnow()
    try:
        agent = store.load_agent(username)
        if agent is None:
            raise AgentNotFoundError(username)
        if not (agent.logged_in and agent.is_working):
            raise AgentNotWorkingError(username)

        ticket = store.get_ticket(incident)
        if ticket is None:
            raise TicketNotFoundError(incident)

        if username in store.load_assignment_history().get(incident, ()):
            raise TicketConflictError(f"{username} has already handled ticket '{incident}'")

        held = sum(1 for t in store.load_tickets(statuses=[ACTIVE]) if t.assigned_to == username)
        if held >= policy.max_per_agent:
            raise TicketConflictError(f"{username} already holds {held} active ticket(s)")

        lifecycle.assign(ticket, username, now)
        if not store.persist_tickets([UpsertOp(ticket, expected_status=OPEN, expected_assigned_to=None)]):
            raise TicketConflictError(f"Ticket '{incident}' was taken by someone else")

        store.append_assignment_log(
            [LogEntry(incident, username, "Assigned", now, f"Claimed at level {ticket.level}", ticket.level)]
        )
        store.update_agent(username, last_assigned_time=now, last_activity=now)
        store.commit()
    except TicketDeskError:
        store.rollback()
        raise

    logger.info("Agent %s claimed ticket %s", username, incident)
    return ticket


def complete_ticket(
    store: TicketStore,
    username: str,
    incident: str,
    request: CompleteTicketRequest,
    now: Optional[datetime] = None,
) -> TicketRecord:
    """Record the agent's resolution. Escalation happens on the next distribution cycle."""
    now = now or utcnow()
    try:
        ticket = store.get_ticket(incident)
        if ticket is None:
            raise TicketNotFoundError(incident)

        lifecycle.complete(
            ticket,
            username,
            now,
            detail_case=request.detail_case,
            analisa=request.analisa,
            escalation_level=request.escalation_level,
        )
        if not store.persist_tickets([UpsertOp(ticket, expected_status=ACTIVE, expected_assigned_to=username)]):
            raise TicketConflictError(f"Ticket '{incident}' is no longer assigned to {username}")

        store.append_assignment_log(
            [
                LogEntry(
                    incident,
                    username,
                    "Completed",
                    now,
                    f"Escalation Level: {request.escalation_level}",
                    ticket.level,
                )
            ]
        )
        store.update_agent(username, last_activity=now)
        store.commit()
    except TicketDeskError:
        store.rollback()
        raise

    logger.info("Agent %s completed ticket %s at level %s", username, incident, ticket.level)
    return ticket
