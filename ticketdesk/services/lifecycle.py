"""Per-ticket state machine.

    Open --assign--> Active --complete--> Completed --escalate--> Pending --bulk upload--> Open
                     Active --stale------> Open
                                          Completed --max level / too old--> archived

Every function here works on a single TicketRecord and never touches storage.
The mutating helpers keep ``assigned_to`` set exactly while a ticket is Active.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from ticketdesk.core.config import Settings, settings
from ticketdesk.core.errors import TicketConflictError
from ticketdesk.schemas.ticket_schema import TicketRecord
from ticketdesk.services.levels import is_max_level, next_level

logger = logging.getLogger(__name__)

OPEN = "Open"
ACTIVE = "Active"
COMPLETED = "Completed"
PENDING = "Pending"

CLOSED_ACTION = "Closed"
EXPIRED_ACTION = "Expired"


@dataclass(frozen=True)
class DistributionPolicy:
    reassignment_timeout: timedelta = timedelta(minutes=20)
    completed_max_age: timedelta = timedelta(hours=24)
    expiry_inactivity: timedelta = timedelta(hours=1)
    # Effective behavior is one ticket in flight per agent.
    max_per_agent: int = 1
    retain_assignee_on_escalation: bool = True
    cycle_timeout_seconds: float = 8.0

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "DistributionPolicy":
        return cls(
            reassignment_timeout=timedelta(minutes=cfg.REASSIGNMENT_TIMEOUT_MINUTES),
            completed_max_age=timedelta(hours=cfg.COMPLETED_MAX_AGE_HOURS),
            expiry_inactivity=timedelta(minutes=cfg.EXPIRY_INACTIVITY_MINUTES),
            max_per_agent=cfg.MAX_TICKETS_PER_AGENT,
            retain_assignee_on_escalation=cfg.RETAIN_ASSIGNEE_ON_ESCALATION,
            cycle_timeout_seconds=cfg.DISTRIBUTION_TIMEOUT_SECONDS,
        )


DEFAULT_POLICY = DistributionPolicy()


class EscalationDecision(NamedTuple):
    new_status: str
    new_level: str
    archive: bool
    reason: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def last_touched(ticket: TicketRecord) -> Optional[datetime]:
    return ticket.last_updated or ticket.last_assigned_time


def is_stale_assignment(ticket: TicketRecord, now: datetime, policy: DistributionPolicy = DEFAULT_POLICY) -> bool:
    return (
        ticket.status == ACTIVE
        and ticket.last_assigned_time is not None
        and now - ticket.last_assigned_time >= policy.reassignment_timeout
    )


def is_inactive(ticket: TicketRecord, now: datetime, window: timedelta) -> bool:
    touched = last_touched(ticket)
    return touched is not None and now - touched > window


def evaluate_escalation(
    ticket: TicketRecord,
    now: Optional[datetime] = None,
    policy: DistributionPolicy = DEFAULT_POLICY,
) -> EscalationDecision:
    """Decide where a ticket goes next. Only Completed tickets ever move here."""
    if ticket.status != COMPLETED:
        return EscalationDecision(ticket.status, ticket.level, False)

    now = now or utcnow()
    if is_inactive(ticket, now, policy.completed_max_age):
        return EscalationDecision(COMPLETED, ticket.level, True, "Completed ticket exceeded maximum age")
    if is_max_level(ticket.category, ticket.level):
        return EscalationDecision(COMPLETED, ticket.level, True, f"Completed at max level {ticket.level}")
    return EscalationDecision(PENDING, next_level(ticket.level, ticket.category), False)


def apply_escalation(
    ticket: TicketRecord,
    decision: EscalationDecision,
    now: datetime,
    policy: DistributionPolicy = DEFAULT_POLICY,
) -> None:
    """Move a Completed ticket to Pending per ``decision``. Archive decisions are left to the caller."""
    if decision.archive or decision.new_status != PENDING:
        return
    previous = ticket.level
    ticket.status = PENDING
    ticket.level = decision.new_level
    ticket.assigned_to = None
    ticket.last_assigned_time = None
    if not policy.retain_assignee_on_escalation:
        ticket.handled_by = None
    ticket.last_updated = now
    logger.debug("Ticket %s escalated %s -> %s and moved to Pending", ticket.incident, previous, ticket.level)


def reclaim(ticket: TicketRecord, now: datetime) -> Optional[str]:
    """Active -> Open. Returns the agent the ticket was taken from."""
    previous = ticket.assigned_to
    ticket.status = OPEN
    ticket.assigned_to = None
    ticket.last_assigned_time = None
    ticket.last_updated = now
    logger.debug("Reclaimed stale ticket %s from %s", ticket.incident, previous)
    return previous


def reopen_pending(ticket: TicketRecord, now: datetime) -> None:
    """Pending -> Open for a fresh round of distribution."""
    ticket.status = OPEN
    ticket.assigned_to = None
    ticket.last_assigned_time = None
    ticket.handled_by = None
    ticket.detail_case = None
    ticket.analisa = None
    ticket.last_updated = now
    logger.debug("Reopened pending ticket %s at level %s", ticket.incident, ticket.level)


def assign(ticket: TicketRecord, username: str, now: datetime) -> None:
    if ticket.status != OPEN or ticket.assigned_to:
        raise TicketConflictError(f"Ticket '{ticket.incident}' is not open for assignment")
    ticket.status = ACTIVE
    ticket.assigned_to = username
    ticket.last_assigned_time = now
    ticket.last_updated = now


def complete(
    ticket: TicketRecord,
    username: str,
    now: datetime,
    *,
    detail_case: str,
    analisa: str,
    escalation_level: str,
) -> None:
    """Active -> Completed by the agent holding the ticket."""
    if ticket.status != ACTIVE or ticket.assigned_to != username:
        raise TicketConflictError(f"Ticket '{ticket.incident}' is not active for {username}")
    ticket.status = COMPLETED
    ticket.assigned_to = None
    ticket.handled_by = username
    ticket.detail_case = detail_case
    ticket.analisa = analisa
    ticket.escalation_level = escalation_level
    ticket.last_updated = now
