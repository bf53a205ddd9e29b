"""Ticket distribution engine.

``distribute`` is the pure scheduler: given a snapshot of every live ticket it
applies housekeeping transitions and picks the next ticket(s) for one agent.
``run_distribution_cycle`` wraps it with loading, conditional persistence,
audit logging and the per-cycle time budget.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ticketdesk.core.errors import AgentNotFoundError, DistributionTimeoutError, StoreError
from ticketdesk.schemas.ticket_schema import TicketRecord
from ticketdesk.services.archival import SYSTEM_USER, ArchiveItem, archive
from ticketdesk.services.levels import priority_key
from ticketdesk.services.lifecycle import (
    ACTIVE,
    CLOSED_ACTION,
    COMPLETED,
    OPEN,
    PENDING,
    DEFAULT_POLICY,
    DistributionPolicy,
    apply_escalation,
    assign,
    evaluate_escalation,
    is_stale_assignment,
    reclaim,
    reopen_pending,
    utcnow,
)
from ticketdesk.services.ticket_store import LogEntry, TicketStore, UpsertOp

logger = logging.getLogger(__name__)

ASSIGNED = "assigned"
NO_CAPACITY = "no_capacity"
NO_TICKETS = "no_tickets"
NOT_WORKING = "not_working"
OFFLINE = "offline"


class Deadline:
    """Wall-clock budget checked between stages of a cycle."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def check(self, stage: str) -> None:
        if self._clock() > self.expires_at:
            raise DistributionTimeoutError(f"Operation exceeded {self.seconds:g}s budget during {stage}")


@dataclass
class DistributionPlan:
    tickets: List[TicketRecord]
    assigned: List[TicketRecord] = field(default_factory=list)
    reclaimed: List[Tuple[TicketRecord, Optional[str]]] = field(default_factory=list)
    escalated: List[TicketRecord] = field(default_factory=list)
    reopened: List[TicketRecord] = field(default_factory=list)
    archived: List[ArchiveItem] = field(default_factory=list)
    outcome: str = NO_TICKETS


@dataclass
class CycleResult:
    outcome: str
    assigned_tickets: List[TicketRecord] = field(default_factory=list)
    newly_assigned: List[TicketRecord] = field(default_factory=list)
    archived_count: int = 0
    reclaimed_count: int = 0
    escalated_count: int = 0
    reopened_count: int = 0


def distribute(
    tickets: List[TicketRecord],
    online_agents: Iterable[str],
    requesting_user: str,
    excluded_ticket_ids: Iterable[str] = (),
    assignment_history: Optional[Dict[str, Set[str]]] = None,
    max_per_agent: Optional[int] = None,
    is_bulk_upload: bool = False,
    requester_is_working: bool = True,
    now: Optional[datetime] = None,
    policy: DistributionPolicy = DEFAULT_POLICY,
) -> DistributionPlan:
    """Run one scheduling pass over ``tickets`` (mutated in place) for ``requesting_user``.

    The returned plan holds the surviving working set plus what changed. Nothing
    is persisted here.
    """
    now = now or utcnow()
    history = assignment_history or {}
    excluded = set(excluded_ticket_ids)
    limit = policy.max_per_agent if max_per_agent is None else max_per_agent
    plan = DistributionPlan(tickets=[])

    # 1. A new batch reopens everything that was waiting on it.
    if is_bulk_upload:
        for t in tickets:
            if t.status == PENDING:
                reopen_pending(t, now)
                plan.reopened.append(t)

    # 2. Take back assignments nobody worked on in time.
    for t in tickets:
        if is_stale_assignment(t, now, policy):
            previous = reclaim(t, now)
            plan.reclaimed.append((t, previous))

    # 3 & 4. Escalate or archive completed work.
    for t in tickets:
        if t.status != COMPLETED:
            plan.tickets.append(t)
            continue
        decision = evaluate_escalation(t, now, policy)
        if decision.archive:
            plan.archived.append(ArchiveItem(t, CLOSED_ACTION, decision.reason or ""))
            continue
        apply_escalation(t, decision, now, policy)
        plan.escalated.append(t)
        plan.tickets.append(t)

    if not requester_is_working:
        plan.outcome = NOT_WORKING
        return plan
    if requesting_user not in set(online_agents):
        plan.outcome = OFFLINE
        return plan

    # 5. One agent, bounded work in flight.
    held = sum(1 for t in plan.tickets if t.status == ACTIVE and t.assigned_to == requesting_user)
    remaining = limit - held
    if remaining <= 0:
        logger.debug("%s already holds %s active ticket(s); nothing assigned", requesting_user, held)
        plan.outcome = NO_CAPACITY
        return plan

    # 6. Never hand an agent something it skipped or has handled before.
    eligible = [
        t
        for t in plan.tickets
        if t.status == OPEN
        and not t.assigned_to
        and t.incident not in excluded
        and requesting_user not in history.get(t.incident, ())
    ]
    # 7. K1 before K2 before K3, then the most escalated first.
    eligible.sort(key=lambda t: priority_key(t.category, t.level))

    # 8.
    for t in eligible[:remaining]:
        assign(t, requesting_user, now)
        plan.assigned.append(t)
        logger.debug("Assigned ticket %s (%s/%s) to %s", t.incident, t.category, t.level, requesting_user)

    plan.outcome = ASSIGNED if plan.assigned else NO_TICKETS
    return plan


def run_distribution_cycle(
    store: TicketStore,
    username: str,
    is_bulk_upload: bool = False,
    excluded_ticket_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
    policy: Optional[DistributionPolicy] = None,
) -> CycleResult:
    """Load, distribute, persist. Either everything commits or nothing does."""
    policy = policy or DistributionPolicy.from_settings()
    now = now or utcnow()
    deadline = Deadline(policy.cycle_timeout_seconds)

    try:
        agent = store.load_agent(username)
        if agent is None:
            raise AgentNotFoundError(username)

        tickets = store.load_all_tickets()
        before = {t.incident: t.model_copy() for t in tickets}
        online = [a.username for a in store.load_online_agents()]
        history = store.load_assignment_history()
        deadline.check("load")

        plan = distribute(
            tickets,
            online,
            username,
            excluded_ticket_ids=excluded_ticket_ids,
            assignment_history=history,
            is_bulk_upload=is_bulk_upload,
            requester_is_working=agent.is_working,
            now=now,
            policy=policy,
        )
        deadline.check("distribute")

        ops = []
        for t in plan.tickets:
            old = before[t.incident]
            if t != old:
                ops.append(UpsertOp(t, expected_status=old.status, expected_assigned_to=old.assigned_to))
        applied = {op.ticket.incident for op in store.persist_tickets(ops)}

        newly_assigned = [t for t in plan.assigned if t.incident in applied]
        lost = len(plan.assigned) - len(newly_assigned)
        if lost:
            logger.warning("%s ticket assignment(s) for %s lost to a concurrent cycle", lost, username)

        archived_count = len(archive(store, plan.archived, now))
        store.append_assignment_log(_log_entries(plan, before, applied, username, now))
        if newly_assigned:
            store.update_agent(username, last_assigned_time=now, last_activity=now)

        deadline.check("persist")
        store.commit()
    except DistributionTimeoutError:
        store.rollback()
        logger.warning("Distribution cycle for %s timed out; nothing committed", username)
        raise
    except (AgentNotFoundError, StoreError):
        store.rollback()
        raise

    lost_ids = {t.incident for t in plan.assigned} - applied
    held = [
        t
        for t in plan.tickets
        if t.status == ACTIVE and t.assigned_to == username and t.incident not in lost_ids
    ]
    outcome = plan.outcome
    if outcome == ASSIGNED and not newly_assigned:
        outcome = NO_TICKETS

    result = CycleResult(
        outcome=outcome,
        assigned_tickets=held,
        newly_assigned=newly_assigned,
        archived_count=archived_count,
        reclaimed_count=sum(1 for t, _ in plan.reclaimed if t.incident in applied),
        escalated_count=sum(1 for t in plan.escalated if t.incident in applied),
        reopened_count=sum(1 for t in plan.reopened if t.incident in applied),
    )
    logger.info(
        "Distribution cycle user=%s bulk=%s outcome=%s assigned=%s reclaimed=%s escalated=%s reopened=%s archived=%s",
        username,
        is_bulk_upload,
        result.outcome,
        len(newly_assigned),
        result.reclaimed_count,
        result.escalated_count,
        result.reopened_count,
        archived_count,
    )
    return result


def _log_entries(
    plan: DistributionPlan,
    before: Dict[str, TicketRecord],
    applied: Set[str],
    username: str,
    now: datetime,
) -> List[LogEntry]:
    entries = []
    for t in plan.assigned:
        if t.incident in applied:
            entries.append(LogEntry(t.incident, username, "Assigned", now, f"Assigned at level {t.level}", t.level))
    for t, previous in plan.reclaimed:
        if t.incident in applied and previous:
            entries.append(LogEntry(t.incident, previous, "Reclaimed", now, "Assignment timed out", t.level))
    for t in plan.escalated:
        if t.incident in applied:
            old = before[t.incident]
            entries.append(
                LogEntry(
                    t.incident,
                    old.handled_by or SYSTEM_USER,
                    "Status Change",
                    now,
                    f"Completed -> Pending ({old.level} -> {t.level})",
                    t.level,
                )
            )
    for t in plan.reopened:
        if t.incident in applied:
            entries.append(LogEntry(t.incident, SYSTEM_USER, "Status Change", now, "Pending -> Open", t.level))
    return entries
