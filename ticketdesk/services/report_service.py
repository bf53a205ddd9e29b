from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from ticketdesk.schemas.report_schema import ActiveTicketDetail, AgentPerformance
from ticketdesk.schemas.ticket_schema import _as_utc
from ticketdesk.services.lifecycle import ACTIVE, COMPLETED, utcnow
from ticketdesk.services.ticket_store import TicketStore


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _in_day(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    value = _as_utc(value)
    return value is not None and start <= value < end


def build_performance_report(store: TicketStore, day: Optional[date] = None, now: Optional[datetime] = None) -> List[AgentPerformance]:
    """Per-agent workload for one UTC day.

    Counts tickets assigned that day, tickets completed that day and tickets
    archived that day. Handling time runs from assignment to completion (or
    archive, or now for tickets still active).
    """
    now = now or utcnow()
    day = day or now.date()
    start, end = day_bounds(day)

    # username -> (elapsed seconds per ticket, active details)
    acc: Dict[str, Tuple[List[float], List[ActiveTicketDetail]]] = {}

    def record(username: Optional[str], assigned_at: Optional[datetime], finished_at: Optional[datetime]) -> Optional[float]:
        if not username or assigned_at is None or finished_at is None:
            return None
        elapsed = max((finished_at - assigned_at).total_seconds(), 0.0)
        acc.setdefault(username, ([], []))[0].append(elapsed)
        return elapsed

    for t in store.load_all_tickets():
        if t.status == ACTIVE and _in_day(t.last_assigned_time, start, end):
            elapsed = record(t.assigned_to, t.last_assigned_time, now)
            if elapsed is not None:
                acc[t.assigned_to][1].append(
                    ActiveTicketDetail(
                        incident=t.incident,
                        last_assigned_time=t.last_assigned_time,
                        elapsed_minutes=round(elapsed / 60, 2),
                    )
                )
        elif t.status == COMPLETED and _in_day(t.last_updated, start, end):
            record(t.handled_by, t.last_assigned_time, t.last_updated)

    for c in store.load_closed_between(start, end):
        record(c.handled_by or c.assigned_to, _as_utc(c.last_assigned_time), _as_utc(c.closed_at))

    report = []
    for username in sorted(acc):
        elapsed, active = acc[username]
        report.append(
            AgentPerformance(
                username=username,
                total_tickets=len(elapsed),
                active_tickets=len(active),
                average_minutes=round(sum(elapsed) / len(elapsed) / 60, 2) if elapsed else None,
                active_ticket_details=active,
            )
        )
    return report
