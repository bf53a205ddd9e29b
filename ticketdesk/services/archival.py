"""Closure policy: which tickets leave the live set, and writing them to the archive."""
import logging
from datetime import datetime
from itertools import groupby
from typing import Iterable, List, NamedTuple

from ticketdesk.schemas.ticket_schema import TicketRecord
from ticketdesk.services.lifecycle import (
    ACTIVE,
    CLOSED_ACTION,
    EXPIRED_ACTION,
    OPEN,
    DistributionPolicy,
    DEFAULT_POLICY,
    is_inactive,
)
from ticketdesk.services.ticket_store import LogEntry, TicketStore

logger = logging.getLogger(__name__)

SYSTEM_USER = "system"


class ArchiveItem(NamedTuple):
    ticket: TicketRecord
    action: str
    details: str


def select_expired(
    live: Iterable[TicketRecord],
    batch_incidents: set,
    now: datetime,
    policy: DistributionPolicy = DEFAULT_POLICY,
) -> List[ArchiveItem]:
    """Open/Active tickets missing from the latest upload that nobody touched for a while."""
    expired = []
    for t in live:
        if t.incident in batch_incidents or t.status not in (OPEN, ACTIVE):
            continue
        if is_inactive(t, now, policy.expiry_inactivity):
            expired.append(ArchiveItem(t, EXPIRED_ACTION, "Absent from latest upload and inactive"))
    return expired


def archive(store: TicketStore, items: Iterable[ArchiveItem], now: datetime) -> List[ArchiveItem]:
    """Write archive rows, drop the live rows and log one audit entry per ticket.

    Runs inside the caller's transaction. Returns the items that were archived;
    tickets that changed since they were read stay live and are not logged.
    """
    items = sorted(items, key=lambda i: (i.action, i.details))
    done: List[ArchiveItem] = []
    for (action, details), group in groupby(items, key=lambda i: (i.action, i.details)):
        tickets = store.archive_tickets([i.ticket for i in group], action, now, details)
        done.extend(ArchiveItem(t, action, details) for t in tickets)
        store.append_assignment_log(
            LogEntry(
                ticket_id=t.incident,
                username=t.handled_by or t.assigned_to or SYSTEM_USER,
                action=action,
                timestamp=now,
                details=details,
                level=t.level,
            )
            for t in tickets
        )
    return done


def daily_reset(store: TicketStore, now: datetime) -> int:
    """Close out every live ticket. Used at the end of a working day."""
    live = store.load_all_tickets()
    count = len(archive(store, [ArchiveItem(t, CLOSED_ACTION, "Daily Reset") for t in live], now))
    store.commit()
    logger.info("Daily reset archived %s ticket(s)", count)
    return count
