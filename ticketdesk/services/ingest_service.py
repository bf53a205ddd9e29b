import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from ticketdesk.core.config import settings
from ticketdesk.core.errors import DistributionTimeoutError, StoreError
from ticketdesk.schemas.ticket_schema import TicketRecord, TicketUploadRow
from ticketdesk.services.archival import SYSTEM_USER, ArchiveItem, archive, select_expired
from ticketdesk.services.distribution import Deadline
from ticketdesk.services.levels import clamp_level, classify_level, higher_level
from ticketdesk.services.lifecycle import (
    CLOSED_ACTION,
    COMPLETED,
    EXPIRED_ACTION,
    OPEN,
    DistributionPolicy,
    apply_escalation,
    evaluate_escalation,
    utcnow,
)
from ticketdesk.services.ticket_store import LogEntry, TicketStore, UpsertOp

logger = logging.getLogger(__name__)


@dataclass
class IngestSummary:
    inserted: int = 0
    updated: int = 0
    escalated: int = 0
    closed: int = 0
    expired: int = 0


def categorize_rows(store: TicketStore, rows: List[TicketUploadRow], default_category: Optional[str] = None) -> Dict[str, str]:
    """incident -> category, using the row's own category, then the SID filter table, then the default."""
    default_category = default_category or settings.DEFAULT_CATEGORY
    by_sid = store.lookup_categories(r.sid for r in rows if not r.category and r.sid)
    return {r.incident: r.category or by_sid.get(r.sid or "") or default_category for r in rows}


def ingest_batch(
    store: TicketStore,
    rows: List[TicketUploadRow],
    now: Optional[datetime] = None,
    policy: Optional[DistributionPolicy] = None,
) -> IngestSummary:
    """Merge an uploaded batch into the live tickets and commit.

    New incidents come in Open with a level derived from their TTR. Known ones
    get their SID/TTR/category refreshed; levels only ever go up. Completed
    tickets are settled (escalated to Pending or closed), and live Open/Active
    tickets missing from the batch expire once they have been idle long enough.
    """
    policy = policy or DistributionPolicy.from_settings()
    now = now or utcnow()
    deadline = Deadline(policy.cycle_timeout_seconds)
    summary = IngestSummary()

    # Later rows for the same incident win.
    batch: Dict[str, TicketUploadRow] = {r.incident: r for r in rows}

    try:
        categories = categorize_rows(store, list(batch.values()))
        live = {t.incident: t for t in store.load_all_tickets()}

        ops: List[UpsertOp] = []
        to_archive: List[ArchiveItem] = []
        escalated: List[tuple] = []

        def settle_completed(ticket: TicketRecord) -> None:
            decision = evaluate_escalation(ticket, now, policy)
            if decision.archive:
                to_archive.append(ArchiveItem(ticket, CLOSED_ACTION, decision.reason or ""))
                return
            old = ticket.model_copy()
            apply_escalation(ticket, decision, now, policy)
            ops.append(UpsertOp(ticket, expected_status=COMPLETED, expected_assigned_to=old.assigned_to))
            escalated.append((old, ticket))

        for incident, row in batch.items():
            deadline.check("batch save")
            category = categories[incident]
            computed = classify_level(category, row.ttr)
            existing = live.get(incident)

            if existing is None:
                ticket = TicketRecord(
                    incident=incident,
                    sid=row.sid,
                    ttr=row.ttr,
                    category=category,
                    level=computed,
                    status=OPEN,
                    last_updated=now,
                )
                ops.append(UpsertOp(ticket, conditional=False))
                summary.inserted += 1
                continue

            if existing.status == COMPLETED:
                settle_completed(existing)
                continue

            updated = existing.model_copy()
            updated.sid = row.sid or existing.sid
            updated.ttr = row.ttr
            updated.category = category
            updated.level = clamp_level(category, higher_level(clamp_level(category, existing.level), computed))
            updated.last_updated = now
            ops.append(UpsertOp(updated, expected_status=existing.status, expected_assigned_to=existing.assigned_to))
            summary.updated += 1

        absent = [t for inc, t in live.items() if inc not in batch]
        for t in absent:
            if t.status == COMPLETED:
                settle_completed(t)
        expired = select_expired(absent, set(batch), now, policy)
        to_archive.extend(expired)
        deadline.check("batch save")

        applied = {op.ticket.incident for op in store.persist_tickets(ops)}
        summary.escalated = sum(1 for _, t in escalated if t.incident in applied)
        archived = archive(store, to_archive, now)
        summary.expired = sum(1 for i in archived if i.action == EXPIRED_ACTION)
        summary.closed = len(archived) - summary.expired
        store.append_assignment_log(
            LogEntry(
                t.incident,
                old.handled_by or SYSTEM_USER,
                "Status Change",
                now,
                f"Completed -> Pending ({old.level} -> {t.level})",
                t.level,
            )
            for old, t in escalated
            if t.incident in applied
        )
        store.set_last_upload_time(now)

        deadline.check("batch save")
        store.commit()
    except (DistributionTimeoutError, StoreError):
        store.rollback()
        logger.warning("Batch upload of %s row(s) aborted; nothing committed", len(rows))
        raise

    logger.info(
        "Ingested batch: inserted=%s updated=%s escalated=%s closed=%s expired=%s",
        summary.inserted,
        summary.updated,
        summary.escalated,
        summary.closed,
        summary.expired,
    )
    return summary
