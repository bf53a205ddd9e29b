"""SQLAlchemy-backed store the engine reads from and writes to.

Rows are converted to TicketRecord/AgentRecord on the way out, which is where
stored values get coerced (UTC datetimes, levels clamped to the category ceiling,
unknown categories defaulted). Nothing here commits on its own; the caller owns
the transaction and calls ``commit``/``rollback``.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Set

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ticketdesk.core.config import settings
from ticketdesk.core.errors import StoreError
from ticketdesk.models.category_filter import CategoryFilter
from ticketdesk.models.system_setting import SystemSetting
from ticketdesk.models.ticket import ClosedTicket, Ticket
from ticketdesk.models.ticket_log import TicketLog
from ticketdesk.models.user import User
from ticketdesk.schemas.agent_schema import AgentRecord
from ticketdesk.schemas.ticket_schema import TicketRecord
from ticketdesk.services.levels import CATEGORY_MAX_LEVEL, clamp_level

logger = logging.getLogger(__name__)

_TICKET_FIELDS = (
    "sid",
    "ttr",
    "category",
    "level",
    "status",
    "assigned_to",
    "handled_by",
    "last_assigned_time",
    "last_updated",
    "detail_case",
    "analisa",
    "escalation_level",
)


@dataclass
class UpsertOp:
    """Write of one ticket's full state, keyed by incident.

    With ``conditional`` set the write only lands if the stored row still has
    ``expected_status`` and ``expected_assigned_to`` (compare-and-swap). Without
    it the ticket is inserted or overwritten unconditionally.
    """

    ticket: TicketRecord
    expected_status: Optional[str] = None
    expected_assigned_to: Optional[str] = None
    conditional: bool = True


class LogEntry(NamedTuple):
    ticket_id: str
    username: str
    action: str
    timestamp: datetime
    details: Optional[str] = None
    level: Optional[str] = None


def _ticket_values(ticket: TicketRecord) -> dict:
    return {name: getattr(ticket, name) for name in _TICKET_FIELDS}


def _to_record(row: Ticket) -> TicketRecord:
    category = row.category if row.category in CATEGORY_MAX_LEVEL else settings.DEFAULT_CATEGORY
    return TicketRecord(
        incident=row.incident,
        sid=row.sid,
        ttr=row.ttr,
        category=category,
        level=clamp_level(category, row.level),
        status=row.status,
        assigned_to=row.assigned_to,
        handled_by=row.handled_by,
        last_assigned_time=row.last_assigned_time,
        last_updated=row.last_updated,
        detail_case=row.detail_case,
        analisa=row.analisa,
        escalation_level=row.escalation_level,
    )


def _to_agent(user: User) -> AgentRecord:
    return AgentRecord(
        username=user.username,
        is_admin=bool(user.is_admin),
        logged_in=bool(user.logged_in),
        is_working=bool(user.is_working),
        last_assigned_time=user.last_assigned_time,
        last_activity=user.last_activity,
        last_logout_time=user.last_logout_time,
    )


class TicketStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, what: str):
        try:
            yield
        except SQLAlchemyError as e:
            logger.exception("Store operation failed: %s", what)
            raise StoreError(f"{what} failed: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def load_all_tickets(self) -> List[TicketRecord]:
        with self._guard("load tickets"):
            rows = self.db.query(Ticket).order_by(Ticket.id).all()
        return [_to_record(r) for r in rows]

    def load_tickets(
        self,
        statuses: Optional[Iterable[str]] = None,
        exclude_statuses: Optional[Iterable[str]] = None,
    ) -> List[TicketRecord]:
        with self._guard("load tickets"):
            q = self.db.query(Ticket)
            if statuses is not None:
                q = q.filter(Ticket.status.in_(list(statuses)))
            if exclude_statuses is not None:
                q = q.filter(Ticket.status.notin_(list(exclude_statuses)))
            rows = q.order_by(Ticket.id).all()
        return [_to_record(r) for r in rows]

    def get_ticket(self, incident: str) -> Optional[TicketRecord]:
        with self._guard("load ticket"):
            row = self.db.query(Ticket).filter(Ticket.incident == incident).first()
        return _to_record(row) if row else None

    def load_agent(self, username: str) -> Optional[AgentRecord]:
        with self._guard("load agent"):
            user = self.db.query(User).filter(User.username == username).first()
        return _to_agent(user) if user else None

    def load_online_agents(self) -> List[AgentRecord]:
        with self._guard("load online agents"):
            users = self.db.query(User).filter(User.logged_in.is_(True)).order_by(User.username).all()
        return [_to_agent(u) for u in users]

    def load_assignment_history(self) -> Dict[str, Set[str]]:
        """incident -> every username that has a log entry for it."""
        with self._guard("load assignment history"):
            rows = self.db.query(TicketLog.ticket_id, TicketLog.username).all()
        history: Dict[str, Set[str]] = {}
        for ticket_id, username in rows:
            history.setdefault(ticket_id, set()).add(username)
        return history

    def load_closed_tickets(self) -> List[ClosedTicket]:
        with self._guard("load closed tickets"):
            return self.db.query(ClosedTicket).order_by(ClosedTicket.closed_at.desc()).all()

    def load_closed_between(self, start: datetime, end: datetime) -> List[ClosedTicket]:
        with self._guard("load closed tickets"):
            return (
                self.db.query(ClosedTicket)
                .filter(ClosedTicket.closed_at >= start, ClosedTicket.closed_at < end)
                .all()
            )

    def load_logs_between(self, start: datetime, end: datetime) -> List[TicketLog]:
        with self._guard("load ticket logs"):
            return (
                self.db.query(TicketLog)
                .filter(TicketLog.timestamp >= start, TicketLog.timestamp < end)
                .order_by(TicketLog.timestamp.desc())
                .all()
            )

    def lookup_categories(self, sids: Iterable[str]) -> Dict[str, str]:
        wanted = {s for s in sids if s}
        if not wanted:
            return {}
        with self._guard("lookup categories"):
            rows = self.db.query(CategoryFilter).filter(CategoryFilter.sid.in_(wanted)).all()
        return {r.sid: r.category for r in rows if r.category in CATEGORY_MAX_LEVEL}

    def get_last_upload_time(self) -> Optional[datetime]:
        with self._guard("load settings"):
            row = self.db.get(SystemSetting, "settings")
        return row.last_upload_time if row else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def persist_tickets(self, ops: List[UpsertOp]) -> List[UpsertOp]:
        """Apply ticket writes and return the ops that actually landed.

        Conditional ops that lose a race (the row moved on since it was read)
        are skipped, not raised. Re-running the same ops is harmless.
        """
        applied: List[UpsertOp] = []
        with self._guard("persist tickets"):
            for op in ops:
                values = _ticket_values(op.ticket)
                if not op.conditional:
                    row = self.db.query(Ticket).filter(Ticket.incident == op.ticket.incident).first()
                    if row is None:
                        self.db.add(Ticket(incident=op.ticket.incident, **values))
                    else:
                        for k, v in values.items():
                            setattr(row, k, v)
                    self.db.flush()
                    applied.append(op)
                    continue

                stmt = update(Ticket).where(
                    Ticket.incident == op.ticket.incident,
                    Ticket.status == op.expected_status,
                )
                if op.expected_assigned_to is None:
                    stmt = stmt.where(Ticket.assigned_to.is_(None))
                else:
                    stmt = stmt.where(Ticket.assigned_to == op.expected_assigned_to)
                result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
                if result.rowcount == 1:
                    applied.append(op)
                else:
                    logger.warning(
                        "Skipped write for ticket %s: no longer %s/%s",
                        op.ticket.incident,
                        op.expected_status,
                        op.expected_assigned_to,
                    )
            self.db.expire_all()
        return applied

    def archive_tickets(
        self,
        tickets: List[TicketRecord],
        action: str,
        closed_at: datetime,
        details: str = "",
    ) -> List[TicketRecord]:
        """Copy tickets into the archive, then drop them from the live table.

        Both happen in the caller's transaction; each archive row is flushed
        before its live row is deleted. The delete only matches a live row that
        still has the ticket's ``status`` and ``assigned_to``; when the row moved
        on since it was read, the fresh archive row is dropped again and the
        ticket stays live. Returns the tickets that were archived.
        """
        archived: List[TicketRecord] = []
        with self._guard("archive tickets"):
            for t in tickets:
                row = None
                exists = (
                    self.db.query(ClosedTicket.id)
                    .filter(ClosedTicket.incident == t.incident, ClosedTicket.closed_at == closed_at)
                    .first()
                )
                if not exists:
                    row = ClosedTicket(
                        incident=t.incident,
                        action=action,
                        details=details,
                        closed_at=closed_at,
                        **_ticket_values(t),
                    )
                    self.db.add(row)
                    self.db.flush()

                q = self.db.query(Ticket).filter(Ticket.incident == t.incident, Ticket.status == t.status)
                if t.assigned_to is None:
                    q = q.filter(Ticket.assigned_to.is_(None))
                else:
                    q = q.filter(Ticket.assigned_to == t.assigned_to)
                if q.delete(synchronize_session=False) == 1:
                    archived.append(t)
                    continue

                logger.warning("Skipped archiving ticket %s: no longer %s/%s", t.incident, t.status, t.assigned_to)
                if row is not None:
                    self.db.delete(row)
                    self.db.flush()
            self.db.expire_all()
        if archived:
            logger.info("Archived %s ticket(s) as %s", len(archived), action)
        return archived

    def append_assignment_log(self, entries: Iterable[LogEntry]) -> None:
        with self._guard("append ticket log"):
            for e in entries:
                self.db.add(
                    TicketLog(
                        ticket_id=e.ticket_id,
                        username=e.username,
                        action=e.action,
                        details=e.details,
                        level=e.level,
                        timestamp=e.timestamp,
                    )
                )
            self.db.flush()

    def update_agent(self, username: str, **values) -> bool:
        with self._guard("update agent"):
            user = self.db.query(User).filter(User.username == username).first()
            if not user:
                return False
            for k, v in values.items():
                setattr(user, k, v)
            self.db.flush()
        return True

    def set_last_upload_time(self, when: datetime) -> None:
        with self._guard("save settings"):
            row = self.db.get(SystemSetting, "settings")
            if row is None:
                self.db.add(SystemSetting(id="settings", last_upload_time=when))
            else:
                row.last_upload_time = when
            self.db.flush()

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Commit failed")
            raise StoreError(f"commit failed: {e}") from e

    def rollback(self) -> None:
        self.db.rollback()
