from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from ticketdesk.core.database import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    incident = Column(String(64), unique=True, index=True, nullable=False)
    sid = Column(String(128), nullable=True)
    ttr = Column(String(16), nullable=False, default="00:00:00")
    category = Column(String(8), nullable=False)
    level = Column(String(8), nullable=False, default="L1")

    # "Open" | "Active" | "Completed" | "Pending"
    status = Column(String(16), nullable=False, default="Open", index=True)
    assigned_to = Column(String(128), nullable=True, index=True)
    handled_by = Column(String(128), nullable=True)
    last_assigned_time = Column(DateTime(timezone=True), nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=True)

    # Agent-entered resolution text
    detail_case = Column(Text, nullable=True)
    analisa = Column(Text, nullable=True)
    escalation_level = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ClosedTicket(Base):
    """Immutable archive row. Not unique by incident: a re-uploaded incident is a new ticket."""

    __tablename__ = "closed_tickets"
    __table_args__ = (UniqueConstraint("incident", "closed_at", name="uq_closed_incident_closed_at"),)

    id = Column(Integer, primary_key=True, index=True)
    incident = Column(String(64), index=True, nullable=False)
    sid = Column(String(128), nullable=True)
    ttr = Column(String(16), nullable=True)
    category = Column(String(8), nullable=True)
    level = Column(String(8), nullable=True)
    status = Column(String(16), nullable=True)
    assigned_to = Column(String(128), nullable=True)
    handled_by = Column(String(128), nullable=True)
    last_assigned_time = Column(DateTime(timezone=True), nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    detail_case = Column(Text, nullable=True)
    analisa = Column(Text, nullable=True)
    escalation_level = Column(String(64), nullable=True)

    # "Closed" | "Expired"
    action = Column(String(16), nullable=False)
    details = Column(Text, nullable=False, default="")
    closed_at = Column(DateTime(timezone=True), nullable=False, index=True)
