from sqlalchemy import Column, Integer, String, Text, DateTime

from ticketdesk.core.database import Base


class TicketLog(Base):
    __tablename__ = "ticket_logs"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String(64), index=True, nullable=False)
    username = Column(String(128), index=True, nullable=False)
    # "Assigned" | "Completed" | "Status Change" | "Reclaimed" | "Closed" | "Expired"
    action = Column(String(32), nullable=False)
    details = Column(Text, nullable=True)
    level = Column(String(8), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
