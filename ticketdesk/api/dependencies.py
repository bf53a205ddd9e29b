from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from ticketdesk.core.database import SessionLocal
from ticketdesk.services.ticket_store import TicketStore


def get_db() -> Generator:
    """
    Dependency Injection function to get a database session.
    It ensures the database connection is closed after the request is finished.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> TicketStore:
    return TicketStore(db)
