import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-ticketdesk")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ticketdesk.core.database import Base
from ticketdesk.models.ticket import Ticket
from ticketdesk.models.user import User
from ticketdesk.services.auth_service import hash_password
from ticketdesk.services.lifecycle import DistributionPolicy
from ticketdesk.services.ticket_store import TicketStore

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return TicketStore(db)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def policy():
    return DistributionPolicy()


@pytest.fixture
def add_user(db):
    def _add(username, *, logged_in=True, is_working=True, is_admin=False, password="secret-pass"):
        user = User(
            username=username,
            password_hash=hash_password(password),
            is_admin=is_admin,
            logged_in=logged_in,
            is_working=is_working,
        )
        db.add(user)
        db.commit()
        return user

    return _add


@pytest.fixture
def add_ticket(db):
    def _add(
        incident,
        *,
        category="K1",
        level="L1",
        status="Open",
        assigned_to=None,
        handled_by=None,
        last_assigned_time=None,
        last_updated=NOW - timedelta(minutes=5),
        ttr="00:10:00",
        sid=None,
    ):
        ticket = Ticket(
            incident=incident,
            sid=sid,
            ttr=ttr,
            category=category,
            level=level,
            status=status,
            assigned_to=assigned_to,
            handled_by=handled_by,
            last_assigned_time=last_assigned_time,
            last_updated=last_updated,
        )
        db.add(ticket)
        db.commit()
        return ticket

    return _add
