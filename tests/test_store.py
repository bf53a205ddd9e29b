from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from ticketdesk.core.errors import StoreError
from ticketdesk.models.category_filter import CategoryFilter
from ticketdesk.models.ticket import ClosedTicket, Ticket
from ticketdesk.models.ticket_log import TicketLog
from ticketdesk.services.archival import ArchiveItem, archive, daily_reset, select_expired
from ticketdesk.services.ticket_store import LogEntry, UpsertOp

from tests.conftest import NOW


class TestRecords:
    def test_stored_level_is_clamped_to_category(self, store, add_ticket):
        add_ticket("INC-1", category="K3", level="L6")
        assert store.get_ticket("INC-1").level == "L2"

    def test_unknown_category_falls_back_to_default(self, store, add_ticket):
        add_ticket("INC-1", category="K9", level="L1")
        assert store.get_ticket("INC-1").category == "K3"

    def test_datetimes_come_back_as_utc(self, store, add_ticket):
        add_ticket("INC-1", last_updated=NOW)
        assert store.get_ticket("INC-1").last_updated == NOW

    def test_online_agents(self, store, add_user):
        add_user("alice")
        add_user("bob", logged_in=False)
        assert [a.username for a in store.load_online_agents()] == ["alice"]

    def test_assignment_history_counts_every_action(self, store):
        store.append_assignment_log(
            [
                LogEntry("INC-1", "alice", "Assigned", NOW),
                LogEntry("INC-1", "bob", "Status Change", NOW),
                LogEntry("INC-2", "alice", "Completed", NOW),
            ]
        )
        store.commit()
        assert store.load_assignment_history() == {"INC-1": {"alice", "bob"}, "INC-2": {"alice"}}

    def test_lookup_categories_ignores_bad_rows(self, db, store):
        db.add_all([CategoryFilter(sid="S-1", category="K1"), CategoryFilter(sid="S-2", category="X")])
        db.commit()
        assert store.lookup_categories(["S-1", "S-2", "S-3", None]) == {"S-1": "K1"}


class TestPersist:
    def test_conditional_write_lands_when_state_matches(self, db, store, add_ticket):
        add_ticket("INC-1")
        ticket = store.get_ticket("INC-1")
        ticket.status, ticket.assigned_to, ticket.last_assigned_time = "Active", "alice", NOW

        applied = store.persist_tickets([UpsertOp(ticket, expected_status="Open", expected_assigned_to=None)])
        store.commit()

        assert len(applied) == 1
        assert db.query(Ticket).filter_by(incident="INC-1").one().assigned_to == "alice"

    def test_conditional_write_skipped_when_state_moved(self, db, store, add_ticket):
        add_ticket("INC-1", status="Active", assigned_to="bob", last_assigned_time=NOW)
        ticket = store.get_ticket("INC-1")
        ticket.assigned_to = "alice"

        applied = store.persist_tickets([UpsertOp(ticket, expected_status="Open", expected_assigned_to=None)])
        store.commit()

        assert applied == []
        assert db.query(Ticket).filter_by(incident="INC-1").one().assigned_to == "bob"

    def test_unconditional_write_upserts(self, db, store, add_ticket):
        add_ticket("INC-1", level="L1")
        existing = store.get_ticket("INC-1")
        existing.level = "L4"
        fresh = existing.model_copy(update={"incident": "INC-2", "level": "L1"})

        store.persist_tickets([UpsertOp(existing, conditional=False), UpsertOp(fresh, conditional=False)])
        store.commit()

        levels = {r.incident: r.level for r in db.query(Ticket).all()}
        assert levels == {"INC-1": "L4", "INC-2": "L1"}

    def test_database_errors_become_store_errors(self, store, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store.db, "query", boom)
        with pytest.raises(StoreError):
            store.load_all_tickets()


class TestArchive:
    def test_archive_copies_then_removes(self, db, store, add_ticket):
        add_ticket("INC-1", status="Completed", handled_by="alice", level="L2")
        ticket = store.get_ticket("INC-1")

        archived = store.archive_tickets([ticket], "Closed", NOW, "done")
        store.commit()

        assert [t.incident for t in archived] == ["INC-1"]
        assert db.query(Ticket).count() == 0
        closed = db.query(ClosedTicket).one()
        assert (closed.incident, closed.action, closed.details, closed.level) == ("INC-1", "Closed", "done", "L2")

    def test_repeated_archive_does_not_duplicate(self, db, store, add_ticket):
        add_ticket("INC-1")
        ticket = store.get_ticket("INC-1")
        store.archive_tickets([ticket], "Expired", NOW)
        store.archive_tickets([ticket], "Expired", NOW)
        store.commit()
        assert db.query(ClosedTicket).count() == 1

    def test_archive_skips_ticket_that_moved_on(self, db, store, add_ticket):
        add_ticket("INC-1", status="Active", assigned_to="alice", last_assigned_time=NOW)
        snapshot = store.get_ticket("INC-1")

        # alice completes the ticket after the snapshot was read
        db.query(Ticket).filter_by(incident="INC-1").update(
            {"status": "Completed", "assigned_to": None, "handled_by": "alice", "detail_case": "fixed router"}
        )
        db.commit()

        archived = store.archive_tickets([snapshot], "Expired", NOW, "gone")
        store.commit()

        assert archived == []
        assert db.query(ClosedTicket).count() == 0
        row = db.query(Ticket).filter_by(incident="INC-1").one()
        assert (row.status, row.detail_case) == ("Completed", "fixed router")

    def test_archive_logs_against_last_handler(self, db, store, add_ticket):
        add_ticket("INC-1", status="Completed", handled_by="alice")
        add_ticket("INC-2")
        items = [
            ArchiveItem(store.get_ticket("INC-1"), "Closed", "max level"),
            ArchiveItem(store.get_ticket("INC-2"), "Expired", "gone"),
        ]
        assert len(archive(store, items, NOW)) == 2
        store.commit()
        logs = {l.ticket_id: (l.username, l.action) for l in db.query(TicketLog).all()}
        assert logs == {"INC-1": ("alice", "Closed"), "INC-2": ("system", "Expired")}

    def test_select_expired_only_takes_idle_open_or_active(self, store, add_ticket, policy):
        add_ticket("OLD", last_updated=NOW - timedelta(hours=2))
        add_ticket("FRESH", last_updated=NOW - timedelta(minutes=30))
        add_ticket("DONE", status="Completed", last_updated=NOW - timedelta(hours=2))
        add_ticket("KEPT", last_updated=NOW - timedelta(hours=2))
        expired = select_expired(store.load_all_tickets(), {"KEPT"}, NOW, policy)
        assert [i.ticket.incident for i in expired] == ["OLD"]
        assert expired[0].action == "Expired"

    def test_daily_reset_closes_everything(self, db, store, add_ticket):
        add_ticket("INC-1")
        add_ticket("INC-2", status="Active", assigned_to="alice", last_assigned_time=NOW)
        assert daily_reset(store, NOW) == 2
        assert db.query(Ticket).count() == 0
        assert {c.details for c in db.query(ClosedTicket).all()} == {"Daily Reset"}
