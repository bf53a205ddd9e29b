import pytest
from fastapi.testclient import TestClient

from ticketdesk.api.dependencies import get_db
from ticketdesk.core.config import settings
from ticketdesk.main import app
from ticketdesk.models.ticket import Ticket
from ticketdesk.models.user import User
from ticketdesk.services.auth_service import decode_token

API = settings.API_V1_STR


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # No context manager: startup would create tables on the configured engine.
    yield TestClient(app)
    app.dependency_overrides.clear()


def _login(client, username, password="secret-pass"):
    resp = client.post(f"{API}/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


class TestAuth:
    def test_register_and_login_marks_agent_online(self, client):
        resp = client.post(f"{API}/auth/register", json={"username": "alice", "password": "long-enough"})
        assert resp.status_code == 200
        assert resp.json()["logged_in"] is False

        headers = _login(client, "alice", "long-enough")
        me = client.get(f"{API}/auth/me", headers=headers).json()
        assert me["logged_in"] is True

    def test_bad_password(self, client, add_user):
        add_user("alice")
        resp = client.post(f"{API}/auth/login", json={"username": "alice", "password": "wrong"})
        assert resp.status_code == 401

    def test_requires_token(self, client):
        assert client.post(f"{API}/distribution/cycle", json={}).status_code == 401

    def test_logout_stops_work(self, client, add_user):
        add_user("alice")
        headers = _login(client, "alice")
        assert client.post(f"{API}/auth/logout", headers=headers).status_code == 200
        me = client.get(f"{API}/auth/me", headers=headers).json()
        assert (me["logged_in"], me["is_working"]) == (False, False)

    def test_token_carries_only_identity(self, client, add_user):
        add_user("admin", is_admin=True)
        headers = _login(client, "admin")
        payload = decode_token(headers["Authorization"].split()[1])
        assert payload["sub"] == "admin"
        assert set(payload) == {"sub", "iat", "exp"}

    def test_admin_rights_follow_the_user_row(self, client, db, add_user):
        add_user("admin", is_admin=True)
        headers = _login(client, "admin")
        assert client.get(f"{API}/reports/performance", headers=headers).status_code == 200

        db.query(User).filter_by(username="admin").update({"is_admin": False})
        db.commit()
        assert client.get(f"{API}/reports/performance", headers=headers).status_code == 403


class TestAgentWorkflow:
    def test_cycle_then_complete(self, client, db, add_user, add_ticket):
        add_user("alice", is_working=False)
        add_ticket("INC-1", category="K1", level="L2")
        headers = _login(client, "alice")

        resp = client.post(f"{API}/distribution/cycle", json={}, headers=headers)
        assert resp.json()["outcome"] == "not_working"

        resp = client.post(f"{API}/agents/me/status", json={"isWorking": True}, headers=headers)
        assert resp.json()["isWorking"] is True

        resp = client.post(f"{API}/distribution/cycle", json={"excludedTickets": []}, headers=headers)
        body = resp.json()
        assert body["outcome"] == "assigned"
        assert body["newlyAssigned"][0]["Incident"] == "INC-1"
        assert body["newlyAssigned"][0]["assignedTo"] == "alice"

        resp = client.post(
            f"{API}/tickets/INC-1/complete",
            json={"Detail Case": "Router reboot", "Analisa": "Power loss", "Escalation Level": "Tier 1"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "Completed"
        assert resp.json()["assignedTo"] is None

        db.expire_all()
        assert db.query(Ticket).filter_by(incident="INC-1").one().handled_by == "alice"

    def test_complete_someone_elses_ticket_conflicts(self, client, add_user, add_ticket, now):
        add_user("alice")
        add_ticket("INC-1", status="Active", assigned_to="bob", last_assigned_time=now)
        headers = _login(client, "alice")
        resp = client.post(
            f"{API}/tickets/INC-1/complete",
            json={"Detail Case": "x", "Analisa": "y", "Escalation Level": "z"},
            headers=headers,
        )
        assert resp.status_code == 409

    def test_complete_unknown_ticket(self, client, add_user):
        add_user("alice")
        headers = _login(client, "alice")
        resp = client.post(
            f"{API}/tickets/NOPE/complete",
            json={"Detail Case": "x", "Analisa": "y", "Escalation Level": "z"},
            headers=headers,
        )
        assert resp.status_code == 404

    def test_claim_requires_working_status(self, client, add_user, add_ticket):
        add_user("alice", is_working=False)
        add_ticket("INC-1")
        headers = _login(client, "alice")
        assert client.post(f"{API}/tickets/INC-1/claim", headers=headers).status_code == 400

    def test_claim_open_ticket(self, client, add_user, add_ticket):
        add_user("alice")
        add_ticket("INC-1")
        headers = _login(client, "alice")
        resp = client.post(f"{API}/tickets/INC-1/claim", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "Active"


class TestAdmin:
    def test_upload_requires_admin(self, client, add_user):
        add_user("alice")
        headers = _login(client, "alice")
        resp = client.post(
            f"{API}/tickets/upload",
            json={"tickets": [{"Incident": "INC-1", "TTR": "00:30:00"}]},
            headers=headers,
        )
        assert resp.status_code == 403

    def test_upload_inserts_and_lists(self, client, add_user):
        add_user("admin", is_admin=True, is_working=False)
        headers = _login(client, "admin")

        resp = client.post(
            f"{API}/tickets/upload",
            json={
                "tickets": [
                    {"Incident": "INC-1", "SID": "S-1", "TTR": "01:31:00", "category": "K2"},
                    {"Incident": "INC-2", "TTR": "00:45:00"},
                ]
            },
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["inserted"] == 2
        assert body["distribution"]["outcome"] == "not_working"

        tickets = {t["Incident"]: t for t in client.get(f"{API}/tickets", headers=headers).json()}
        assert tickets["INC-1"]["level"] == "L3"
        assert tickets["INC-2"]["category"] == "K3"
        assert client.get(f"{API}/tickets/last-upload", headers=headers).json()["lastUploadTime"]

    def test_upload_rejects_empty_batch(self, client, add_user):
        add_user("admin", is_admin=True)
        headers = _login(client, "admin")
        assert client.post(f"{API}/tickets/upload", json={"tickets": []}, headers=headers).status_code == 422

    def test_daily_reset_and_closed_list(self, client, add_user, add_ticket):
        add_user("admin", is_admin=True)
        add_ticket("INC-1")
        headers = _login(client, "admin")

        resp = client.post(f"{API}/tickets/daily-reset", headers=headers)
        assert resp.json() == {"success": True, "archived": 1}

        closed = client.get(f"{API}/tickets/closed", headers=headers).json()
        assert [(c["Incident"], c["details"]) for c in closed] == [("INC-1", "Daily Reset")]
