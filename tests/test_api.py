"""End-to-end tests through the HTTP surface."""

import pytest

STRONG_PASSWORD = "Str0ng!Passw0rd"


@pytest.fixture
def created(client, auth, users, complaint_payload) -> dict:
    response = client.post("/complaints", json=complaint_payload, headers=auth(users.member))
    assert response.status_code == 201
    return response.get_json()["complaint"]


class TestAuthentication:
    def test_register_login_and_me(self, client) -> None:
        registered = client.post(
            "/auth/register",
            json={"name": "Nia New", "email": "Nia@Example.com", "password": STRONG_PASSWORD},
        )
        assert registered.status_code == 201
        assert registered.get_json()["user"]["role"] == "Member"

        login = client.post("/auth/login", json={"email": "nia@example.com", "password": STRONG_PASSWORD})
        assert login.status_code == 200
        token = login.get_json()["token"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "nia@example.com"

    def test_weak_password_and_duplicate_email(self, client, users) -> None:
        weak = client.post("/auth/register", json={"name": "Weak", "email": "weak@example.com", "password": "password"})
        assert weak.status_code == 400
        assert "password" in weak.get_json()["errors"]

        duplicate = client.post(
            "/auth/register", json={"name": "Dup", "email": "maya@example.com", "password": STRONG_PASSWORD}
        )
        assert duplicate.status_code == 409

    def test_wrong_password(self, client, users) -> None:
        response = client.post("/auth/login", json={"email": "maya@example.com", "password": "Wr0ng!Password"})

        assert response.status_code == 401
        assert response.get_json()["error"] == "unauthenticated"

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer not-a-jwt"}, {"Authorization": "Token abc"}],
    )
    def test_missing_or_invalid_credential(self, client, headers) -> None:
        response = client.get("/complaints", headers=headers)

        assert response.status_code == 401
        assert response.get_json()["success"] is False

    def test_expired_credential(self, app, client, users) -> None:
        from extensions import db
        from models import User
        from utils.tokens import issue_token

        with app.app_context():
            token = issue_token(db.session.get(User, users.member.id), expires_minutes=-1)

        response = client.get("/dashboard", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.get_json()["message"] == "Credential expired"


class TestComplaintEndpoints:
    def test_create_validation(self, client, auth, users, complaint_payload) -> None:
        response = client.post("/complaints", json={**complaint_payload, "description": "short"}, headers=auth(users.member))

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "validation_failed"
        assert "description" in body["errors"]

    def test_structured_values_are_not_stringified(self, client, auth, users, complaint_payload) -> None:
        response = client.post("/complaints", json={**complaint_payload, "title": {"a": 1}}, headers=auth(users.member))

        assert response.status_code == 400
        assert "title" in response.get_json()["errors"]
        assert client.get("/complaints", headers=auth(users.member)).get_json()["pagination"]["total"] == 0

    def test_body_must_be_an_object(self, client, auth, users) -> None:
        response = client.post("/complaints", json=["not", "an", "object"], headers=auth(users.member))

        assert response.status_code == 400
        assert response.get_json()["error"] == "validation_failed"

    def test_huge_page_number_is_not_an_error(self, client, auth, users, created) -> None:
        response = client.get("/complaints?page=99999999999999999999", headers=auth(users.member))

        assert response.status_code == 200
        assert response.get_json()["complaints"] == []

    def test_created_payload(self, created, users) -> None:
        assert created["status"] == "Pending"
        assert created["owner"] == users.member.id
        assert created["likesCount"] == 0
        assert created["likedByMe"] is False
        assert [e["note"] for e in created["statusHistory"]] == ["created"]

    def test_detail_visibility(self, client, auth, users, created) -> None:
        path = f"/complaints/{created['id']}"

        assert client.get(path, headers=auth(users.member)).status_code == 200
        assert client.get(path, headers=auth(users.admin)).status_code == 200
        assert client.get(path, headers=auth(users.other)).status_code == 403
        assert client.get("/complaints/does-not-exist", headers=auth(users.admin)).status_code == 404

    def test_status_update_requires_admin(self, client, auth, users, created) -> None:
        path = f"/complaints/{created['id']}/status"

        assert client.put(path, json={"status": "In Progress"}, headers=auth(users.member)).status_code == 403
        assert client.put(path, json={"status": "Closed"}, headers=auth(users.admin)).status_code == 400
        assert client.put(path, json={"status": "Resolved"}, headers=auth(users.admin)).status_code == 400

        ok = client.put(path, json={"status": "In Progress", "note": "crew booked"}, headers=auth(users.admin))
        assert ok.status_code == 200
        assert ok.get_json()["complaint"]["adminNote"] == "crew booked"

    def test_stale_version_returns_conflict(self, client, auth, users, created) -> None:
        path = f"/complaints/{created['id']}/status"
        client.put(path, json={"status": "In Progress"}, headers=auth(users.admin))

        response = client.put(path, json={"status": "Resolved", "version": created["version"]}, headers=auth(users.admin))

        assert response.status_code == 409
        assert response.get_json()["error"] == "conflict"

    def test_like_toggle(self, client, auth, users, created) -> None:
        path = f"/complaints/{created['id']}/like"

        first = client.post(path, headers=auth(users.other)).get_json()
        second = client.put(path, headers=auth(users.other)).get_json()

        assert (first["liked"], first["likesCount"]) == (True, 1)
        assert (second["liked"], second["likesCount"]) == (False, 0)

    def test_update_details(self, client, auth, users, created) -> None:
        path = f"/complaints/{created['id']}"

        response = client.put(path, json={"title": "Bins overflowing again"}, headers=auth(users.member))

        assert response.status_code == 200
        assert response.get_json()["complaint"]["title"] == "Bins overflowing again"
        assert client.put(path, json={"title": "Nope"}, headers=auth(users.other)).status_code == 403

    def test_assign_and_history_note(self, client, auth, users, created) -> None:
        base = f"/complaints/{created['id']}"

        assigned = client.put(f"{base}/assign", json={"assignee": users.admin.id}, headers=auth(users.admin))
        assert assigned.get_json()["complaint"]["assignee"] == users.admin.id
        assert client.put(f"{base}/assign", json={"assignee": users.admin.id}, headers=auth(users.member)).status_code == 403

        entry_id = created["statusHistory"][0]["id"]
        edited = client.patch(f"{base}/history/{entry_id}", json={"note": "filed at front desk"}, headers=auth(users.admin))
        assert edited.status_code == 200
        assert edited.get_json()["entry"]["note"] == "filed at front desk"

    def test_listing_and_overview(self, client, auth, users, created) -> None:
        listing = client.get("/complaints?status=Pending&limit=5", headers=auth(users.admin)).get_json()
        assert listing["pagination"]["total"] == 1
        assert "statusHistory" not in listing["complaints"][0]

        assert client.get("/complaints", headers=auth(users.other)).get_json()["pagination"]["total"] == 0
        assert client.get("/complaints/stats/overview", headers=auth(users.member)).status_code == 403
        overview = client.get("/complaints/stats/overview", headers=auth(users.admin)).get_json()
        assert overview["stats"]["pending"] == 1

    def test_unknown_route_is_json(self, client) -> None:
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.get_json()["error"] == "not_found"


class TestDashboardEndpoints:
    def test_access_rules(self, client, auth, users, created) -> None:
        own = client.get(f"/dashboard/{users.member.id}", headers=auth(users.member))
        assert own.status_code == 200
        assert own.get_json()["dashboard"]["pending"] == 1

        assert client.get(f"/dashboard/{users.member.id}", headers=auth(users.other)).status_code == 403
        assert client.get(f"/dashboard/{users.member.id}", headers=auth(users.admin)).status_code == 200
        assert client.get("/dashboard/nobody", headers=auth(users.admin)).status_code == 404

    def test_recompute_is_admin_only(self, client, auth, users, created) -> None:
        path = f"/dashboard/{users.member.id}/recompute"

        assert client.post(path, headers=auth(users.member)).status_code == 403
        response = client.post(path, headers=auth(users.admin))
        assert response.status_code == 200
        assert response.get_json()["dashboard"]["total"] == 1


class TestLifecycleScenario:
    def test_full_lifecycle(self, client, auth, users, complaint_payload) -> None:
        member, admin = auth(users.member), auth(users.admin)

        def counters() -> dict:
            body = client.get("/dashboard", headers=member).get_json()["dashboard"]
            return {key: body[key] for key in ("total", "pending", "inProgress", "resolved", "rejected")}

        c1 = client.post("/complaints", json={**complaint_payload, "category": "Sanitation"}, headers=member).get_json()["complaint"]
        assert counters() == {"total": 1, "pending": 1, "inProgress": 0, "resolved": 0, "rejected": 0}

        moved = client.put(f"/complaints/{c1['id']}/status", json={"status": "InProgress", "note": "assigned"}, headers=admin)
        assert len(moved.get_json()["complaint"]["statusHistory"]) == 2
        assert counters() == {"total": 1, "pending": 0, "inProgress": 1, "resolved": 0, "rejected": 0}

        client.put(f"/complaints/{c1['id']}/status", json={"status": "Resolved"}, headers=admin)
        assert counters() == {"total": 1, "pending": 0, "inProgress": 0, "resolved": 1, "rejected": 0}
        reopen = client.put(f"/complaints/{c1['id']}/status", json={"status": "Pending"}, headers=admin)
        assert reopen.status_code == 400
        assert reopen.get_json()["error"] == "invalid_transition"

        assert client.delete(f"/complaints/{c1['id']}", headers=member).status_code == 403
        assert client.delete(f"/complaints/{c1['id']}", headers=admin).status_code == 200
        assert counters() == {"total": 0, "pending": 0, "inProgress": 0, "resolved": 0, "rejected": 0}
        assert client.get(f"/complaints/{c1['id']}", headers=admin).status_code == 404


class TestHealth:
    def test_health_reports_database(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json()["database"] == "ok"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_csrf_protection_leaves_bearer_api_open(self, app, client, auth, users, complaint_payload) -> None:
        assert "csrf" in app.extensions

        response = client.post("/complaints", json=complaint_payload, headers=auth(users.member))

        assert response.status_code == 201
