"""
HTTP surface tests.

Verifies:
- unauthenticated requests return 401
- project roles gate access (403)
- domain errors map onto 400 / 403 / 404 / 409 / 503
- the identity resolver can be swapped through config
"""

import pytest

from app.models import ApiToken
from app.services import board_service
from app.services.access_service import Identity, revoke_tokens
from app.validation import TransactionFailed

from conftest import T0


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/projects"),
            ("POST", "/api/projects"),
            ("GET", "/api/projects/1/board"),
            ("GET", "/api/projects/1/lifecycle"),
            ("POST", "/api/projects/1/lifecycle"),
            ("POST", "/api/projects/1/cards"),
            ("PATCH", "/api/cards/1/move"),
            ("GET", "/api/cards/1/timeline"),
            ("GET", "/api/projects/1/members"),
            ("GET", "/api/projects/1/labels"),
            ("POST", "/api/projects/1/priorities"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/projects", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_deactivated_user_rejected(self, client, db_session, member_user, member_headers):
        member_user.is_active = False
        db_session.commit()
        assert client.get("/api/projects", headers=member_headers).status_code == 401

    def test_expired_token_rejected(self, client, db_session, member_user, member_headers):
        db_session.query(ApiToken).filter_by(user_id=member_user.id).update(
            {ApiToken.expires_at: T0}, synchronize_session=False
        )
        db_session.commit()
        assert client.get("/api/projects", headers=member_headers).status_code == 401

    def test_revoked_token_rejected(self, client, db_session, member_user, member_headers):
        assert client.get("/api/projects", headers=member_headers).status_code == 200
        revoke_tokens(member_user.id)
        assert client.get("/api/projects", headers=member_headers).status_code == 401


# =============================================================================
# AUTHORIZATION - 403
# =============================================================================


class TestProjectRoles:

    def test_member_cannot_create_project(self, client, member_headers):
        resp = client.post("/api/projects", json={"name": "Mine"}, headers=member_headers)
        assert resp.status_code == 403

    def test_admin_creates_project(self, client, admin_headers):
        resp = client.post("/api/projects", json={"name": "Q3 Launch"}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["status"] == "IDLE"
        assert resp.json["total_paused_ms"] == "0"

    def test_outsider_cannot_read_board(self, client, project, outsider_headers):
        resp = client.get(f"/api/projects/{project.id}/board", headers=outsider_headers)
        assert resp.status_code == 403

    def test_member_cannot_drive_lifecycle(self, client, project, member_headers):
        resp = client.post(
            f"/api/projects/{project.id}/lifecycle", json={"action": "start"}, headers=member_headers
        )
        assert resp.status_code == 403

    def test_outsider_cannot_move_card(self, client, project, columns, member_user, outsider_headers):
        card = board_service.create_card(project.id, columns[0].id, "Private", actor_id=member_user.id)
        resp = client.patch(
            f"/api/cards/{card.id}/move",
            json={"column_id": columns[1].id, "order": 0},
            headers=outsider_headers,
        )
        assert resp.status_code == 403

    def test_member_cannot_manage_catalog(self, client, project, member_headers):
        resp = client.post(f"/api/projects/{project.id}/labels", json={"name": "bug"}, headers=member_headers)
        assert resp.status_code == 403


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycleRoutes:

    def test_start_then_read(self, client, project, admin_headers):
        resp = client.post(
            f"/api/projects/{project.id}/lifecycle", json={"action": "start"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "ACTIVE"

        snap = client.get(f"/api/projects/{project.id}/lifecycle", headers=admin_headers).json
        assert snap["status"] == "ACTIVE"
        assert isinstance(snap["total_elapsed_ms"], str)
        assert snap["allowed_actions"] == ["pause", "close"]

    def test_illegal_transition_is_409(self, client, project, admin_headers):
        resp = client.post(
            f"/api/projects/{project.id}/lifecycle", json={"action": "resume"}, headers=admin_headers
        )
        assert resp.status_code == 409
        assert resp.json["error"] == 'Cannot perform "resume" action on a project in "IDLE" status.'

    def test_unknown_action_is_400(self, client, project, admin_headers):
        resp = client.post(
            f"/api/projects/{project.id}/lifecycle", json={"action": "explode"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_missing_project_is_404(self, client, db_session, admin_headers):
        resp = client.post("/api/projects/987654/lifecycle", json={"action": "start"}, headers=admin_headers)
        assert resp.status_code == 404


# =============================================================================
# CARDS
# =============================================================================


class TestCardRoutes:

    def _create(self, client, project, column, headers, name="Task"):
        resp = client.post(
            f"/api/projects/{project.id}/cards",
            json={"name": name, "column_id": column.id},
            headers=headers,
        )
        assert resp.status_code == 201, resp.json
        return resp.json

    def test_create_and_move(self, client, project, columns, member_headers):
        first = self._create(client, project, columns[0], member_headers, "One")
        second = self._create(client, project, columns[0], member_headers, "Two")
        assert (first["order"], second["order"]) == (0, 1)

        resp = client.patch(
            f"/api/cards/{second['id']}/move",
            json={"column_id": columns[1].id, "order": 0},
            headers=member_headers,
        )
        assert resp.status_code == 200
        assert resp.json["card"]["column_id"] == columns[1].id

        board = client.get(f"/api/projects/{project.id}/board", headers=member_headers).json["columns"]
        assert [c["id"] for c in board[0]["cards"]] == [first["id"]]
        assert [c["id"] for c in board[1]["cards"]] == [second["id"]]

        timeline = client.get(f"/api/cards/{second['id']}/timeline", headers=member_headers).json
        assert [s["column_name"] for s in timeline["timeline"]] == ["Creation", "To Do", "In Progress"]

    def test_create_rejects_unknown_field(self, client, project, columns, member_headers):
        resp = client.post(
            f"/api/projects/{project.id}/cards",
            json={"name": "x", "column_id": columns[0].id, "order": 5},
            headers=member_headers,
        )
        assert resp.status_code == 400

    def test_move_requires_column_and_order(self, client, project, columns, member_headers):
        card = self._create(client, project, columns[0], member_headers)
        resp = client.patch(f"/api/cards/{card['id']}/move", json={"order": 0}, headers=member_headers)
        assert resp.status_code == 400

    def test_move_out_of_range_is_400(self, client, project, columns, member_headers):
        card = self._create(client, project, columns[0], member_headers)
        resp = client.patch(
            f"/api/cards/{card['id']}/move",
            json={"column_id": columns[1].id, "order": 7},
            headers=member_headers,
        )
        assert resp.status_code == 400

    def test_move_to_same_slot_is_409(self, client, project, columns, member_headers):
        card = self._create(client, project, columns[0], member_headers)
        resp = client.patch(
            f"/api/cards/{card['id']}/move",
            json={"column_id": columns[0].id, "order": 0},
            headers=member_headers,
        )
        assert resp.status_code == 409

    def test_backward_move_in_forward_only_is_403(self, client, project, columns, admin_headers, member_headers):
        card = self._create(client, project, columns[1], member_headers)
        resp = client.patch(
            f"/api/projects/{project.id}/settings",
            json={"card_movement_mode": "FORWARD_ONLY"},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        resp = client.patch(
            f"/api/cards/{card['id']}/move",
            json={"column_id": columns[0].id, "order": 0},
            headers=member_headers,
        )
        assert resp.status_code == 403

    def test_contention_is_503(self, client, project, columns, member_headers, monkeypatch):
        card = self._create(client, project, columns[0], member_headers)

        def busy(*args, **kwargs):
            raise TransactionFailed("Transaction failed after 3 attempts: OperationalError")

        monkeypatch.setattr(board_service, "move_card", busy)
        resp = client.patch(
            f"/api/cards/{card['id']}/move",
            json={"column_id": columns[1].id, "order": 0},
            headers=member_headers,
        )
        assert resp.status_code == 503

    def test_missing_card_is_404(self, client, db_session, member_headers):
        assert client.get("/api/cards/55555", headers=member_headers).status_code == 404

    def test_close_card(self, client, project, columns, member_headers):
        card = self._create(client, project, columns[0], member_headers)
        resp = client.patch(f"/api/cards/{card['id']}", json={"status": "CLOSED"}, headers=member_headers)
        assert resp.status_code == 200
        assert resp.json["closed_at"] is not None

        resp = client.patch(
            f"/api/cards/{card['id']}/move",
            json={"column_id": columns[1].id, "order": 0},
            headers=member_headers,
        )
        assert resp.status_code == 409

    def test_column_order_conflict_is_409(self, client, project, columns, admin_headers):
        resp = client.post(
            f"/api/projects/{project.id}/columns",
            json={"name": "Review", "order": columns[1].order},
            headers=admin_headers,
        )
        assert resp.status_code == 409

        resp = client.patch(f"/api/columns/{columns[2].id}", json={"order": 0}, headers=admin_headers)
        assert resp.status_code == 409


# =============================================================================
# MEMBERS / CATALOG / SYSTEM
# =============================================================================


class TestSupportingRoutes:

    def test_invite_member(self, client, project, outsider_user, admin_headers, outsider_headers):
        resp = client.post(
            f"/api/projects/{project.id}/members",
            json={"email": "outsider@kanban.test"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert client.get(f"/api/projects/{project.id}/board", headers=outsider_headers).status_code == 200

    def test_label_crud(self, client, project, admin_headers, member_headers):
        resp = client.post(f"/api/projects/{project.id}/labels", json={"name": "bug"}, headers=admin_headers)
        assert resp.status_code == 201
        label_id = resp.json["id"]

        dup = client.post(f"/api/projects/{project.id}/labels", json={"name": "bug"}, headers=admin_headers)
        assert dup.status_code == 409

        labels = client.get(f"/api/projects/{project.id}/labels", headers=member_headers).json["labels"]
        assert [l["name"] for l in labels] == ["bug"]

        resp = client.delete(f"/api/projects/{project.id}/labels/{label_id}", headers=admin_headers)
        assert resp.status_code == 200

    def test_health(self, client, admin_user):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"
        assert resp.json["checks"]["admin"]["status"] == "healthy"


class TestIdentityResolver:

    def test_injected_resolver_is_used(self, app, client, project, member_user, monkeypatch):
        member_id = member_user.id
        monkeypatch.setitem(
            app.config,
            "IDENTITY_RESOLVER",
            lambda token: Identity(user_id=member_id, role="MEMBER") if token == "sso-ok" else None,
        )

        ok = client.get(f"/api/projects/{project.id}/board", headers={"Authorization": "Bearer sso-ok"})
        denied = client.get(f"/api/projects/{project.id}/board", headers={"Authorization": "Bearer other"})

        assert ok.status_code == 200
        assert denied.status_code == 401
