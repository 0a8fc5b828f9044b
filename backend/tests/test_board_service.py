"""
Board ordering tests.

Verifies:
- orders stay dense and zero-based after creates, moves and deletes
- same-column and cross-column shift rules
- FORWARD_ONLY policy rejects backward moves with no side effects
- move validation (bounds, foreign columns, no-op moves, closed cards)
- movement-log and audit rows are written with the move
"""

from datetime import timedelta

import pytest

from app.extensions import db
from app.models import AuditLog, BoardColumn, Card, CardMovementLog
from app.services import board_service, project_service
from app.validation import ConflictError, ForbiddenTransition, NotFoundError, ValidationError

from conftest import T0


def _orders(column_id):
    """[(card_id, order), ...] by order, straight from the database."""
    return [
        (row.id, row.order)
        for row in db.session.query(Card.id, Card.order)
        .filter(Card.column_id == column_id)
        .order_by(Card.order.asc())
        .all()
    ]


def _assert_dense(column_id):
    orders = [o for _, o in _orders(column_id)]
    assert orders == list(range(len(orders))), f"column {column_id} orders {orders}"


def _fill(project_id, column_id, actor_id, count, prefix="Card"):
    return [
        board_service.create_card(
            project_id, column_id, f"{prefix} {i}", actor_id=actor_id,
            now=T0 + timedelta(seconds=i),
        ).id
        for i in range(count)
    ]


class TestCreateCard:

    def test_appends_zero_based(self, db_session, project, columns, member_user):
        ids = _fill(project.id, columns[0].id, member_user.id, 3)
        assert _orders(columns[0].id) == [(ids[0], 0), (ids[1], 1), (ids[2], 2)]

    def test_writes_creation_log_row(self, db_session, project, columns, member_user):
        card = board_service.create_card(project.id, columns[0].id, "First", actor_id=member_user.id, now=T0)

        logs = db.session.query(CardMovementLog).filter_by(card_id=card.id).all()
        assert len(logs) == 1
        assert logs[0].from_column_id is None
        assert logs[0].to_column_id == columns[0].id
        assert logs[0].to_column_name == "To Do"
        assert logs[0].moved_at == T0
        assert logs[0].moved_by_user_id == member_user.id

    def test_rejects_column_from_other_project(self, db_session, project, admin_user, member_user):
        other = project_service.create_project(name="Other Project", creator_id=admin_user.id)
        foreign = db.session.query(BoardColumn).filter_by(project_id=other.id).first()

        with pytest.raises(ValidationError):
            board_service.create_card(project.id, foreign.id, "Nope", actor_id=member_user.id)
        assert db.session.query(Card).count() == 0

    def test_rejects_blank_name(self, db_session, project, columns, member_user):
        with pytest.raises(ValidationError):
            board_service.create_card(project.id, columns[0].id, "   ", actor_id=member_user.id)

    def test_assignee_must_be_member(self, db_session, project, columns, member_user, outsider_user):
        with pytest.raises(ValidationError):
            board_service.create_card(
                project.id, columns[0].id, "Task", actor_id=member_user.id, assignee_id=outsider_user.id
            )
        card = board_service.create_card(
            project.id, columns[0].id, "Task", actor_id=member_user.id, assignee_id=member_user.id
        )
        assert card.assignee_id == member_user.id


class TestSameColumnMove:

    def test_move_up_shifts_range_down(self, db_session, project, columns, member_user):
        col = columns[0].id
        a, b, c, d = _fill(project.id, col, member_user.id, 4)

        board_service.move_card(d, col, 1, actor_id=member_user.id)

        assert _orders(col) == [(a, 0), (d, 1), (b, 2), (c, 3)]

    def test_move_down_shifts_range_up(self, db_session, project, columns, member_user):
        col = columns[0].id
        a, b, c, d = _fill(project.id, col, member_user.id, 4)

        board_service.move_card(a, col, 2, actor_id=member_user.id)

        assert _orders(col) == [(b, 0), (c, 1), (a, 2), (d, 3)]

    def test_same_column_move_writes_no_log_row(self, db_session, project, columns, member_user):
        col = columns[0].id
        a, b = _fill(project.id, col, member_user.id, 2)

        board_service.move_card(b, col, 0, actor_id=member_user.id)

        assert db.session.query(CardMovementLog).filter_by(card_id=b).count() == 1

    def test_same_position_is_conflict(self, db_session, project, columns, member_user):
        col = columns[0].id
        a, b = _fill(project.id, col, member_user.id, 2)

        with pytest.raises(ConflictError):
            board_service.move_card(b, col, 1, actor_id=member_user.id)

    def test_order_past_last_slot_rejected(self, db_session, project, columns, member_user):
        col = columns[0].id
        ids = _fill(project.id, col, member_user.id, 3)

        with pytest.raises(ValidationError):
            board_service.move_card(ids[0], col, 3, actor_id=member_user.id)
        assert _orders(col) == [(ids[0], 0), (ids[1], 1), (ids[2], 2)]


class TestCrossColumnMove:

    def test_closes_gap_and_opens_slot(self, db_session, project, columns, member_user):
        src, dst = columns[0].id, columns[1].id
        a, b, c = _fill(project.id, src, member_user.id, 3, "Src")
        x, y = _fill(project.id, dst, member_user.id, 2, "Dst")

        board_service.move_card(b, dst, 1, actor_id=member_user.id)

        assert _orders(src) == [(a, 0), (c, 1)]
        assert _orders(dst) == [(x, 0), (b, 1), (y, 2)]

    def test_append_at_end_of_target(self, db_session, project, columns, member_user):
        src, dst = columns[0].id, columns[1].id
        (a,) = _fill(project.id, src, member_user.id, 1)
        x, y = _fill(project.id, dst, member_user.id, 2, "Dst")

        board_service.move_card(a, dst, 2, actor_id=member_user.id)

        assert _orders(src) == []
        assert _orders(dst) == [(x, 0), (y, 1), (a, 2)]

    def test_into_empty_column(self, db_session, project, columns, member_user):
        (a,) = _fill(project.id, columns[0].id, member_user.id, 1)

        card = board_service.move_card(a, columns[2].id, 0, actor_id=member_user.id)

        assert card.column_id == columns[2].id
        assert card.order == 0

    def test_order_beyond_count_rejected(self, db_session, project, columns, member_user):
        (a,) = _fill(project.id, columns[0].id, member_user.id, 1)

        with pytest.raises(ValidationError):
            board_service.move_card(a, columns[1].id, 1, actor_id=member_user.id)

    def test_writes_log_and_audit(self, db_session, project, columns, member_user):
        (a,) = _fill(project.id, columns[0].id, member_user.id, 1)
        moved_at = T0 + timedelta(minutes=3)

        board_service.move_card(a, columns[1].id, 0, actor_id=member_user.id, now=moved_at)

        logs = (
            db.session.query(CardMovementLog)
            .filter_by(card_id=a)
            .order_by(CardMovementLog.id.asc())
            .all()
        )
        assert [(l.from_column_id, l.to_column_id) for l in logs] == [
            (None, columns[0].id),
            (columns[0].id, columns[1].id),
        ]
        assert logs[-1].moved_at == moved_at

        audit = db.session.query(AuditLog).filter_by(entity="CARD", action="MOVE", entity_id=a).one()
        assert audit.details == {"from": columns[0].id, "to": columns[1].id, "order": 0}
        assert audit.user_id == member_user.id

    def test_rejects_foreign_column(self, db_session, project, columns, admin_user, member_user):
        (a,) = _fill(project.id, columns[0].id, member_user.id, 1)
        other = project_service.create_project(name="Other Project", creator_id=admin_user.id)
        foreign = db.session.query(BoardColumn).filter_by(project_id=other.id).first()

        with pytest.raises(ValidationError):
            board_service.move_card(a, foreign.id, 0, actor_id=member_user.id)

    @pytest.mark.parametrize("bad_order", [-1, 1.5, "x", True])
    def test_rejects_bad_order_values(self, db_session, project, columns, member_user, bad_order):
        (a,) = _fill(project.id, columns[0].id, member_user.id, 1)

        with pytest.raises(ValidationError):
            board_service.move_card(a, columns[1].id, bad_order, actor_id=member_user.id)

    def test_missing_card(self, db_session, project, columns, member_user):
        with pytest.raises(NotFoundError):
            board_service.move_card(424242, columns[0].id, 0, actor_id=member_user.id)


class TestForwardOnly:

    def _forward_only(self, project, admin_user):
        project_service.update_settings(
            project.id, actor_id=admin_user.id, patch={"card_movement_mode": "FORWARD_ONLY"}
        )

    def test_backward_move_rejected_without_side_effects(
        self, db_session, project, columns, admin_user, member_user
    ):
        (a,) = _fill(project.id, columns[1].id, member_user.id, 1)
        (x,) = _fill(project.id, columns[0].id, member_user.id, 1, "Todo")
        self._forward_only(project, admin_user)

        logs_before = db.session.query(CardMovementLog).count()
        audit_before = db.session.query(AuditLog).count()

        with pytest.raises(ForbiddenTransition):
            board_service.move_card(a, columns[0].id, 0, actor_id=member_user.id)

        assert _orders(columns[0].id) == [(x, 0)]
        assert _orders(columns[1].id) == [(a, 0)]
        assert db.session.query(CardMovementLog).count() == logs_before
        assert db.session.query(AuditLog).count() == audit_before

    def test_forward_and_same_column_moves_allowed(
        self, db_session, project, columns, admin_user, member_user
    ):
        a, b = _fill(project.id, columns[0].id, member_user.id, 2)
        self._forward_only(project, admin_user)

        board_service.move_card(b, columns[0].id, 0, actor_id=member_user.id)
        board_service.move_card(a, columns[2].id, 0, actor_id=member_user.id)

        assert _orders(columns[0].id) == [(b, 0)]
        assert _orders(columns[2].id) == [(a, 0)]


class TestDeleteAndUpdate:

    def test_delete_closes_gap(self, db_session, project, columns, member_user):
        col = columns[0].id
        a, b, c = _fill(project.id, col, member_user.id, 3)

        board_service.delete_card(b, actor_id=member_user.id)

        assert _orders(col) == [(a, 0), (c, 1)]
        assert db.session.query(CardMovementLog).filter_by(card_id=b).count() == 0

    def test_dense_after_mixed_sequence(self, db_session, project, columns, member_user):
        todo, doing, done = (c.id for c in columns)
        ids = _fill(project.id, todo, member_user.id, 5)

        board_service.move_card(ids[4], doing, 0, actor_id=member_user.id)
        board_service.move_card(ids[0], doing, 1, actor_id=member_user.id)
        board_service.move_card(ids[2], todo, 0, actor_id=member_user.id)
        board_service.delete_card(ids[1], actor_id=member_user.id)
        board_service.move_card(ids[4], done, 0, actor_id=member_user.id)
        board_service.create_card(project.id, doing, "Late", actor_id=member_user.id)

        for column_id in (todo, doing, done):
            _assert_dense(column_id)

    def test_close_and_reopen(self, db_session, project, columns, member_user):
        (a,) = _fill(project.id, columns[0].id, member_user.id, 1)
        closed_at = T0 + timedelta(hours=2)

        card = board_service.update_card(a, actor_id=member_user.id, patch={"status": "CLOSED"}, now=closed_at)
        assert card.status == "CLOSED"
        assert card.closed_at == closed_at
        assert card.order == 0

        card = board_service.update_card(a, actor_id=member_user.id, patch={"status": "OPEN"})
        assert card.status == "OPEN"
        assert card.closed_at is None

    def test_closed_card_cannot_move(self, db_session, project, columns, member_user):
        a, b = _fill(project.id, columns[0].id, member_user.id, 2)
        board_service.update_card(a, actor_id=member_user.id, patch={"status": "CLOSED"}, now=T0 + timedelta(hours=1))
        logs_before = db.session.query(CardMovementLog).count()

        with pytest.raises(ConflictError):
            board_service.move_card(a, columns[1].id, 0, actor_id=member_user.id, now=T0 + timedelta(hours=2))

        assert db.session.query(CardMovementLog).count() == logs_before
        assert _orders(columns[0].id) == [(a, 0), (b, 1)]
        assert _orders(columns[1].id) == []

        board_service.update_card(a, actor_id=member_user.id, patch={"status": "OPEN"})
        card = board_service.move_card(a, columns[1].id, 0, actor_id=member_user.id)
        assert (card.column_id, card.order) == (columns[1].id, 0)
        _assert_dense(columns[0].id)

    def test_board_lists_open_cards_by_column(self, db_session, project, columns, member_user):
        a, b = _fill(project.id, columns[0].id, member_user.id, 2)
        board_service.update_card(b, actor_id=member_user.id, patch={"status": "CLOSED"})

        board = board_service.get_board(project.id)

        assert [c["name"] for c in board] == ["To Do", "In Progress", "Done"]
        assert [card["id"] for card in board[0]["cards"]] == [a]
        assert board[1]["cards"] == []
