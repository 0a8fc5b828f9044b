from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


CARD_STATUSES = {"OPEN", "CLOSED"}


card_labels = db.Table(
    "card_labels",
    db.Column("card_id", db.Integer, db.ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True),
    db.Column("label_id", db.Integer, db.ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True),
)


class Card(db.Model):
    """
    A card on the board.

    ORDERING:
    - order is dense and zero-based inside its column: a column holding N
      cards uses exactly {0, ..., N-1}
    - only board_service writes order/column_id

    LIFECYCLE:
    - OPEN -> CLOSED sets closed_at, CLOSED -> OPEN clears it
    - closed cards keep their slot in the column ordering
    """
    __tablename__ = "cards"
    __table_args__ = (
        db.Index("ix_cards_column_order", "column_id", "order"),
        db.Index("ix_cards_project_status", "project_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    column_id = db.Column(db.Integer, db.ForeignKey("board_columns.id"), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    order = db.Column(db.Integer, nullable=False, default=0)

    # OPEN, CLOSED
    status = db.Column(db.String(16), nullable=False, default="OPEN")

    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    priority_id = db.Column(db.Integer, db.ForeignKey("priorities.id", ondelete="SET NULL"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="cards")
    column = db.relationship("BoardColumn", back_populates="cards")
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    priority = db.relationship("Priority")
    labels = db.relationship("Label", secondary=card_labels, lazy="selectin", order_by="Label.name")
    movement_logs = db.relationship(
        "CardMovementLog",
        back_populates="card",
        cascade="all, delete-orphan",
        order_by="CardMovementLog.moved_at",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "column_id": self.column_id,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "status": self.status,
            "assignee_id": self.assignee_id,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "priority_id": self.priority_id,
            "priority": self.priority.to_dict() if self.priority else None,
            "labels": [label.to_dict() for label in self.labels],
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "closed_at": to_utc_z(self.closed_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CardMovementLog(db.Model):
    """
    Append-only ledger of column transitions for a card.

    from_column_id is NULL only for the creation event. Rows are never
    updated; they go away only with the card itself. Column ids and names are
    recorded as history, not foreign keys, so deleting a column later leaves
    the rows (and the timeline built from them) intact.
    Read in (moved_at, id) order to rebuild time-in-column history.
    """
    __tablename__ = "card_movement_logs"
    __table_args__ = (
        db.Index("ix_card_movement_logs_card_moved", "card_id", "moved_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    card_id = db.Column(db.Integer, db.ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    from_column_id = db.Column(db.Integer, nullable=True)
    from_column_name = db.Column(db.String(80), nullable=True)
    to_column_id = db.Column(db.Integer, nullable=False)
    to_column_name = db.Column(db.String(80), nullable=False)
    moved_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    moved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    card = db.relationship("Card", back_populates="movement_logs")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "from_column_id": self.from_column_id,
            "from_column_name": self.from_column_name,
            "to_column_id": self.to_column_id,
            "to_column_name": self.to_column_name,
            "moved_at": to_utc_z(self.moved_at),
            "moved_by_user_id": self.moved_by_user_id,
        }
