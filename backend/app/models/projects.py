from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


PROJECT_STATUSES = {"IDLE", "ACTIVE", "PAUSED", "CLOSED"}
CARD_MOVEMENT_MODES = {"FREE", "FORWARD_ONLY"}


class Project(db.Model):
    """
    Kanban project with its lifecycle clock.

    LIFECYCLE:
    - IDLE:   created, clock not started
    - ACTIVE: clock running
    - PAUSED: clock running, time accrues to total_paused_ms on resume/close
    - CLOSED: terminal

    INVARIANTS:
    - paused_at is set iff status == PAUSED
    - closed_at is set iff status == CLOSED
    - total_paused_ms (whole milliseconds) never decreases

    Mutated only through lifecycle_service (status/clock fields) and
    project_service (name, description, card_movement_mode).

    CONCURRENCY:
    - version_id: optimistic lock for lifecycle updates
    - board_revision: bumped by every card write; the UPDATE that bumps it
      is what serializes concurrent board writes within a project
    """
    __tablename__ = "projects"
    __table_args__ = (
        db.Index("ix_projects_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # IDLE, ACTIVE, PAUSED, CLOSED
    status = db.Column(db.String(16), nullable=False, default="IDLE")
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paused_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    total_paused_ms = db.Column(db.BigInteger, nullable=False, default=0)

    # FREE, FORWARD_ONLY
    card_movement_mode = db.Column(db.String(16), nullable=False, default="FREE")

    board_revision = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    creator = db.relationship("User", foreign_keys=[creator_id])
    columns = db.relationship(
        "BoardColumn", back_populates="project", cascade="all, delete-orphan",
        order_by="BoardColumn.order",
    )
    cards = db.relationship("Card", back_populates="project", cascade="all, delete-orphan")
    labels = db.relationship("Label", back_populates="project", cascade="all, delete-orphan")
    priorities = db.relationship("Priority", back_populates="project", cascade="all, delete-orphan")
    members = db.relationship("ProjectMembership", back_populates="project", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "creator_id": self.creator_id,
            "status": self.status,
            "started_at": to_utc_z(self.started_at),
            "paused_at": to_utc_z(self.paused_at),
            "closed_at": to_utc_z(self.closed_at),
            # BigInteger: serialized as a decimal string
            "total_paused_ms": str(self.total_paused_ms or 0),
            "card_movement_mode": self.card_movement_mode,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BoardColumn(db.Model):
    """
    Board column. order is admin-assigned, unique within the project and
    drives the FORWARD_ONLY movement policy; it is not required to be
    contiguous.
    """
    __tablename__ = "board_columns"
    __table_args__ = (
        db.UniqueConstraint("project_id", "order", name="uq_board_columns_project_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(80), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    project = db.relationship("Project", back_populates="columns")
    cards = db.relationship("Card", back_populates="column", order_by="Card.order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "order": self.order,
            "created_at": to_utc_z(self.created_at),
        }


class Label(db.Model):
    __tablename__ = "labels"
    __table_args__ = (
        db.UniqueConstraint("project_id", "name", name="uq_labels_project_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    color = db.Column(db.String(16), nullable=False, default="#64748b")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    project = db.relationship("Project", back_populates="labels")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "color": self.color,
            "created_at": to_utc_z(self.created_at),
        }


class Priority(db.Model):
    """Project-scoped priority; higher weight sorts first."""
    __tablename__ = "priorities"
    __table_args__ = (
        db.UniqueConstraint("project_id", "name", name="uq_priorities_project_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    color = db.Column(db.String(16), nullable=False, default="#64748b")
    weight = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    project = db.relationship("Project", back_populates="priorities")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "color": self.color,
            "weight": self.weight,
            "created_at": to_utc_z(self.created_at),
        }
