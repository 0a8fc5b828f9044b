from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


class AuditLog(db.Model):
    """
    Generic project audit trail.

    IMMUTABLE: Never update or delete. Written by the service layer inside the
    same transaction as the change it describes.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_project_created", "project_id", "created_at"),
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    # No FK: audit rows outlive the project they describe
    project_id = db.Column(db.Integer, nullable=True)

    action = db.Column(db.String(64), nullable=False)   # CREATE, MOVE, PROJECT_STARTED, ...
    entity = db.Column(db.String(64), nullable=False)   # PROJECT, CARD, COLUMN, ...
    entity_id = db.Column(db.Integer, nullable=True)
    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }
