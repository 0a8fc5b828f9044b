from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


ROLE_ADMIN = "ADMIN"
ROLE_MEMBER = "MEMBER"
VALID_ROLES = {ROLE_ADMIN, ROLE_MEMBER}


class User(db.Model):
    """
    User accounts for attribution and authorization.

    Credentials live outside this service: users are provisioned through the
    CLI and identified per request by the identity resolver.

    role is the global role. Global ADMIN users are treated as project
    ADMIN on every project and are the only users allowed to create projects.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120), nullable=True)

    # ADMIN, MEMBER
    role = db.Column(db.String(16), nullable=False, default=ROLE_MEMBER)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


class ProjectMembership(db.Model):
    """
    Per-project role assignment. (user_id, project_id) is unique.
    """
    __tablename__ = "project_memberships"
    __table_args__ = (
        db.UniqueConstraint("user_id", "project_id", name="uq_project_memberships_user_project"),
        db.Index("ix_project_memberships_project", "project_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    # ADMIN, MEMBER
    role = db.Column(db.String(16), nullable=False, default=ROLE_MEMBER)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("memberships", lazy=True, cascade="all, delete-orphan"))
    project = db.relationship("Project", back_populates="members")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "user": self.user.to_dict() if self.user else None,
        }


class ApiToken(db.Model):
    """
    Bearer token for the default identity resolver.

    SECURITY: only the SHA-256 hash of the token is stored; the plaintext is
    shown once by `flask users token`.
    """
    __tablename__ = "api_tokens"
    __table_args__ = (
        db.UniqueConstraint("token_hash", name="uq_api_tokens_token_hash"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("api_tokens", lazy=True, cascade="all, delete-orphan"))
