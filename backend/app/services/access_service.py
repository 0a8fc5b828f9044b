# Overview: Identity resolution and project-scoped authorization checks.

"""
Access Service

Two collaborators the request layer calls before any board or lifecycle
operation:

- resolve_identity(token) -> Identity | None
    Looks up a bearer token and loads the acting user. The default
    implementation checks an API token issued by the CLI (stored hashed);
    deployments that sit behind another identity provider inject their own
    resolver through Config.IDENTITY_RESOLVER.

- role_of(user_id, project_id) / can_manage(user_id, project_id)
    Project-scoped roles. Global ADMIN users are ADMIN on every project.

TOKENS:
- 32 bytes from secrets, sent to the client once as hex
- only the SHA-256 hash is stored
- expire after TOKEN_MAX_AGE_SECONDS, revocable per user
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import ApiToken, User, ProjectMembership
from ..models.auth import ROLE_ADMIN
from app.time_utils import utcnow


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(user_id: int) -> str:
    """
    Create an API token for user_id (used by the CLI and tests).

    Returns the plaintext token; it is never stored.
    """
    token = generate_token()
    max_age = current_app.config.get("TOKEN_MAX_AGE_SECONDS", 86400)
    now = utcnow()
    db.session.add(ApiToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + timedelta(seconds=max_age),
    ))
    db.session.commit()
    return token


def revoke_tokens(user_id: int) -> int:
    """Revoke every live token for user_id. Returns how many were revoked."""
    now = utcnow()
    count = db.session.query(ApiToken).filter(
        ApiToken.user_id == user_id,
        ApiToken.revoked_at.is_(None),
    ).update({ApiToken.revoked_at: now}, synchronize_session=False)
    db.session.commit()
    return count


def resolve_identity(token: str) -> Identity | None:
    """
    Default identity resolver.

    Returns None for an unknown, expired or revoked token, or an unknown or
    deactivated user.
    """
    if not token:
        return None

    api_token = db.session.query(ApiToken).filter_by(token_hash=hash_token(token)).first()
    if api_token is None or api_token.revoked_at is not None:
        return None
    if api_token.expires_at <= utcnow():
        return None

    user = db.session.get(User, api_token.user_id)
    if user is None or not user.is_active:
        return None
    return Identity(user_id=user.id, role=user.role)


def get_identity_resolver():
    return current_app.config.get("IDENTITY_RESOLVER") or resolve_identity


def role_of(user_id: int, project_id: int) -> str | None:
    """Project role for user_id: "ADMIN", "MEMBER" or None (no access)."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    if user.role == ROLE_ADMIN:
        return ROLE_ADMIN

    membership = db.session.query(ProjectMembership).filter_by(
        user_id=user_id,
        project_id=project_id,
    ).first()
    return membership.role if membership else None



def can_manage(user_id: int, project_id: int) -> bool:
    return role_of(user_id, project_id) == ROLE_ADMIN
