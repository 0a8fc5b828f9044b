# Overview: Service-layer operations for the project audit trail.

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import AuditLog
from app.time_utils import utcnow


def append_audit_log(
    *,
    user_id: int | None,
    project_id: int | None,
    action: str,
    entity: str,
    entity_id: int | None,
    details: dict[str, Any] | None = None,
    occurred_at=None,
) -> AuditLog:
    """
    Append one audit row to the current session.

    Does NOT commit: the caller's transaction owns the write so the audit row
    and the change it describes become visible together.
    """
    entry = AuditLog(
        user_id=user_id,
        project_id=project_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        details=details or {},
        created_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    return entry


def list_audit_logs(project_id: int, *, limit: int = 100) -> list[AuditLog]:
    limit = max(1, min(limit, 500))
    return (
        db.session.query(AuditLog)
        .filter_by(project_id=project_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
