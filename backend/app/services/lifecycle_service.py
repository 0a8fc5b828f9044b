# Overview: Service-layer operations for the project lifecycle clock.

"""
Project Lifecycle Service

================================================================================
PURPOSE: Enforce the project status machine and keep exact paused/active time
================================================================================

STATE MACHINE:
    IDLE -> ACTIVE <-> PAUSED
              \\         /
               -> CLOSED <-

    start:  IDLE            -> ACTIVE   (started_at = now, set exactly once)
    pause:  ACTIVE          -> PAUSED   (paused_at = now)
    resume: PAUSED          -> ACTIVE   (total_paused_ms += now - paused_at)
    close:  ACTIVE | PAUSED -> CLOSED   (trailing pause folded in first)

RULES:
1. Any action outside the table raises ConflictError and changes nothing
2. CLOSED is terminal
3. total_paused_ms never decreases
4. The status change and its audit row commit together or not at all

TIME MODEL:
- Every instant is reduced to whole milliseconds since the epoch
  (time_utils.epoch_ms) and durations are differences of those integers.
  Python ints do not overflow and floats are never involved, so long-running
  projects accumulate exactly.
- apply_action() persists the accumulated pause at rest; compute_live_snapshot()
  projects the running clock to "now" without writing.
================================================================================
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import Project
from ..validation import ConflictError, NotFoundError, ValidationError
from .audit_service import append_audit_log
from .concurrency import atomic, lock_for_update
from app.time_utils import ms_between, to_naive_utc, to_utc_z, utcnow


class LifecycleAction(enum.Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    CLOSE = "close"


def _open_pause_ms(project: Project, now: datetime) -> int:
    if project.status != "PAUSED" or project.paused_at is None:
        return 0
    return max(0, ms_between(project.paused_at, now))


def _start(project: Project, now: datetime) -> None:
    project.started_at = now


def _pause(project: Project, now: datetime) -> None:
    project.paused_at = now


def _resume(project: Project, now: datetime) -> None:
    project.total_paused_ms = (project.total_paused_ms or 0) + _open_pause_ms(project, now)
    project.paused_at = None


def _close(project: Project, now: datetime) -> None:
    project.total_paused_ms = (project.total_paused_ms or 0) + _open_pause_ms(project, now)
    project.paused_at = None
    project.closed_at = now


@dataclass(frozen=True)
class Transition:
    allowed_from: frozenset[str]
    target: str
    audit_action: str
    effect: Callable[[Project, datetime], None]


TRANSITIONS: dict[LifecycleAction, Transition] = {
    LifecycleAction.START: Transition(frozenset({"IDLE"}), "ACTIVE", "PROJECT_STARTED", _start),
    LifecycleAction.PAUSE: Transition(frozenset({"ACTIVE"}), "PAUSED", "PROJECT_PAUSED", _pause),
    LifecycleAction.RESUME: Transition(frozenset({"PAUSED"}), "ACTIVE", "PROJECT_RESUMED", _resume),
    LifecycleAction.CLOSE: Transition(frozenset({"ACTIVE", "PAUSED"}), "CLOSED", "PROJECT_CLOSED", _close),
}


def parse_action(action: LifecycleAction | str) -> LifecycleAction:
    """
    Accept a LifecycleAction or its lowercase name ("start", "pause", ...).

    Raises:
        ValidationError: for anything else
    """
    if isinstance(action, LifecycleAction):
        return action
    if isinstance(action, str):
        try:
            return LifecycleAction(action.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(a.value for a in LifecycleAction)
    raise ValidationError(f"Invalid action. Must be one of: {allowed}")


def allowed_actions(status: str) -> list[str]:
    return [a.value for a, t in TRANSITIONS.items() if status in t.allowed_from]


def apply_action(
    project_id: int,
    action: LifecycleAction | str,
    *,
    actor_id: int | None,
    now: datetime | None = None,
) -> Project:
    """
    Apply one lifecycle action to a project.

    The project row is re-read (row-locked where the database supports it)
    inside the transaction on every attempt, so a retried call validates
    against the current state, never a stale one.

    Args:
        project_id: target project
        action: LifecycleAction or its name
        actor_id: user recorded on the audit row
        now: evaluation instant (defaults to utcnow())

    Returns:
        The updated project

    Raises:
        ValidationError: unknown action
        NotFoundError: project missing
        ConflictError: action not allowed from the current status
        TransactionFailed: store contention outlived the retry budget
    """
    action = parse_action(action)
    now = to_naive_utc(now) if now is not None else utcnow()
    transition = TRANSITIONS[action]

    def _op() -> tuple[Project, str]:
        project = (
            lock_for_update(db.session.query(Project).filter_by(id=project_id))
            .populate_existing()
            .first()
        )
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        from_status = project.status
        if from_status not in transition.allowed_from:
            raise ConflictError(
                f'Cannot perform "{action.value}" action on a project in "{from_status}" status.'
            )

        transition.effect(project, now)
        project.status = transition.target

        append_audit_log(
            user_id=actor_id,
            project_id=project.id,
            action=transition.audit_action,
            entity="PROJECT",
            entity_id=project.id,
            details={"fromStatus": from_status, "toStatus": transition.target},
            occurred_at=now,
        )
        db.session.flush()
        return project, from_status

    project, from_status = atomic(_op)
    current_app.logger.info(
        "Project %s lifecycle %s: %s -> %s", project_id, action.value, from_status, project.status
    )
    return project


@dataclass(frozen=True)
class LifecycleSnapshot:
    status: str
    started_at: datetime | None
    paused_at: datetime | None
    closed_at: datetime | None
    total_paused_ms: int
    total_elapsed_ms: int
    active_ms: int

    def to_dict(self) -> dict:
        # Durations as decimal strings: they can outgrow a JSON double
        return {
            "status": self.status,
            "started_at": to_utc_z(self.started_at),
            "paused_at": to_utc_z(self.paused_at),
            "closed_at": to_utc_z(self.closed_at),
            "total_paused_ms": str(self.total_paused_ms),
            "total_elapsed_ms": str(self.total_elapsed_ms),
            "active_ms": str(self.active_ms),
            "allowed_actions": allowed_actions(self.status),
        }


def snapshot_of(project: Project, now: datetime) -> LifecycleSnapshot:
    """Point-in-time clock reading for an already loaded project."""
    total_elapsed_ms = 0
    if project.started_at is not None:
        end = project.closed_at or now
        total_elapsed_ms = ms_between(project.started_at, end)

    live_paused_ms = (project.total_paused_ms or 0) + _open_pause_ms(project, now)
    active_ms = max(0, total_elapsed_ms - live_paused_ms)

    return LifecycleSnapshot(
        status=project.status,
        started_at=project.started_at,
        paused_at=project.paused_at,
        closed_at=project.closed_at,
        total_paused_ms=live_paused_ms,
        total_elapsed_ms=total_elapsed_ms,
        active_ms=active_ms,
    )


def compute_live_snapshot(project_id: int, now: datetime | None = None) -> LifecycleSnapshot:
    """
    Read-only clock reading at `now`.

    total_elapsed_ms = (closed_at or now) - started_at, 0 if never started
    total_paused_ms  = stored total + the open pause, if PAUSED
    active_ms        = max(0, total_elapsed_ms - total_paused_ms)

    Raises:
        NotFoundError: project missing
    """
    now = to_naive_utc(now) if now is not None else utcnow()
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    return snapshot_of(project, now)
