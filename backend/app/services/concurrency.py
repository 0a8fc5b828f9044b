# Overview: Service-layer helpers for locking, retries and transaction boundaries.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Project
from ..validation import NotFoundError, TransactionFailed


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_project_board(project_id: int) -> None:
    """
    Serialize board writes for one project.

    Bumps Project.board_revision with a plain UPDATE. Row-locking databases
    hold the project row until commit; SQLite takes its write lock on the
    same statement. Anything read after this call sees every board write
    committed before it.

    Raises:
        NotFoundError: if the project does not exist
    """
    result = db.session.execute(
        update(Project)
        .where(Project.id == project_id)
        .values(board_revision=Project.board_revision + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Project {project_id} not found")


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must re-read everything it
    validates, since each attempt starts from a rolled-back session.

    Raises:
        TransactionFailed: once the attempts are exhausted
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise TransactionFailed(
                    f"Transaction failed after {attempts} attempts: {exc.__class__.__name__}"
                ) from exc
            current_app.logger.warning(
                "Retrying transaction after %s (attempt %d/%d)",
                exc.__class__.__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))


def atomic(func):
    """
    Run func as one transaction: commit on success, roll back and re-raise
    on any error. Concurrency failures are retried via run_with_retry.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise
    return run_with_retry(_op)
