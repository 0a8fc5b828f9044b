# Overview: Read-only derivation of a card's time-in-column history.

"""
Card Timeline

Rebuilds how long a card sat in each column from its append-only movement
log. Each log row marks the instant the card LEFT from_column; the
creation row (from_column_id NULL) closes the zero-length "Creation"
segment. The last segment covers the current column up to closed_at, or up
to `now` while the card is open.

Columns are named as they are now, falling back to the name recorded on
the log row once the column has been deleted.

Segment durations are differences of whole-millisecond instants, so they
telescope: total_time_ms == ms(end) - ms(created_at) for any log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import BoardColumn, Card, CardMovementLog
from ..validation import NotFoundError
from app.time_utils import epoch_ms, to_naive_utc, to_utc_z, utcnow


INITIAL_COLUMN_ID = "Initial"
INITIAL_COLUMN_NAME = "Creation"


@dataclass(frozen=True)
class TimelineSegment:
    column_id: int | str
    column_name: str
    entered_at: datetime
    left_at: datetime | None
    duration_ms: int
    is_current: bool = False

    @property
    def duration_seconds(self) -> int:
        return self.duration_ms // 1000

    def to_dict(self) -> dict:
        return {
            "column_id": self.column_id,
            "column_name": self.column_name,
            "entered_at": to_utc_z(self.entered_at),
            "left_at": to_utc_z(self.left_at),
            "duration_ms": self.duration_ms,
            "duration_seconds": self.duration_seconds,
            "is_current": self.is_current,
        }


@dataclass(frozen=True)
class CardTimeline:
    card_id: int
    card_name: str
    segments: list[TimelineSegment] = field(default_factory=list)

    @property
    def total_time_ms(self) -> int:
        return sum(s.duration_ms for s in self.segments)

    def to_dict(self) -> dict:
        total = self.total_time_ms
        return {
            "card_id": self.card_id,
            "card_name": self.card_name,
            "total_time_ms": total,
            "total_time_seconds": total // 1000,
            "timeline": [s.to_dict() for s in self.segments],
        }


def derive_segments(
    *,
    created_at: datetime,
    closed_at: datetime | None,
    current_column: tuple[int, str],
    moves: list[tuple[datetime, int | None, str | None]],
    now: datetime,
) -> list[TimelineSegment]:
    """
    Pure derivation over already-loaded data.

    Args:
        created_at: card creation instant
        closed_at: card close instant, or None while open
        current_column: (id, name) of the column the card is in now
        moves: (moved_at, from_column_id, from_column_name) ascending
        now: evaluation instant for open cards
    """
    segments: list[TimelineSegment] = []
    last = created_at

    for moved_at, from_column_id, from_column_name in moves:
        if from_column_id is None:
            column_id, column_name = INITIAL_COLUMN_ID, INITIAL_COLUMN_NAME
        else:
            column_id, column_name = from_column_id, from_column_name or ""
        segments.append(TimelineSegment(
            column_id=column_id,
            column_name=column_name,
            entered_at=last,
            left_at=moved_at,
            duration_ms=epoch_ms(moved_at) - epoch_ms(last),
        ))
        last = moved_at

    end = closed_at if closed_at is not None else now
    segments.append(TimelineSegment(
        column_id=current_column[0],
        column_name=current_column[1],
        entered_at=last,
        left_at=closed_at,
        duration_ms=epoch_ms(end) - epoch_ms(last),
        is_current=closed_at is None,
    ))
    return segments


def build_timeline(card_id: int, now: datetime | None = None) -> CardTimeline:
    """
    Time-in-column history for a card, evaluated at `now`.

    Raises:
        NotFoundError: card missing
    """
    now = to_naive_utc(now) if now is not None else utcnow()

    card = db.session.get(Card, card_id)
    if card is None:
        raise NotFoundError(f"Card {card_id} not found")

    rows = (
        db.session.query(
            CardMovementLog.moved_at,
            CardMovementLog.from_column_id,
            func.coalesce(BoardColumn.name, CardMovementLog.from_column_name),
        )
        .outerjoin(BoardColumn, BoardColumn.id == CardMovementLog.from_column_id)
        .filter(CardMovementLog.card_id == card_id)
        .order_by(CardMovementLog.moved_at.asc(), CardMovementLog.id.asc())
        .all()
    )

    segments = derive_segments(
        created_at=card.created_at,
        closed_at=card.closed_at,
        current_column=(card.column_id, card.column.name if card.column else ""),
        moves=[(r[0], r[1], r[2]) for r in rows],
        now=now,
    )
    return CardTimeline(card_id=card.id, card_name=card.name, segments=segments)
