"""
quorum.services.notification_store — Durable Notification Store
================================================================

Synchronous persistence for the per-user notification inbox.  All public
functions open their own session and are meant to be awaited through
``run_db``.

Visibility rule: a notification that references a soft-deleted question
or answer is invisible to :func:`list_for_user` and :func:`unread_count`,
even before :func:`delete_by_answer` / :func:`delete_by_question` sweep
the row.  The filter is evaluated at read time with outer joins.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, and_, delete, func, insert, or_, select, update
from sqlalchemy.orm import Session, aliased

from quorum.constants import (
    DEFAULT_NOTIFICATION_BATCH_SIZE,
    DEFAULT_PAGE_SIZE,
    SLOW_QUERY_WARN_MS,
)
from quorum.database.engine import get_session
from quorum.database.models import Answer, Notification, NotificationType, Question
from quorum.errors import AuthorizationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input record
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class NewNotification:
    """A notification about to be persisted."""

    user_id: int
    type: NotificationType
    message: str
    related_question_id: int | None = None
    related_answer_id: int | None = None
    related_comment_id: int | None = None

    def as_row(self) -> dict:
        if not self.user_id:
            raise ValidationError("Notification recipient is required")
        return {
            "user_id": self.user_id,
            "type": NotificationType(self.type).value,
            "message": self.message,
            "related_question_id": self.related_question_id,
            "related_answer_id": self.related_answer_id,
            "related_comment_id": self.related_comment_id,
        }


@dataclass(frozen=True, slots=True)
class BulkResult:
    created: int
    failed_batches: list[int]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def to_dict(n: Notification, *, question_title: str | None = None,
            question_slug: str | None = None) -> dict:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "type": n.type,
        "message": n.message,
        "related_question_id": n.related_question_id,
        "related_answer_id": n.related_answer_id,
        "related_comment_id": n.related_comment_id,
        "read": n.read,
        "read_at": _iso(n.read_at),
        "created_at": _iso(n.created_at),
        "question_title": question_title,
        "question_slug": question_slug,
    }


# ---------------------------------------------------------------------------
# Visibility filter
# ---------------------------------------------------------------------------
def _visible_query(*columns):
    """SELECT *columns* FROM notifications, hiding rows whose question or
    answer has been soft-deleted."""
    q = aliased(Question)
    a = aliased(Answer)
    stmt = (
        select(*columns, q.title, q.slug)
        .select_from(Notification)
        .outerjoin(q, Notification.related_question_id == q.id)
        .outerjoin(a, Notification.related_answer_id == a.id)
        .where(
            or_(Notification.related_question_id.is_(None), q.deleted_at.is_(None)),
            or_(Notification.related_answer_id.is_(None), a.deleted_at.is_(None)),
        )
    )
    return stmt


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create(engine: Engine, notification: NewNotification) -> dict:
    """Insert one notification and return it."""
    row = notification.as_row()
    with get_session(engine) as session:
        obj = Notification(**row)
        session.add(obj)
        session.flush()
        session.refresh(obj)
        result = to_dict(obj)
    logger.debug(
        "Notification %s created for user %s (%s)",
        result["id"], notification.user_id, row["type"],
    )
    return result


def _chunks(rows: Sequence[dict], size: int) -> Iterable[tuple[int, Sequence[dict]]]:
    for index, start in enumerate(range(0, len(rows), size), start=1):
        yield index, rows[start:start + size]


def bulk_create(
    engine: Engine,
    notifications: Sequence[NewNotification],
    *,
    batch_size: int = DEFAULT_NOTIFICATION_BATCH_SIZE,
) -> BulkResult:
    """Insert *notifications* in independently committed batches.

    A failing batch is rolled back and logged with its 1-based index;
    batches already committed stay committed and later batches still run.
    """
    if batch_size <= 0:
        raise ValidationError("batch_size must be positive")
    rows = [n.as_row() for n in notifications]
    if not rows:
        return BulkResult(created=0, failed_batches=[])

    created = 0
    failed: list[int] = []
    for index, batch in _chunks(rows, batch_size):
        try:
            with get_session(engine) as session:
                session.execute(insert(Notification), list(batch))
            created += len(batch)
        except Exception:
            logger.exception(
                "Failed to create notification batch %d (%d rows)", index, len(batch)
            )
            failed.append(index)

    logger.info(
        "Bulk notification insert: %d created, %d batch(es) failed",
        created, len(failed),
    )
    return BulkResult(created=created, failed_batches=failed)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------
def list_for_user(
    engine: Engine,
    user_id: int,
    *,
    unread_only: bool = False,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> list[dict]:
    """Newest-first page of the user's visible notifications."""
    if limit <= 0 or offset < 0:
        raise ValidationError("limit must be positive and offset non-negative")

    stmt = _visible_query(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    stmt = (
        stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )

    with get_session(engine) as session:
        rows = session.execute(stmt).all()
        return [
            to_dict(n, question_title=title, question_slug=slug)
            for n, title, slug in rows
        ]


def _count_unread(session: Session, user_id: int) -> int:
    inner = _visible_query(Notification.id).where(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    ).subquery()
    return int(session.scalar(select(func.count()).select_from(inner)) or 0)


def unread_count(engine: Engine, user_id: int) -> int:
    """Number of visible unread notifications for *user_id*."""
    started = time.perf_counter()
    with get_session(engine) as session:
        count = _count_unread(session, user_id)
    elapsed_ms = (time.perf_counter() - started) * 1000
    if elapsed_ms > SLOW_QUERY_WARN_MS:
        logger.warning(
            "Unread count query for user %s took %.0f ms", user_id, elapsed_ms
        )
    return count


# ---------------------------------------------------------------------------
# Read-state transitions
# ---------------------------------------------------------------------------
def _get_owned(session: Session, notification_id: int, user_id: int) -> Notification:
    obj = session.get(Notification, notification_id, with_for_update=True)
    if obj is None:
        raise NotFoundError("Notification not found")
    if obj.user_id != user_id:
        raise AuthorizationError("Notification belongs to another user")
    return obj


def mark_read(engine: Engine, notification_id: int, user_id: int) -> dict:
    """Mark one notification read.

    Idempotent: an already-read notification is returned unchanged.
    """
    with get_session(engine) as session:
        obj = _get_owned(session, notification_id, user_id)
        if obj.read:
            logger.debug("Notification %s already read", notification_id)
        else:
            obj.read = True
            obj.read_at = datetime.now(UTC)
            session.flush()
        return to_dict(obj)


def mark_all_read(engine: Engine, user_id: int) -> int:
    """Mark every unread notification of *user_id* read; return how many."""
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def delete_one(engine: Engine, notification_id: int, user_id: int) -> None:
    """Delete a notification owned by *user_id*."""
    with get_session(engine) as session:
        obj = _get_owned(session, notification_id, user_id)
        session.delete(obj)


def _delete_where(engine: Engine, condition) -> set[int]:
    with get_session(engine) as session:
        affected = set(
            session.scalars(
                select(Notification.user_id).where(condition).distinct()
            ).all()
        )
        if affected:
            session.execute(
                delete(Notification)
                .where(condition)
                .execution_options(synchronize_session=False)
            )
    return affected


def delete_by_answer(engine: Engine, answer_id: int) -> set[int]:
    """Delete notifications about *answer_id*; return affected recipients."""
    return _delete_where(engine, Notification.related_answer_id == answer_id)


def delete_by_question(engine: Engine, question_id: int) -> set[int]:
    """Delete notifications about *question_id* or any of its answers."""
    answer_ids = select(Answer.id).where(Answer.question_id == question_id)
    return _delete_where(
        engine,
        or_(
            Notification.related_question_id == question_id,
            and_(
                Notification.related_answer_id.is_not(None),
                Notification.related_answer_id.in_(answer_ids),
            ),
        ),
    )
