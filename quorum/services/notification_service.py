"""
quorum.services.notification_service — Notification Orchestrator
==================================================================

The single entry point other services call when something notify-worthy
happens.  For each domain event it:

1. drops self-events (an actor is never notified about their own action),
2. composes the message text,
3. persists it through :mod:`quorum.services.notification_store`,
4. re-reads the recipient's unread count and broadcasts ``unread_count``
   followed by ``new_notification`` to their live connections,
5. hands the notification to the push gateway as a background task.

Every ``notify_*`` coroutine swallows and logs its own failures: the
answer, comment or acceptance that triggered it has already committed.

Pull-side mutations (mark read, mark all read, delete) also live here so
that every change to a user's inbox pushes the same fresh count the pull
API would return.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, select

from quorum.config import QuorumConfig
from quorum.constants import (
    EVENT_NEW_NOTIFICATION,
    EVENT_NOTIFICATION_DELETED,
    EVENT_UNREAD_COUNT,
)
from quorum.database.engine import get_session, run_db
from quorum.database.models import NotificationType, User
from quorum.errors import TransientDeliveryError
from quorum.services import notification_store as store
from quorum.services.dispatch import TaskDispatcher
from quorum.services.notification_store import NewNotification
from quorum.services.push_gateway import NullPushGateway, PushGateway, PushMessage
from quorum.services.push_hub import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


def _active_user_ids(engine: Engine, *, exclude: int | None = None) -> list[int]:
    with get_session(engine) as session:
        stmt = select(User.id).where(
            User.is_active.is_(True), User.deleted_at.is_(None)
        )
        if exclude is not None:
            stmt = stmt.where(User.id != exclude)
        return list(session.scalars(stmt.order_by(User.id)).all())


def _str_id(value: int | None) -> str | None:
    return str(value) if value is not None else None


class NotificationService:
    """Composes, stores and delivers notifications."""

    def __init__(
        self,
        engine: Engine,
        registry: ConnectionRegistry,
        *,
        gateway: PushGateway | None = None,
        dispatcher: TaskDispatcher | None = None,
        config: QuorumConfig | None = None,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self.gateway = gateway or NullPushGateway()
        self.dispatcher = dispatcher or TaskDispatcher()
        self.config = config or QuorumConfig()

    # ------------------------------------------------------------------
    # Live stream
    # ------------------------------------------------------------------
    async def open_stream(self, user_id: int) -> Connection:
        """Register a stream for *user_id*, then queue its unread count.

        The count is read after registration so a notification created in
        between is either counted here or broadcast to the new connection.
        """
        conn = self.registry.register(user_id)
        try:
            count = await run_db(store.unread_count, self.engine, user_id)
            conn.send(EVENT_UNREAD_COUNT, {"count": count})
        except Exception:
            self.registry.unregister(conn)
            raise
        return conn

    # ------------------------------------------------------------------
    # Delivery pipeline
    # ------------------------------------------------------------------
    async def push_unread_count(self, user_id: int) -> int:
        """Broadcast the user's fresh unread count and return it."""
        count = await run_db(store.unread_count, self.engine, user_id)
        self.registry.broadcast(user_id, EVENT_UNREAD_COUNT, {"count": count})
        return count

    async def _deliver(
        self,
        notification: NewNotification,
        *,
        title: str,
        event: dict[str, Any],
        push_data: dict[str, Any],
    ) -> dict:
        created = await run_db(store.create, self.engine, notification)
        count = await self.push_unread_count(notification.user_id)
        self.registry.broadcast(notification.user_id, EVENT_NEW_NOTIFICATION, event)

        message = PushMessage(
            title=title,
            body=notification.message,
            data={**push_data, "type": notification.type.value, "badgeCount": count},
        )
        self.dispatcher.spawn(
            self._push(notification.user_id, message),
            name=f"push-{notification.type.value}-{notification.user_id}",
        )
        return created

    async def _push(self, user_id: int, message: PushMessage) -> None:
        try:
            await self.gateway.send(user_id, message)
        except TransientDeliveryError as exc:
            logger.warning("Push for user %s not delivered: %s", user_id, exc)

    # ------------------------------------------------------------------
    # Domain events
    # ------------------------------------------------------------------
    async def notify_answer_added(
        self,
        *,
        question_author_id: int,
        answerer_id: int,
        answerer_name: str,
        question_id: int,
        question_title: str,
        answer_id: int,
    ) -> dict | None:
        """Tell the question author that someone answered."""
        if question_author_id == answerer_id:
            return None
        message = f'{answerer_name} answered your question: "{question_title}"'
        try:
            return await self._deliver(
                NewNotification(
                    user_id=question_author_id,
                    type=NotificationType.ANSWER_ADDED,
                    message=message,
                    related_question_id=question_id,
                    related_answer_id=answer_id,
                ),
                title="New Answer",
                event={
                    "type": NotificationType.ANSWER_ADDED.value,
                    "questionId": question_id,
                    "answerId": answer_id,
                },
                push_data={
                    "questionId": _str_id(question_id),
                    "answerId": _str_id(answer_id),
                },
            )
        except Exception:
            logger.exception(
                "Answer notification failed (question %s, answer %s, recipient %s)",
                question_id, answer_id, question_author_id,
            )
            return None

    async def notify_comment_added(
        self,
        *,
        question_author_id: int,
        commenter_id: int,
        commenter_name: str,
        question_id: int,
        comment_id: int,
        answer_id: int | None = None,
    ) -> dict | None:
        """Tell the question author about a comment on the question or one
        of its answers."""
        if question_author_id == commenter_id:
            return None
        if answer_id:
            message = f"{commenter_name} commented on an answer to your question"
        else:
            message = f"{commenter_name} commented on your question"
        try:
            return await self._deliver(
                NewNotification(
                    user_id=question_author_id,
                    type=NotificationType.COMMENT_ADDED,
                    message=message,
                    related_question_id=question_id,
                    related_answer_id=answer_id,
                    related_comment_id=comment_id,
                ),
                title="New Comment",
                event={
                    "type": NotificationType.COMMENT_ADDED.value,
                    "questionId": question_id,
                    "answerId": answer_id,
                    "commentId": comment_id,
                },
                push_data={
                    "questionId": _str_id(question_id),
                    "answerId": _str_id(answer_id),
                    "commentId": _str_id(comment_id),
                },
            )
        except Exception:
            logger.exception(
                "Comment notification failed (question %s, comment %s, recipient %s)",
                question_id, comment_id, question_author_id,
            )
            return None

    async def notify_answer_accepted(
        self,
        *,
        answer_author_id: int,
        accepter_id: int,
        answer_id: int,
        question_id: int,
        question_title: str,
        question_slug: str | None = None,
    ) -> dict | None:
        """Tell the answer author their answer was accepted."""
        if answer_author_id == accepter_id:
            return None
        message = f'Your answer was accepted for: "{question_title}"'
        try:
            return await self._deliver(
                NewNotification(
                    user_id=answer_author_id,
                    type=NotificationType.ANSWER_ACCEPTED,
                    message=message,
                    related_question_id=question_id,
                    related_answer_id=answer_id,
                ),
                title="Answer Accepted!",
                event={
                    "type": NotificationType.ANSWER_ACCEPTED.value,
                    "questionId": question_id,
                    "answerId": answer_id,
                },
                push_data={
                    "questionId": _str_id(question_id),
                    "answerId": _str_id(answer_id),
                    "questionSlug": question_slug,
                },
            )
        except Exception:
            logger.exception(
                "Acceptance notification failed (question %s, answer %s, recipient %s)",
                question_id, answer_id, answer_author_id,
            )
            return None

    async def notify_question_added(
        self,
        *,
        question_id: int,
        question_title: str,
        author_id: int,
        author_name: str,
    ) -> int:
        """Fan a new question out to every other active user.

        Returns the number of notifications created.  Recipients with an
        open stream get a fresh ``unread_count``; there is no per-recipient
        ``new_notification`` or push for fan-out events.
        """
        try:
            recipients = await run_db(_active_user_ids, self.engine, exclude=author_id)
            if not recipients:
                return 0
            message = f'{author_name} asked: "{question_title}"'
            batch = [
                NewNotification(
                    user_id=uid,
                    type=NotificationType.QUESTION_ADDED,
                    message=message,
                    related_question_id=question_id,
                )
                for uid in recipients
            ]
            result = await run_db(
                store.bulk_create,
                self.engine,
                batch,
                batch_size=self.config.notification_batch_size,
            )
        except Exception:
            logger.exception("Question fan-out failed (question %s)", question_id)
            return 0

        recipient_set = set(recipients)
        for uid in self.registry.connected_users():
            if uid in recipient_set:
                await self._refresh_quietly(uid)
        return result.created

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------
    async def _refresh_quietly(self, user_id: int) -> None:
        try:
            await self.push_unread_count(user_id)
        except Exception:
            logger.exception("Unread count refresh failed for user %s", user_id)

    async def remove_answer_notifications(self, answer_id: int) -> set[int]:
        """Delete notifications about an answer and refresh affected counters."""
        try:
            affected = await run_db(store.delete_by_answer, self.engine, answer_id)
        except Exception:
            logger.exception("Notification cleanup failed for answer %s", answer_id)
            return set()
        for uid in affected:
            await self._refresh_quietly(uid)
        return affected

    async def remove_question_notifications(self, question_id: int) -> set[int]:
        """Delete notifications about a question (and its answers)."""
        try:
            affected = await run_db(store.delete_by_question, self.engine, question_id)
        except Exception:
            logger.exception("Notification cleanup failed for question %s", question_id)
            return set()
        for uid in affected:
            await self._refresh_quietly(uid)
        return affected

    # ------------------------------------------------------------------
    # Pull API
    # ------------------------------------------------------------------
    def _page_size(self, limit: int | None) -> int:
        if limit is None:
            return self.config.default_page_size
        return min(limit, self.config.max_page_size)

    async def list_notifications(
        self,
        user_id: int,
        *,
        unread_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> dict:
        notifications = await run_db(
            store.list_for_user,
            self.engine,
            user_id,
            unread_only=unread_only,
            limit=self._page_size(limit),
            offset=offset,
        )
        count = await run_db(store.unread_count, self.engine, user_id)
        return {"notifications": notifications, "unread_count": count}

    async def unread_count(self, user_id: int) -> int:
        return await run_db(store.unread_count, self.engine, user_id)

    async def mark_read(self, notification_id: int, user_id: int) -> dict:
        notification = await run_db(store.mark_read, self.engine, notification_id, user_id)
        await self._refresh_quietly(user_id)
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        updated = await run_db(store.mark_all_read, self.engine, user_id)
        await self._refresh_quietly(user_id)
        return updated

    async def delete_notification(self, notification_id: int, user_id: int) -> None:
        await run_db(store.delete_one, self.engine, notification_id, user_id)
        self.registry.broadcast(
            user_id, EVENT_NOTIFICATION_DELETED, {"notificationId": notification_id}
        )
        await self._refresh_quietly(user_id)
