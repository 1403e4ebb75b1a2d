"""
quorum.services.content_service — Questions, comments and users
================================================================

Thin persistence for the content that produces notification events.
Only the fields the engine reads or mutates are handled here; anything
richer (labels, sanitisation, editing) lives outside this package.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update

from quorum.database.engine import get_session, run_db
from quorum.database.models import Answer, Comment, Question, QuestionStatus, User
from quorum.errors import AuthorizationError, NotFoundError, ValidationError
from quorum.services import reputation_service
from quorum.services.dispatch import TaskDispatcher
from quorum.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(title: str, max_length: int = 80) -> str:
    slug = _SLUG_STRIP.sub("-", title.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "question"


def question_to_dict(q: Question) -> dict:
    return {
        "id": q.id,
        "author_id": q.author_id,
        "title": q.title,
        "slug": q.slug,
        "content": q.content,
        "status": q.status,
        "is_solved": q.is_solved,
        "created_at": q.created_at.isoformat() if q.created_at else None,
    }


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def get_or_create_user(
    engine: Engine, user_id: int, name: str, email: str | None = None
) -> User:
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            user = User(id=user_id, name=name, email=email, reputation=0)
            session.add(user)
            logger.info("Created user %s (%s)", user_id, name)
        return user


def _require_user(session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None or user.deleted_at is not None:
        raise NotFoundError("User not found")
    return user


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------
def _insert_question(engine: Engine, author_id: int, title: str, content: str):
    with get_session(engine) as session:
        author = _require_user(session, author_id)
        question = Question(
            author_id=author_id,
            title=title,
            slug=slugify(title),
            content=content,
        )
        session.add(question)
        session.flush()
        session.refresh(question)
        return question_to_dict(question), author.name


async def create_question(
    engine: Engine,
    dispatcher: TaskDispatcher,
    notifier: NotificationService,
    *,
    author_id: int,
    title: str,
    content: str = "",
) -> dict:
    """Store a question and fan ``question_added`` out to everyone else."""
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")

    question, author_name = await run_db(
        _insert_question, engine, author_id, title, (content or "").strip()
    )
    dispatcher.spawn(
        notifier.notify_question_added(
            question_id=question["id"],
            question_title=title,
            author_id=author_id,
            author_name=author_name,
        ),
        name=f"fanout-question-{question['id']}",
    )
    return question


def _soft_delete_question(engine: Engine, question_id: int, requester_id: int) -> int | None:
    """Soft-delete the question and its answers; returns the accepted
    answer's author (whose bonus goes with it), if there was one."""
    with get_session(engine) as session:
        question = session.get(Question, question_id, with_for_update=True)
        if question is None or question.deleted_at is not None:
            raise NotFoundError("Question not found")
        if question.author_id != requester_id:
            raise AuthorizationError("You can only delete your own question")

        accepted_author_id = session.scalar(
            select(Answer.author_id).where(
                Answer.question_id == question_id,
                Answer.is_accepted.is_(True),
                Answer.deleted_at.is_(None),
            )
        )

        now = datetime.now(UTC)
        question.deleted_at = now
        question.is_solved = False
        question.status = QuestionStatus.OPEN.value
        session.execute(
            update(Answer)
            .where(Answer.question_id == question_id, Answer.deleted_at.is_(None))
            .values(deleted_at=now, is_accepted=False)
            .execution_options(synchronize_session=False)
        )
        return accepted_author_id


async def delete_question(
    engine: Engine,
    dispatcher: TaskDispatcher,
    notifier: NotificationService,
    *,
    question_id: int,
    requester_id: int,
) -> None:
    accepted_author_id = await run_db(
        _soft_delete_question, engine, question_id, requester_id
    )
    if accepted_author_id is not None:
        dispatcher.spawn(
            reputation_service.handle_acceptance(
                engine, answer_author_id=accepted_author_id, accepted=False
            ),
            name=f"rep-unaccept-question-{question_id}",
        )
    dispatcher.spawn(
        notifier.remove_question_notifications(question_id),
        name=f"cleanup-question-{question_id}",
    )
    logger.info("Question %s deleted by user %s", question_id, requester_id)


def set_solved(engine: Engine, question_id: int, requester_id: int, solved: bool) -> dict:
    """Re-assert a question's solved flag (author only).

    The flag must agree with the accepted answer: a question is solved
    exactly when one of its live answers is accepted.  Accepting or
    deleting answers is how the state actually changes; this call only
    repairs a drifted flag and rejects requests that would break it.
    """
    with get_session(engine) as session:
        question = session.get(Question, question_id, with_for_update=True)
        if question is None or question.deleted_at is not None:
            raise NotFoundError("Question not found")
        if question.author_id != requester_id:
            raise AuthorizationError("Only the question author can change its status")

        has_accepted = session.scalar(
            select(Answer.id).where(
                Answer.question_id == question_id,
                Answer.is_accepted.is_(True),
                Answer.deleted_at.is_(None),
            ).limit(1)
        ) is not None
        if solved and not has_accepted:
            raise ValidationError("Accept an answer to mark the question solved")
        if not solved and has_accepted:
            raise ValidationError("A question with an accepted answer stays solved")

        question.is_solved = solved
        question.status = (QuestionStatus.SOLVED if solved else QuestionStatus.OPEN).value
        session.flush()
        return question_to_dict(question)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
def _insert_comment(
    engine: Engine,
    author_id: int,
    content: str,
    question_id: int | None,
    answer_id: int | None,
):
    with get_session(engine) as session:
        author = _require_user(session, author_id)
        if answer_id is not None:
            answer = session.get(Answer, answer_id)
            if answer is None or answer.deleted_at is not None:
                raise NotFoundError("Answer not found")
            question_id = answer.question_id
        question = session.get(Question, question_id)
        if question is None or question.deleted_at is not None:
            raise NotFoundError("Question not found")

        comment = Comment(
            author_id=author_id,
            question_id=None if answer_id is not None else question_id,
            answer_id=answer_id,
            content=content,
        )
        session.add(comment)
        session.flush()
        return {
            "id": comment.id,
            "author_id": author_id,
            "question_id": comment.question_id,
            "answer_id": comment.answer_id,
            "content": comment.content,
        }, author.name, question.id, question.author_id


async def create_comment(
    engine: Engine,
    dispatcher: TaskDispatcher,
    notifier: NotificationService,
    *,
    author_id: int,
    content: str,
    question_id: int | None = None,
    answer_id: int | None = None,
) -> dict:
    """Comment on a question or an answer; the question author is notified."""
    if (question_id is None) == (answer_id is None):
        raise ValidationError("Comment needs exactly one of question_id or answer_id")
    content = (content or "").strip()
    if not content:
        raise ValidationError("Content is required")

    comment, author_name, parent_question_id, question_author_id = await run_db(
        _insert_comment, engine, author_id, content, question_id, answer_id
    )
    dispatcher.spawn(
        notifier.notify_comment_added(
            question_author_id=question_author_id,
            commenter_id=author_id,
            commenter_name=author_name,
            question_id=parent_question_id,
            comment_id=comment["id"],
            answer_id=answer_id,
        ),
        name=f"notify-comment-{comment['id']}",
    )
    return comment
