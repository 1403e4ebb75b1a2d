"""
quorum.services.answer_service — Answers, acceptance and deletion
==================================================================

Owns the two facts that must always agree: which answer of a question is
accepted, and whether that question is solved.

* :func:`accept_answer` — in ONE transaction: un-accept every other answer,
  accept the target, mark the question solved.  Reputation (+15 for the new
  author, -15 for a displaced one) and the acceptance notification follow as
  background tasks once the transaction has committed.
* :func:`delete_answer` — soft-deletes an answer; when it held the accepted
  flag the question is reopened in the same transaction.
* :func:`create_answer` — stores an answer and notifies the question author.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update

from quorum.database.engine import get_session, run_db
from quorum.database.models import Answer, Question, QuestionStatus, User
from quorum.errors import AuthorizationError, NotFoundError, ValidationError
from quorum.services import reputation_service
from quorum.services.dispatch import TaskDispatcher
from quorum.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def answer_to_dict(a: Answer) -> dict:
    return {
        "id": a.id,
        "question_id": a.question_id,
        "author_id": a.author_id,
        "content": a.content,
        "is_accepted": a.is_accepted,
        "created_at": a.created_at.isoformat() if a.created_at else None,
        "updated_at": a.updated_at.isoformat() if a.updated_at else None,
    }


# ---------------------------------------------------------------------------
# Accept
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AcceptOutcome:
    answer: dict
    answer_author_id: int
    question_id: int
    question_title: str
    question_slug: str
    was_already_accepted: bool
    previous_author_id: int | None


def _live_answer(session, answer_id: int) -> Answer:
    answer = session.scalar(
        select(Answer)
        .where(Answer.id == answer_id, Answer.deleted_at.is_(None))
        .with_for_update()
    )
    if answer is None:
        raise NotFoundError("Answer not found")
    return answer


def apply_accept(engine: Engine, answer_id: int, requester_id: int) -> AcceptOutcome:
    """Run the accept transaction and report what changed."""
    with get_session(engine) as session:
        answer = _live_answer(session, answer_id)
        question = session.scalar(
            select(Question)
            .where(Question.id == answer.question_id, Question.deleted_at.is_(None))
            .with_for_update()
        )
        if question is None:
            raise NotFoundError("Question not found")
        if question.author_id != requester_id:
            raise AuthorizationError("Only the question author can accept answers")

        was_already_accepted = answer.is_accepted
        previous = session.scalar(
            select(Answer).where(
                Answer.question_id == question.id,
                Answer.is_accepted.is_(True),
                Answer.deleted_at.is_(None),
                Answer.id != answer.id,
            )
        )
        previous_author_id = previous.author_id if previous else None

        session.execute(
            update(Answer)
            .where(Answer.question_id == question.id, Answer.id != answer.id)
            .values(is_accepted=False)
            .execution_options(synchronize_session=False)
        )
        answer.is_accepted = True
        answer.updated_at = datetime.now(UTC)
        question.is_solved = True
        question.status = QuestionStatus.SOLVED.value
        session.flush()

        return AcceptOutcome(
            answer=answer_to_dict(answer),
            answer_author_id=answer.author_id,
            question_id=question.id,
            question_title=question.title,
            question_slug=question.slug,
            was_already_accepted=was_already_accepted,
            previous_author_id=previous_author_id,
        )


async def accept_answer(
    engine: Engine,
    dispatcher: TaskDispatcher,
    notifier: NotificationService,
    *,
    answer_id: int,
    requester_id: int,
) -> dict:
    """Accept *answer_id* on behalf of the question author."""
    outcome = await run_db(apply_accept, engine, answer_id, requester_id)

    if outcome.previous_author_id is not None:
        dispatcher.spawn(
            reputation_service.handle_acceptance(
                engine, answer_author_id=outcome.previous_author_id, accepted=False
            ),
            name=f"rep-unaccept-{outcome.question_id}",
        )
    if not outcome.was_already_accepted:
        dispatcher.spawn(
            reputation_service.handle_acceptance(
                engine, answer_author_id=outcome.answer_author_id, accepted=True
            ),
            name=f"rep-accept-{answer_id}",
        )
    dispatcher.spawn(
        notifier.notify_answer_accepted(
            answer_author_id=outcome.answer_author_id,
            accepter_id=requester_id,
            answer_id=answer_id,
            question_id=outcome.question_id,
            question_title=outcome.question_title,
            question_slug=outcome.question_slug,
        ),
        name=f"notify-accept-{answer_id}",
    )

    logger.info(
        "Answer %s accepted on question %s (previous author: %s)",
        answer_id, outcome.question_id, outcome.previous_author_id,
    )
    return outcome.answer


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def apply_delete(engine: Engine, answer_id: int, requester_id: int) -> tuple[int, bool]:
    """Soft-delete; returns ``(author_id, was_accepted)``."""
    with get_session(engine) as session:
        answer = _live_answer(session, answer_id)
        if answer.author_id != requester_id:
            logger.warning(
                "Unauthorized deletion attempt on answer %s by user %s",
                answer_id, requester_id,
            )
            raise AuthorizationError("You can only delete your own answer")

        was_accepted = answer.is_accepted
        answer.deleted_at = datetime.now(UTC)
        if was_accepted:
            answer.is_accepted = False
            session.execute(
                update(Question)
                .where(Question.id == answer.question_id)
                .values(is_solved=False, status=QuestionStatus.OPEN.value)
                .execution_options(synchronize_session=False)
            )
        return answer.author_id, was_accepted


async def delete_answer(
    engine: Engine,
    dispatcher: TaskDispatcher,
    notifier: NotificationService,
    *,
    answer_id: int,
    requester_id: int,
) -> None:
    """Delete the requester's own answer and clean up after it."""
    author_id, was_accepted = await run_db(apply_delete, engine, answer_id, requester_id)

    if was_accepted:
        # The question lost its solution; so does the bonus.
        dispatcher.spawn(
            reputation_service.handle_acceptance(
                engine, answer_author_id=author_id, accepted=False
            ),
            name=f"rep-unaccept-deleted-{answer_id}",
        )
    dispatcher.spawn(
        notifier.remove_answer_notifications(answer_id),
        name=f"cleanup-answer-{answer_id}",
    )
    logger.info("Answer %s deleted (was accepted: %s)", answer_id, was_accepted)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def _insert_answer(engine: Engine, question_id: int, author_id: int, content: str):
    with get_session(engine) as session:
        author = session.get(User, author_id)
        if author is None or author.deleted_at is not None:
            raise NotFoundError("Answerer not found")
        question = session.get(Question, question_id)
        if question is None or question.deleted_at is not None:
            raise NotFoundError("Question not found")

        answer = Answer(question_id=question_id, author_id=author_id, content=content)
        session.add(answer)
        session.flush()
        session.refresh(answer)
        return (
            answer_to_dict(answer),
            author.name or "A fellow learner",
            question.author_id,
            question.title,
        )


async def create_answer(
    engine: Engine,
    dispatcher: TaskDispatcher,
    notifier: NotificationService,
    *,
    question_id: int,
    author_id: int,
    content: str,
) -> dict:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Content is required")

    answer, answerer_name, question_author_id, title = await run_db(
        _insert_answer, engine, question_id, author_id, content
    )
    dispatcher.spawn(
        notifier.notify_answer_added(
            question_author_id=question_author_id,
            answerer_id=author_id,
            answerer_name=answerer_name,
            question_id=question_id,
            question_title=title,
            answer_id=answer["id"],
        ),
        name=f"notify-answer-{answer['id']}",
    )
    return answer
