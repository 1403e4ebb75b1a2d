"""
quorum.services.vote_service — Answer voting
=============================================

Applies one vote request against the ``votes`` table and hands the
resulting transition to the reputation ledger as a background task.

Per (voter, answer) the stored row is read under ``SELECT … FOR UPDATE``
and rewritten in the same transaction, so two requests from the same
voter serialise on that row.  The very first vote has no row to lock;
if two first votes race, the loser hits ``uq_votes_voter_answer``,
rolls back its SAVEPOINT, and re-applies against the winner's row.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine, case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quorum.database.engine import get_session, run_db
from quorum.database.models import Answer, Vote, VoteType
from quorum.engine.votes import VoteTransition, parse_vote_type, transition
from quorum.errors import NotFoundError
from quorum.services import reputation_service
from quorum.services.dispatch import TaskDispatcher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------
def _count_columns():
    return (
        func.coalesce(func.sum(case((Vote.vote_type == VoteType.UPVOTE.value, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Vote.vote_type == VoteType.DOWNVOTE.value, 1), else_=0)), 0),
    )


def _counts(session: Session, answer_id: int) -> dict:
    up, down = session.execute(
        select(*_count_columns()).where(Vote.answer_id == answer_id)
    ).one()
    return {"upvote_count": int(up), "downvote_count": int(down)}


def get_vote_counts(engine: Engine, answer_id: int) -> dict:
    with get_session(engine) as session:
        return _counts(session, answer_id)


def get_vote_counts_for_answers(engine: Engine, answer_ids: Iterable[int]) -> dict[int, dict]:
    """Counts for several answers in one query; absent answers get zeros."""
    ids = list(dict.fromkeys(answer_ids))
    result = {aid: {"upvote_count": 0, "downvote_count": 0} for aid in ids}
    if not ids:
        return result
    with get_session(engine) as session:
        rows = session.execute(
            select(Vote.answer_id, *_count_columns())
            .where(Vote.answer_id.in_(ids))
            .group_by(Vote.answer_id)
        ).all()
    for answer_id, up, down in rows:
        result[answer_id] = {"upvote_count": int(up), "downvote_count": int(down)}
    return result


def get_user_vote(engine: Engine, answer_id: int, user_id: int | None) -> VoteType | None:
    """The caller's current polarity on *answer_id*, or ``None``."""
    if not user_id:
        return None
    with get_session(engine) as session:
        value = session.scalar(
            select(Vote.vote_type).where(
                Vote.answer_id == answer_id, Vote.voter_id == user_id
            )
        )
    return VoteType(value) if value else None


# ---------------------------------------------------------------------------
# Apply (sync, one transaction)
# ---------------------------------------------------------------------------
def _locked_vote(session: Session, answer_id: int, voter_id: int) -> Vote | None:
    return session.scalar(
        select(Vote)
        .where(Vote.answer_id == answer_id, Vote.voter_id == voter_id)
        .with_for_update()
    )


def _rewrite(session: Session, vote: Vote, outcome: VoteTransition) -> None:
    if outcome.removed:
        session.delete(vote)
    else:
        vote.vote_type = outcome.current.value
    session.flush()


def apply_vote(
    engine: Engine,
    *,
    answer_id: int,
    voter_id: int,
    vote_type: str | VoteType,
) -> tuple[VoteTransition, int, dict]:
    """Create, flip or toggle off the voter's vote on *answer_id*.

    Returns ``(transition, answer_author_id, counts)``.

    Raises
    ------
    ValidationError
        Unknown polarity.
    NotFoundError
        Answer missing or soft-deleted.
    AuthorizationError
        The voter wrote the answer.
    """
    requested = parse_vote_type(vote_type)

    with get_session(engine) as session:
        answer = session.get(Answer, answer_id)
        if answer is None or answer.deleted_at is not None:
            raise NotFoundError("Answer not found")
        author_id = answer.author_id

        existing = _locked_vote(session, answer_id, voter_id)
        outcome = transition(
            VoteType(existing.vote_type) if existing else None,
            requested,
            voter_id=voter_id,
            target_author_id=author_id,
        )

        if existing is not None:
            _rewrite(session, existing, outcome)
        else:
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(Vote(
                        answer_id=answer_id,
                        voter_id=voter_id,
                        vote_type=requested.value,
                    ))
                    session.flush()
            except IntegrityError:
                # A concurrent first vote committed; apply against its row.
                logger.info(
                    "Vote race on answer %s by user %s, re-applying", answer_id, voter_id
                )
                existing = _locked_vote(session, answer_id, voter_id)
                if existing is None:
                    raise
                outcome = transition(
                    VoteType(existing.vote_type),
                    requested,
                    voter_id=voter_id,
                    target_author_id=author_id,
                )
                _rewrite(session, existing, outcome)

        counts = _counts(session, answer_id)

    return outcome, author_id, counts


# ---------------------------------------------------------------------------
# Async entry point
# ---------------------------------------------------------------------------
async def vote_on_answer(
    engine: Engine,
    dispatcher: TaskDispatcher,
    *,
    answer_id: int,
    voter_id: int,
    vote_type: str | VoteType,
) -> dict:
    """Apply the vote and schedule the author's reputation update.

    Returns ``{upvote_count, downvote_count, user_vote}``.
    """
    outcome, author_id, counts = await run_db(
        apply_vote,
        engine,
        answer_id=answer_id,
        voter_id=voter_id,
        vote_type=vote_type,
    )

    dispatcher.spawn(
        reputation_service.handle_vote(
            engine,
            target_author_id=author_id,
            voter_id=voter_id,
            result=outcome,
        ),
        name=f"rep-vote-{answer_id}-{voter_id}",
    )

    logger.info(
        "Vote on answer %s by user %s: %s → %s",
        answer_id, voter_id, outcome.previous, outcome.current,
    )
    return {
        **counts,
        "user_vote": outcome.current.value if outcome.current else None,
    }
