"""
quorum.services.reputation_service — Reputation Ledger
=======================================================

Sole writer of ``users.reputation``.  Every change is a signed delta
applied as one atomic, floor-clamped UPDATE::

    UPDATE users SET reputation = CASE WHEN reputation + :p < 0
                                       THEN 0 ELSE reputation + :p END
    WHERE id = :uid

so concurrent adjustments never lose each other and the score never drops
below zero.  The ledger does no deduplication: callers (vote and accept
services) supply each real transition exactly once.  Clamping is applied
per write; a negative remainder is not banked.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, case, select, update

from quorum.database.engine import get_session, run_db
from quorum.database.models import User
from quorum.engine.reputation import (
    TargetKind,
    acceptance_delta,
    vote_transition_delta,
)
from quorum.engine.votes import VoteTransition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sync ledger operations (run via run_db)
# ---------------------------------------------------------------------------
def adjust(engine: Engine, user_id: int | None, points: int) -> int | None:
    """Apply ``score = max(0, score + points)`` for *user_id*.

    Returns the new score, or ``None`` when nothing was written (zero
    delta, no user id, or unknown user).
    """
    if not user_id or points == 0:
        return None

    new_value = User.reputation + points
    with get_session(engine) as session:
        result = session.execute(
            update(User)
            .where(User.id == user_id)
            .values(reputation=case((new_value < 0, 0), else_=new_value))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("Reputation adjust skipped — user %s not found", user_id)
            return None
        score = session.scalar(select(User.reputation).where(User.id == user_id))

    logger.debug("Reputation %+d for user %s → %s", points, user_id, score)
    return score


def get_reputation(engine: Engine, user_id: int) -> int:
    """Current score, 0 for unknown users."""
    with get_session(engine) as session:
        score = session.scalar(select(User.reputation).where(User.id == user_id))
    return int(score or 0)


def get_leaderboard(engine: Engine, limit: int = 10) -> list[dict]:
    """Top active users by reputation (ties: oldest account first)."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(User)
            .where(User.deleted_at.is_(None), User.is_active.is_(True))
            .order_by(User.reputation.desc(), User.created_at.asc(), User.id.asc())
            .limit(limit)
        ).all()
        return [
            {"id": u.id, "name": u.name, "reputation": u.reputation}
            for u in rows
        ]


# ---------------------------------------------------------------------------
# Async transition handlers
# ---------------------------------------------------------------------------
async def handle_vote(
    engine: Engine,
    *,
    target_author_id: int,
    voter_id: int,
    result: VoteTransition,
    kind: TargetKind = TargetKind.ANSWER,
) -> int | None:
    """Price a vote transition and apply it to the target's author."""
    if target_author_id == voter_id:
        return None
    points = vote_transition_delta(result, kind)
    if points == 0:
        return None
    return await run_db(adjust, engine, target_author_id, points)


async def handle_acceptance(
    engine: Engine, *, answer_author_id: int, accepted: bool
) -> int | None:
    """Grant or revoke the accepted-answer bonus."""
    return await run_db(adjust, engine, answer_author_id, acceptance_delta(accepted))
