"""
quorum.engine.reputation — Reputation Point Rules
==================================================

Pure pricing of vote and acceptance transitions.  No DB I/O; the ledger
in :mod:`quorum.services.reputation_service` applies the deltas.

A vote's worth is ``+upvote`` (10 on answers, 5 on questions) or ``-2``.
Every transition is priced as *new worth − old worth*, which reproduces
the reversal table exactly:

    none → up          +up
    none → down        -2
    up   → down        -up + (-2)
    down → up          +2 + up
    up   → removed     -up
    down → removed     +2
    accepted           +15
    unaccepted         -15
"""

from __future__ import annotations

import enum

from quorum.constants import (
    ACCEPTED_ANSWER_POINTS,
    ANSWER_UPVOTE_POINTS,
    DOWNVOTE_POINTS,
    QUESTION_UPVOTE_POINTS,
)
from quorum.database.models import VoteType
from quorum.engine.votes import VoteTransition

__all__ = [
    "TargetKind",
    "acceptance_delta",
    "vote_points",
    "vote_transition_delta",
]


class TargetKind(enum.StrEnum):
    ANSWER = "answer"
    QUESTION = "question"


UPVOTE_POINTS: dict[TargetKind, int] = {
    TargetKind.ANSWER: ANSWER_UPVOTE_POINTS,
    TargetKind.QUESTION: QUESTION_UPVOTE_POINTS,
}


def vote_points(vote_type: VoteType | None, kind: TargetKind = TargetKind.ANSWER) -> int:
    """Standing worth of a single vote (0 when there is no vote)."""
    if vote_type is None:
        return 0
    if vote_type == VoteType.UPVOTE:
        return UPVOTE_POINTS[kind]
    return DOWNVOTE_POINTS


def vote_transition_delta(
    result: VoteTransition, kind: TargetKind = TargetKind.ANSWER
) -> int:
    """Signed delta for the target author after a vote transition."""
    return vote_points(result.current, kind) - vote_points(result.previous, kind)


def acceptance_delta(accepted: bool) -> int:
    """+15 when an answer becomes accepted, -15 when it loses the flag."""
    return ACCEPTED_ANSWER_POINTS if accepted else -ACCEPTED_ANSWER_POINTS
