"""
quorum.engine.votes — Vote State Machine
=========================================

Pure transition logic for a single (voter, answer) pair.  No DB I/O.

    existing  requested   →  current   previous   removed
    ────────  ─────────      ───────   ────────   ───────
    None      up/down        requested None       False
    up        up             None      up         True     (toggle-off)
    down      down           None      down       True     (toggle-off)
    up        down           down      up         False    (flip)
    down      up             up        down       False    (flip)

The resulting :class:`VoteTransition` carries everything the reputation
ledger needs to price the change without re-querying.
"""

from __future__ import annotations

from dataclasses import dataclass

from quorum.database.models import VoteType
from quorum.errors import AuthorizationError, ValidationError

__all__ = ["VoteTransition", "parse_vote_type", "transition"]


@dataclass(frozen=True, slots=True)
class VoteTransition:
    """Outcome of applying one vote request."""

    current: VoteType | None
    previous: VoteType | None
    removed: bool

    @property
    def created(self) -> bool:
        return self.previous is None and self.current is not None

    @property
    def flipped(self) -> bool:
        return self.previous is not None and self.current is not None


def parse_vote_type(value: str | VoteType) -> VoteType:
    """Coerce a client-supplied polarity, raising :class:`ValidationError`."""
    try:
        return VoteType(value)
    except ValueError:
        raise ValidationError(
            "Invalid vote_type. Must be 'upvote' or 'downvote'"
        ) from None


def transition(
    existing: VoteType | None,
    requested: VoteType,
    *,
    voter_id: int,
    target_author_id: int,
) -> VoteTransition:
    """Compute the next state of a (voter, target) vote.

    Raises
    ------
    AuthorizationError
        If the voter authored the target.
    """
    if voter_id == target_author_id:
        raise AuthorizationError("You cannot vote on your own answer")

    if existing is None:
        return VoteTransition(current=requested, previous=None, removed=False)
    if existing == requested:
        return VoteTransition(current=None, previous=existing, removed=True)
    return VoteTransition(current=requested, previous=existing, removed=False)
