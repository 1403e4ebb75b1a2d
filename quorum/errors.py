"""
quorum.errors — Error taxonomy
===============================

Primary-path failures (vote, accept, notification pull actions) are raised
to the caller and mapped to HTTP responses in :mod:`quorum.api.main`.
:class:`TransientDeliveryError` belongs to secondary effects (live push,
push gateway, bulk fan-out) and is caught and logged where those effects
are dispatched.
"""

from __future__ import annotations


class QuorumError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(QuorumError):
    """Vote, answer, question or notification target is absent."""

    status_code = 404


class AuthorizationError(QuorumError):
    """Self-vote, non-author accept/delete, cross-user notification access."""

    status_code = 403


class ValidationError(QuorumError):
    """Invalid polarity, missing recipient, bad paging parameters."""

    status_code = 400


class TransientDeliveryError(QuorumError):
    """A push or broadcast could not be delivered."""

    status_code = 503
