"""
quorum.api.deps — FastAPI dependency injection
===============================================

Process-wide singletons (engine, config, connection registry, task
dispatcher, notification orchestrator) are built lazily and cached, and
the caller's identity is resolved from a bearer JWT whose ``sub`` claim is
the user id.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from quorum.config import QuorumConfig, load_config
from quorum.database.engine import create_db_engine
from quorum.services.dispatch import TaskDispatcher
from quorum.services.notification_service import NotificationService
from quorum.services.push_gateway import build_push_gateway
from quorum.services.push_hub import ConnectionRegistry

_WEAK_SECRETS = frozenset({
    "quorum-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> QuorumConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_registry() -> ConnectionRegistry:
    cfg = get_config()
    return ConnectionRegistry(
        heartbeat_seconds=cfg.heartbeat_seconds,
        queue_size=cfg.stream_queue_size,
    )


@lru_cache(maxsize=1)
def get_dispatcher() -> TaskDispatcher:
    return TaskDispatcher()


@lru_cache(maxsize=1)
def get_notifier() -> NotificationService:
    cfg = get_config()
    return NotificationService(
        get_engine(),
        get_registry(),
        gateway=build_push_gateway(cfg),
        dispatcher=get_dispatcher(),
        config=cfg,
    )


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
def decode_user_id(token: str) -> int:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> int:
    """Resolve the caller's user id. Raises 401 if missing or invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    return decode_user_id(authorization.split(" ", 1)[1])


def get_optional_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> int | None:
    """Like :func:`get_current_user_id` but anonymous callers get ``None``."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return decode_user_id(authorization.split(" ", 1)[1])


CurrentUser = Annotated[int, Depends(get_current_user_id)]
