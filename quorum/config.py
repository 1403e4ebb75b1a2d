"""
quorum.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for the soft, non-secret settings of the engine:
stream heartbeat cadence, fan-out batch size, paging limits and the push
gateway endpoint.  Secrets (``DATABASE_URL``, ``JWT_SECRET``) stay in the
environment / ``.env``.

Usage::

    from quorum.config import load_config

    cfg = load_config()              # ./config.yaml, or $QUORUM_CONFIG
    print(cfg.heartbeat_seconds)     # 30.0
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from quorum.constants import (
    DEFAULT_HEARTBEAT_SECONDS,
    DEFAULT_NOTIFICATION_BATCH_SIZE,
    DEFAULT_PAGE_SIZE,
    DEFAULT_STREAM_QUEUE_SIZE,
    MAX_PAGE_SIZE,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class QuorumConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so a fresh checkout runs without a file.
    """

    community_name: str = "Quorum"

    # Live stream
    heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS
    stream_queue_size: int = DEFAULT_STREAM_QUEUE_SIZE

    # Notification store
    notification_batch_size: int = DEFAULT_NOTIFICATION_BATCH_SIZE
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE

    # Push gateway (None → pushes are logged and dropped)
    push_gateway_url: str | None = None
    push_timeout_seconds: float = 5.0

    # HTTP
    dashboard_port: int = 8000

    def __post_init__(self) -> None:
        for name in (
            "heartbeat_seconds",
            "stream_queue_size",
            "notification_batch_size",
            "default_page_size",
            "max_page_size",
            "push_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"config value {name!r} must be positive")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> QuorumConfig:
    """Read *path* and return a :class:`QuorumConfig` instance.

    When *path* is omitted, ``$QUORUM_CONFIG`` is used, then
    ``./config.yaml``; if that default file is absent the built-in defaults
    are returned.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file doesn't exist.
    ValueError
        If a numeric setting is not positive.
    """
    explicit = path is not None or bool(os.getenv("QUORUM_CONFIG"))
    config_path = Path(path or os.getenv("QUORUM_CONFIG") or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        logger.info("No %s found — using default configuration", config_path)
        return QuorumConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = QuorumConfig()
    push_url = raw.get("push_gateway_url")
    return QuorumConfig(
        community_name=raw.get("community_name", defaults.community_name),
        heartbeat_seconds=float(raw.get("heartbeat_seconds", defaults.heartbeat_seconds)),
        stream_queue_size=int(raw.get("stream_queue_size", defaults.stream_queue_size)),
        notification_batch_size=int(
            raw.get("notification_batch_size", defaults.notification_batch_size)
        ),
        default_page_size=int(raw.get("default_page_size", defaults.default_page_size)),
        max_page_size=int(raw.get("max_page_size", defaults.max_page_size)),
        push_gateway_url=str(push_url) if push_url else None,
        push_timeout_seconds=float(
            raw.get("push_timeout_seconds", defaults.push_timeout_seconds)
        ),
        dashboard_port=int(raw.get("dashboard_port", defaults.dashboard_port)),
    )
