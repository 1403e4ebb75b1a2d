"""
quorum.constants — Shared Constants
====================================

Stream event names, default tuning values and the reputation point table.
Import from here instead of repeating literals in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Reputation points (fixed)
# ---------------------------------------------------------------------------
ANSWER_UPVOTE_POINTS = 10
QUESTION_UPVOTE_POINTS = 5
DOWNVOTE_POINTS = -2
ACCEPTED_ANSWER_POINTS = 15

# ---------------------------------------------------------------------------
# Live stream event names
# ---------------------------------------------------------------------------
EVENT_CONNECTED = "connected"
EVENT_UNREAD_COUNT = "unread_count"
EVENT_NEW_NOTIFICATION = "new_notification"
EVENT_NOTIFICATION_DELETED = "notification_deleted"

# ---------------------------------------------------------------------------
# Defaults (overridable from config.yaml)
# ---------------------------------------------------------------------------
DEFAULT_HEARTBEAT_SECONDS = 30.0
DEFAULT_NOTIFICATION_BATCH_SIZE = 500
DEFAULT_STREAM_QUEUE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

# Unread-count queries slower than this are logged as warnings.
SLOW_QUERY_WARN_MS = 500
