"""
Quorum — Real-time notifications, reputation and answer acceptance
===================================================================
The consistency engine behind a Q&A community: per-user notification
inboxes with live Server-Sent-Event delivery to every open tab, a
floor-clamped reputation ledger driven by votes and accepted answers, and
the accept/delete transactions that keep "accepted" and "solved" in step.

Package layout::

    quorum/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Point table, stream event names, defaults
    ├── errors.py          # Domain error taxonomy (→ HTTP status)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (6 tables)
    ├── engine/
    │   ├── votes.py       # Vote state machine (pure)
    │   └── reputation.py  # Point pricing of transitions (pure)
    ├── services/
    │   ├── reputation_service.py    # Atomic clamped ledger
    │   ├── vote_service.py          # Vote persistence + counts
    │   ├── answer_service.py        # Accept / delete / create answers
    │   ├── content_service.py       # Questions, comments, users
    │   ├── notification_store.py    # Durable inbox
    │   ├── notification_service.py  # Orchestrator (store → hub → push)
    │   ├── push_hub.py              # Live connection registry
    │   ├── push_gateway.py          # Mobile/desktop push hand-off
    │   └── dispatch.py              # Fire-and-forget task tracking
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Singletons + JWT identity
        └── routes/        # Notifications, votes, answers, questions, users
"""

__version__ = "0.1.0"
