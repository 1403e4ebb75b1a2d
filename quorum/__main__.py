"""
quorum.__main__ — Entry point for ``python -m quorum``
=======================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve :mod:`quorum.api.main` with uvicorn (blocking).

Run with::

    uv run python -m quorum
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from quorum.config import load_config
from quorum.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("quorum")


def main() -> None:
    """Bootstrap and serve the Quorum API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    if not os.getenv("JWT_SECRET"):
        logger.critical(
            "JWT_SECRET is not set.  "
            "Copy .env.example → .env and set a long random secret."
        )
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Loaded config for community: %s", cfg.community_name)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)
    engine.dispose()

    # 4. HTTP.
    uvicorn.run(
        "quorum.api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=cfg.dashboard_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
