"""
quorum.api.routes.users — Reputation reads
===========================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from quorum.api.deps import get_engine
from quorum.database.engine import run_db
from quorum.services import reputation_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/leaderboard")
async def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    engine=Depends(get_engine),
):
    return await run_db(reputation_service.get_leaderboard, engine, limit)


@router.get("/{user_id}/reputation")
async def reputation(user_id: int, engine=Depends(get_engine)):
    score = await run_db(reputation_service.get_reputation, engine, user_id)
    return {"user_id": user_id, "reputation": score}
