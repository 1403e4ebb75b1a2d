"""
quorum.api.routes.votes — Answer voting
========================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from quorum.api.deps import CurrentUser, get_dispatcher, get_engine, get_optional_user_id
from quorum.database.engine import run_db
from quorum.services import vote_service
from quorum.services.dispatch import TaskDispatcher

router = APIRouter(prefix="/votes", tags=["votes"])


class VoteRequest(BaseModel):
    vote_type: str


@router.post("/answer/{answer_id}")
async def vote_on_answer(
    answer_id: int,
    body: VoteRequest,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
):
    """Cast, flip or retract (same polarity again) a vote."""
    return await vote_service.vote_on_answer(
        engine,
        dispatcher,
        answer_id=answer_id,
        voter_id=user_id,
        vote_type=body.vote_type,
    )


@router.get("/answer/{answer_id}")
async def get_votes(
    answer_id: int,
    user_id: Annotated[int | None, Depends(get_optional_user_id)] = None,
    engine=Depends(get_engine),
):
    counts = await run_db(vote_service.get_vote_counts, engine, answer_id)
    user_vote = await run_db(vote_service.get_user_vote, engine, answer_id, user_id)
    return {**counts, "user_vote": user_vote.value if user_vote else None}
