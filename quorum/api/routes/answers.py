"""
quorum.api.routes.answers — Accept / delete answers, answer comments
=====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from quorum.api.deps import CurrentUser, get_dispatcher, get_engine, get_notifier
from quorum.services import answer_service, content_service
from quorum.services.dispatch import TaskDispatcher
from quorum.services.notification_service import NotificationService

router = APIRouter(prefix="/answers", tags=["answers"])


class CommentCreate(BaseModel):
    content: str


@router.patch("/{answer_id}/accept")
async def accept_answer(
    answer_id: int,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
    notifier: NotificationService = Depends(get_notifier),
):
    """Accept an answer; only the question author may do this."""
    return await answer_service.accept_answer(
        engine, dispatcher, notifier, answer_id=answer_id, requester_id=user_id
    )


@router.delete("/{answer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_answer(
    answer_id: int,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
    notifier: NotificationService = Depends(get_notifier),
):
    await answer_service.delete_answer(
        engine, dispatcher, notifier, answer_id=answer_id, requester_id=user_id
    )


@router.post("/{answer_id}/comments", status_code=status.HTTP_201_CREATED)
async def comment_on_answer(
    answer_id: int,
    body: CommentCreate,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
    notifier: NotificationService = Depends(get_notifier),
):
    return await content_service.create_comment(
        engine,
        dispatcher,
        notifier,
        author_id=user_id,
        content=body.content,
        answer_id=answer_id,
    )
