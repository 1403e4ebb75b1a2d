"""
quorum.api.routes.questions — Question lifecycle, answers & comments
=====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from quorum.api.deps import CurrentUser, get_dispatcher, get_engine, get_notifier
from quorum.database.engine import run_db
from quorum.services import answer_service, content_service
from quorum.services.dispatch import TaskDispatcher
from quorum.services.notification_service import NotificationService

router = APIRouter(prefix="/questions", tags=["questions"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class QuestionCreate(BaseModel):
    title: str
    content: str = ""


class AnswerCreate(BaseModel):
    content: str


class CommentCreate(BaseModel):
    content: str


class SolvedUpdate(BaseModel):
    is_solved: bool


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_question(
    body: QuestionCreate,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
    notifier: NotificationService = Depends(get_notifier),
):
    return await content_service.create_question(
        engine, dispatcher, notifier,
        author_id=user_id, title=body.title, content=body.content,
    )


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(
    question_id: int,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
    notifier: NotificationService = Depends(get_notifier),
):
    await content_service.delete_question(
        engine, dispatcher, notifier, question_id=question_id, requester_id=user_id
    )


@router.put("/{question_id}/solved")
async def set_solved(
    question_id: int,
    body: SolvedUpdate,
    user_id: CurrentUser,
    engine=Depends(get_engine),
):
    return await run_db(
        content_service.set_solved, engine, question_id, user_id, body.is_solved
    )


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------
@router.post("/{question_id}/answers", status_code=status.HTTP_201_CREATED)
async def create_answer(
    question_id: int,
    body: AnswerCreate,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
    notifier: NotificationService = Depends(get_notifier),
):
    return await answer_service.create_answer(
        engine, dispatcher, notifier,
        question_id=question_id, author_id=user_id, content=body.content,
    )


@router.post("/{question_id}/comments", status_code=status.HTTP_201_CREATED)
async def comment_on_question(
    question_id: int,
    body: CommentCreate,
    user_id: CurrentUser,
    engine=Depends(get_engine),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
    notifier: NotificationService = Depends(get_notifier),
):
    return await content_service.create_comment(
        engine, dispatcher, notifier,
        author_id=user_id, content=body.content, question_id=question_id,
    )
