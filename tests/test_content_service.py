"""
tests/test_content_service.py — Questions, Comments & Users
============================================================
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quorum.database.models import Answer, Notification, Question
from quorum.errors import AuthorizationError, NotFoundError, ValidationError
from quorum.services import answer_service, content_service, reputation_service
from quorum.services import notification_store as store


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestSlugify:
    def test_basic(self):
        assert content_service.slugify("How do I reverse a list?") == "how-do-i-reverse-a-list"

    def test_symbols_only(self):
        assert content_service.slugify("???") == "question"


class TestUsers:
    def test_get_or_create(self, db_engine):
        user = content_service.get_or_create_user(db_engine, 50, "Dana")
        again = content_service.get_or_create_user(db_engine, 50, "Ignored")
        assert user.id == again.id == 50
        assert again.name == "Dana"
        assert again.reputation == 0


class TestQuestions:
    def test_create_fans_out(self, db_engine, dispatcher, notifier, users):
        async def scenario():
            q = await content_service.create_question(
                db_engine, dispatcher, notifier,
                author_id=users["asker"], title="  Why is the GIL?  ",
            )
            await dispatcher.drain()
            return q

        q = run_async(scenario())
        assert q["title"] == "Why is the GIL?"
        assert q["slug"] == "why-is-the-gil"
        assert q["status"] == "open"
        assert store.unread_count(db_engine, users["asker"]) == 0
        assert store.unread_count(db_engine, users["bob"]) == 1

    def test_blank_title(self, db_engine, dispatcher, notifier, users):
        with pytest.raises(ValidationError):
            run_async(content_service.create_question(
                db_engine, dispatcher, notifier, author_id=users["asker"], title=" ",
            ))

    def test_delete_cascades(self, db_engine, dispatcher, notifier, users, question, answers):
        store.bulk_create(db_engine, [
            store.NewNotification(
                user_id=users["bob"], type="question_added", message="m",
                related_question_id=question,
            ),
        ])

        async def scenario():
            await content_service.delete_question(
                db_engine, dispatcher, notifier,
                question_id=question, requester_id=users["asker"],
            )
            await dispatcher.drain()

        run_async(scenario())
        with Session(db_engine) as session:
            assert session.get(Question, question).deleted_at is not None
            assert all(
                a.deleted_at is not None
                for a in session.scalars(select(Answer).where(Answer.question_id == question))
            )
            assert session.scalars(select(Notification)).all() == []

    def test_only_author_deletes(self, db_engine, dispatcher, notifier, users, question):
        with pytest.raises(AuthorizationError):
            run_async(content_service.delete_question(
                db_engine, dispatcher, notifier,
                question_id=question, requester_id=users["bob"],
            ))

    def test_delete_revokes_accepted_bonus(self, db_engine, dispatcher, notifier, users, question, answers):
        async def scenario():
            await answer_service.accept_answer(
                db_engine, dispatcher, notifier,
                answer_id=answers["bob"], requester_id=users["asker"],
            )
            await dispatcher.drain()
            await content_service.delete_question(
                db_engine, dispatcher, notifier,
                question_id=question, requester_id=users["asker"],
            )
            await dispatcher.drain()

        run_async(scenario())
        assert reputation_service.get_reputation(db_engine, users["bob"]) == 0
        with Session(db_engine) as session:
            assert session.get(Answer, answers["bob"]).is_accepted is False


class TestSolvedFlag:
    @staticmethod
    def _state(db_engine, question_id: int) -> tuple[list[int], bool]:
        with Session(db_engine) as session:
            accepted = list(session.scalars(
                select(Answer.id).where(
                    Answer.question_id == question_id,
                    Answer.is_accepted.is_(True),
                    Answer.deleted_at.is_(None),
                )
            ))
            return accepted, session.get(Question, question_id).is_solved

    def _accept(self, db_engine, question_id: int, answer_id: int) -> None:
        with Session(db_engine) as session:
            session.execute(update(Answer).where(Answer.id == answer_id).values(is_accepted=True))
            session.execute(
                update(Question).where(Question.id == question_id).values(is_solved=True, status="solved")
            )
            session.commit()

    def test_cannot_solve_without_accepted_answer(self, db_engine, users, question, answers):
        with pytest.raises(ValidationError):
            content_service.set_solved(db_engine, question, users["asker"], True)
        accepted, solved = self._state(db_engine, question)
        assert accepted == []
        assert solved is False

    def test_cannot_reopen_while_answer_accepted(self, db_engine, users, question, answers):
        self._accept(db_engine, question, answers["bob"])
        with pytest.raises(ValidationError):
            content_service.set_solved(db_engine, question, users["asker"], False)
        accepted, solved = self._state(db_engine, question)
        assert accepted == [answers["bob"]]
        assert solved is True

    def test_consistent_request_is_applied(self, db_engine, users, question, answers):
        self._accept(db_engine, question, answers["bob"])
        result = content_service.set_solved(db_engine, question, users["asker"], True)
        assert result["is_solved"] is True
        assert result["status"] == "solved"

    def test_open_question_can_be_reasserted_open(self, db_engine, users, question, answers):
        result = content_service.set_solved(db_engine, question, users["asker"], False)
        assert result["is_solved"] is False
        assert result["status"] == "open"

    def test_only_author(self, db_engine, users, question):
        with pytest.raises(AuthorizationError):
            content_service.set_solved(db_engine, question, users["bob"], True)


class TestComments:
    def _comment(self, db_engine, dispatcher, notifier, **kwargs):
        async def scenario():
            c = await content_service.create_comment(db_engine, dispatcher, notifier, **kwargs)
            await dispatcher.drain()
            return c
        return run_async(scenario())

    def test_comment_on_answer_notifies_question_author(self, db_engine, dispatcher, notifier, users, question, answers):
        comment = self._comment(
            db_engine, dispatcher, notifier,
            author_id=users["carol"], content="Nice one", answer_id=answers["bob"],
        )
        assert comment["answer_id"] == answers["bob"]
        rows = store.list_for_user(db_engine, users["asker"])
        assert len(rows) == 1
        assert rows[0]["related_comment_id"] == comment["id"]
        assert rows[0]["related_question_id"] == question
        # the answer's own author is not notified
        assert store.unread_count(db_engine, users["bob"]) == 0

    def test_comment_on_question(self, db_engine, dispatcher, notifier, users, question):
        self._comment(
            db_engine, dispatcher, notifier,
            author_id=users["bob"], content="Which version?", question_id=question,
        )
        rows = store.list_for_user(db_engine, users["asker"])
        assert rows[0]["message"] == "Bob commented on your question"

    def test_needs_exactly_one_parent(self, db_engine, dispatcher, notifier, users, question, answers):
        with pytest.raises(ValidationError):
            self._comment(db_engine, dispatcher, notifier, author_id=users["bob"], content="x")
        with pytest.raises(ValidationError):
            self._comment(
                db_engine, dispatcher, notifier, author_id=users["bob"], content="x",
                question_id=question, answer_id=answers["bob"],
            )

    def test_missing_parent(self, db_engine, dispatcher, notifier, users):
        with pytest.raises(NotFoundError):
            self._comment(
                db_engine, dispatcher, notifier,
                author_id=users["bob"], content="x", question_id=777,
            )
