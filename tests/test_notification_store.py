"""
tests/test_notification_store.py — Durable Notification Store Tests
====================================================================
Create / bulk create, read-time soft-delete filter, read-state
transitions, ownership checks and cascading cleanup.
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import patch

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from quorum.database.models import Answer, Notification, NotificationType, Question
from quorum.errors import AuthorizationError, NotFoundError, ValidationError
from quorum.services import notification_store as store
from quorum.services.notification_store import NewNotification


def _answer_added(user_id: int, question_id: int, answer_id: int | None = None) -> NewNotification:
    return NewNotification(
        user_id=user_id,
        type=NotificationType.ANSWER_ADDED,
        message="Bob answered your question",
        related_question_id=question_id,
        related_answer_id=answer_id,
    )


def _soft_delete(engine, model, row_id: int) -> None:
    with Session(engine) as session:
        session.execute(update(model).where(model.id == row_id).values(deleted_at=datetime.now(UTC)))
        session.commit()


class TestCreate:
    def test_create_returns_row(self, db_engine, users, question, answers):
        row = store.create(db_engine, _answer_added(users["asker"], question, answers["bob"]))
        assert row["id"] > 0
        assert row["type"] == "answer_added"
        assert row["read"] is False
        assert row["created_at"] is not None

    def test_missing_recipient(self, db_engine):
        with pytest.raises(ValidationError):
            store.create(db_engine, _answer_added(0, 1))


class TestBulkCreate:
    def test_batches_all_rows(self, db_engine, users, question):
        batch = [_answer_added(uid, question) for uid in users.values()]
        result = store.bulk_create(db_engine, batch, batch_size=3)
        assert result.created == 4
        assert result.failed_batches == []

    def test_failed_batch_does_not_abort_others(self, db_engine, users, question):
        batch = [_answer_added(uid, question) for uid in users.values()]
        real_insert = store.insert
        calls = {"n": 0}

        def flaky_insert(model):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("payload too large")
            return real_insert(model)

        with patch.object(store, "insert", side_effect=flaky_insert):
            result = store.bulk_create(db_engine, batch, batch_size=2)

        assert result.created == 2
        assert result.failed_batches == [1]
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Notification)) == 2

    def test_empty(self, db_engine):
        assert store.bulk_create(db_engine, []).created == 0

    def test_rejects_bad_batch_size(self, db_engine, users, question):
        with pytest.raises(ValidationError):
            store.bulk_create(db_engine, [_answer_added(users["asker"], question)], batch_size=0)


class TestReads:
    def test_newest_first_with_question_fields(self, db_engine, users, question):
        first = store.create(db_engine, _answer_added(users["asker"], question))
        second = store.create(db_engine, _answer_added(users["asker"], question))
        rows = store.list_for_user(db_engine, users["asker"])
        assert [r["id"] for r in rows] == [second["id"], first["id"]]
        assert rows[0]["question_title"] == "How do I reverse a list?"
        assert rows[0]["question_slug"] == "how-do-i-reverse-a-list"

    def test_paging_and_unread_filter(self, db_engine, users, question):
        ids = [store.create(db_engine, _answer_added(users["asker"], question))["id"] for _ in range(3)]
        store.mark_read(db_engine, ids[0], users["asker"])

        assert len(store.list_for_user(db_engine, users["asker"], limit=2)) == 2
        assert len(store.list_for_user(db_engine, users["asker"], limit=2, offset=2)) == 1
        unread = store.list_for_user(db_engine, users["asker"], unread_only=True)
        assert {r["id"] for r in unread} == {ids[1], ids[2]}
        assert store.unread_count(db_engine, users["asker"]) == 2

    def test_only_own_notifications(self, db_engine, users, question):
        store.create(db_engine, _answer_added(users["bob"], question))
        assert store.list_for_user(db_engine, users["asker"]) == []
        assert store.unread_count(db_engine, users["asker"]) == 0

    def test_soft_deleted_answer_hidden_before_sweep(self, db_engine, users, question, answers):
        store.create(db_engine, _answer_added(users["asker"], question, answers["bob"]))
        store.create(db_engine, _answer_added(users["asker"], question, answers["carol"]))
        _soft_delete(db_engine, Answer, answers["bob"])

        rows = store.list_for_user(db_engine, users["asker"])
        assert [r["related_answer_id"] for r in rows] == [answers["carol"]]
        assert store.unread_count(db_engine, users["asker"]) == 1

    def test_soft_deleted_question_hidden_before_sweep(self, db_engine, users, question):
        store.create(db_engine, _answer_added(users["asker"], question))
        _soft_delete(db_engine, Question, question)
        assert store.list_for_user(db_engine, users["asker"]) == []
        assert store.unread_count(db_engine, users["asker"]) == 0

    def test_bad_paging(self, db_engine, users):
        with pytest.raises(ValidationError):
            store.list_for_user(db_engine, users["asker"], limit=0)


class TestReadState:
    def test_mark_read_is_idempotent(self, db_engine, users, question):
        n = store.create(db_engine, _answer_added(users["asker"], question))
        first = store.mark_read(db_engine, n["id"], users["asker"])
        again = store.mark_read(db_engine, n["id"], users["asker"])
        assert first["read"] is True
        assert first["read_at"] is not None
        assert again["id"] == first["id"]
        assert again["read"] is True
        assert again["read_at"] is not None
        assert store.unread_count(db_engine, users["asker"]) == 0

    def test_mark_read_other_users_notification(self, db_engine, users, question):
        n = store.create(db_engine, _answer_added(users["asker"], question))
        with pytest.raises(AuthorizationError):
            store.mark_read(db_engine, n["id"], users["bob"])

    def test_mark_read_missing(self, db_engine, users):
        with pytest.raises(NotFoundError):
            store.mark_read(db_engine, 999, users["asker"])

    def test_mark_all_read(self, db_engine, users, question):
        for _ in range(3):
            store.create(db_engine, _answer_added(users["asker"], question))
        store.create(db_engine, _answer_added(users["bob"], question))
        assert store.mark_all_read(db_engine, users["asker"]) == 3
        assert store.mark_all_read(db_engine, users["asker"]) == 0
        assert store.unread_count(db_engine, users["bob"]) == 1


class TestDelete:
    def test_delete_one(self, db_engine, users, question):
        n = store.create(db_engine, _answer_added(users["asker"], question))
        with pytest.raises(AuthorizationError):
            store.delete_one(db_engine, n["id"], users["bob"])
        store.delete_one(db_engine, n["id"], users["asker"])
        with pytest.raises(NotFoundError):
            store.delete_one(db_engine, n["id"], users["asker"])

    def test_delete_by_answer_returns_recipients(self, db_engine, users, question, answers):
        store.create(db_engine, _answer_added(users["asker"], question, answers["bob"]))
        store.create(db_engine, _answer_added(users["voter"], question, answers["bob"]))
        store.create(db_engine, _answer_added(users["asker"], question, answers["carol"]))

        affected = store.delete_by_answer(db_engine, answers["bob"])
        assert affected == {users["asker"], users["voter"]}
        assert store.unread_count(db_engine, users["asker"]) == 1
        assert store.delete_by_answer(db_engine, answers["bob"]) == set()

    def test_delete_by_question_includes_answer_refs(self, db_engine, users, question, answers):
        store.create(db_engine, _answer_added(users["asker"], question, answers["bob"]))
        store.create(db_engine, NewNotification(
            user_id=users["carol"],
            type=NotificationType.ANSWER_ACCEPTED,
            message="Your answer was accepted",
            related_answer_id=answers["carol"],
        ))
        affected = store.delete_by_question(db_engine, question)
        assert affected == {users["asker"], users["carol"]}
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Notification)) == 0
