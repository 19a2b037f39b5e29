"""
Article deletion subscriber tests: cascading soft delete through the
subscriber's own session factory.
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.consumers.catalog_consumer import ArticleDeletedSubscriber
from app.models import Question
from app.repositories import question_repository
from conftest import async_session_test


async def _seed(db: AsyncSession, article_id: str, count: int = 1) -> None:
    for i in range(count):
        await question_repository.insert(
            db,
            article_id=article_id,
            question_text=f"Question {i}",
            user_id=f"U{i}",
            created_at=datetime.now(timezone.utc),
        )
    await db.commit()


async def _flags_by_article() -> dict[str, set[bool]]:
    async with async_session_test() as session:
        rows = (await session.execute(select(Question.article_id, Question.enabled))).all()
    flags: dict[str, set[bool]] = {}
    for article_id, enabled in rows:
        flags.setdefault(article_id, set()).add(enabled)
    return flags


@pytest.mark.asyncio
async def test_subscribes_durable_article_deleted(bus):
    subscriber = ArticleDeletedSubscriber(bus, async_session_test)
    assert await subscriber.start() is True
    handler, durable = bus.subscriptions["article_deleted"]
    assert durable is True
    assert handler == subscriber.handle


@pytest.mark.asyncio
async def test_start_failure_returns_false(bus):
    bus.fail_subscribe = True
    assert await ArticleDeletedSubscriber(bus, async_session_test).start() is False


@pytest.mark.asyncio
async def test_delivered_event_disables_article_questions(db_session: AsyncSession, bus):
    await _seed(db_session, "ART-1", count=3)
    await _seed(db_session, "ART-2")

    await ArticleDeletedSubscriber(bus, async_session_test).start()
    handler, _ = bus.subscriptions["article_deleted"]
    await handler({"articleId": "ART-1"})

    assert await _flags_by_article() == {"ART-1": {False}, "ART-2": {True}}


@pytest.mark.asyncio
async def test_replayed_event_changes_nothing(db_session: AsyncSession, bus):
    await _seed(db_session, "ART-1", count=2)
    subscriber = ArticleDeletedSubscriber(bus, async_session_test)

    await subscriber.handle({"articleId": "ART-1"})
    await subscriber.handle({"articleId": "ART-1"})

    assert await _flags_by_article() == {"ART-1": {False}}
    async with async_session_test() as session:
        assert await question_repository.count(session, include_disabled=True) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"articleId": ""}, {"id": "ART-1"}, ["ART-1"]])
async def test_event_without_article_id_is_ignored(db_session: AsyncSession, bus, payload):
    await _seed(db_session, "ART-1")
    await ArticleDeletedSubscriber(bus, async_session_test).handle(payload)
    assert await _flags_by_article() == {"ART-1": {True}}


@pytest.mark.asyncio
async def test_numeric_article_id_is_matched_as_string(db_session: AsyncSession, bus):
    await _seed(db_session, "42")
    await ArticleDeletedSubscriber(bus, async_session_test).handle({"articleId": 42})
    assert await _flags_by_article() == {"42": {False}}
