"""
Catalog deletion subscriber.

Listens on the durable ``article_deleted`` exchange and soft-deletes every
question attached to the deleted article.  Each message gets its own
database session and commit; replays of the same event disable nothing new.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.event_bus import EventBus
from app.services import question_service

logger = logging.getLogger(__name__)


class ArticleDeletedSubscriber:
    def __init__(self, bus: EventBus, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._bus = bus
        self._session_factory = session_factory

    async def start(self) -> bool:
        """Subscribe to the article deletion topic.  Returns False if the broker is unreachable."""
        try:
            await self._bus.subscribe(settings.ARTICLE_DELETED_TOPIC, self.handle, durable=True)
        except Exception as exc:
            logger.error("Article deletion subscription failed: %s", exc)
            return False
        return True

    async def handle(self, payload) -> None:
        logger.info("Article deletion event received: %r", payload)
        article_id = payload.get("articleId") if isinstance(payload, dict) else None
        if article_id is None or str(article_id) == "":
            logger.warning("Ignoring article deletion event without articleId")
            return

        async with self._session_factory() as session:
            await question_service.disable_article_questions(session, str(article_id))
            await session.commit()
