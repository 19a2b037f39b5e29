"""
Question service: lifecycle and authorization rules for questions.

Design notes
------------
- Ownership checks live here, not in the repository.  Route-level role
  checks (``require_roles``) run before these functions; the rules below
  are the ones that depend on the stored question:

  * update text: the author only (admins are not exempt).
  * delete: the author or any admin.
  * delete answer: only the admin recorded in ``answered_by``.
  * list by user: the user themselves or any admin.

- Create and list-by-article confirm with the catalog service that the
  article exists and is enabled, using the caller's own token.
- Stats events are best-effort: a failed publish is logged and never
  undoes the write that triggered it.
- Functions flush but do not commit, except the two writes that emit a
  stats event: they commit before publishing.  Collaborators (catalog
  client, event bus) are passed in explicitly.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.catalog_client import CatalogClient
from app.config import settings
from app.event_bus import EventBus
from app.exceptions import ForbiddenError, NotFoundError
from app.models import Question
from app.repositories import question_repository
from app.schemas import CurrentUser, QuestionCreate

logger = logging.getLogger(__name__)

QUESTION_CREATED = "question_created"
QUESTION_ANSWERED = "question_answered"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def question_to_dict(question: Question) -> dict:
    """Serialise a Question ORM instance to its API representation."""
    return {
        "id": question.id,
        "articleId": question.article_id,
        "userId": question.user_id,
        "question": question.question_text,
        "answer": question.answer,
        "answeredBy": question.answered_by,
        "answeredAt": question.answered_at.isoformat() if question.answered_at else None,
        "createdAt": question.created_at.isoformat() if question.created_at else None,
        "enabled": question.enabled,
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _require_question(db: AsyncSession, question_id: str) -> Question:
    question = await question_repository.find_by_id(db, question_id)
    if question is None:
        raise NotFoundError("Question not found")
    return question


async def _require_enabled_article(catalog: CatalogClient, article_id: str, token: str) -> None:
    if not await catalog.is_article_enabled(article_id, token):
        raise NotFoundError("Article not found or disabled")


async def _publish_stats(bus: EventBus, event_type: str, article_id: str, user_id: str) -> None:
    event = {
        "eventType": event_type,
        "articleId": article_id,
        "userId": user_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await bus.publish(settings.STATS_TOPIC, event, durable=True)
    except Exception as exc:
        logger.warning("Could not publish %s event for article %s: %s", event_type, article_id, exc)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def list_questions(db: AsyncSession) -> list[dict]:
    return [question_to_dict(q) for q in await question_repository.find_all_enabled(db)]


async def list_my_questions(db: AsyncSession, user: CurrentUser) -> list[dict]:
    return [question_to_dict(q) for q in await question_repository.find_by_user(db, user.id)]


async def list_questions_by_user(db: AsyncSession, user_id: str, user: CurrentUser) -> list[dict]:
    """
    Return *user_id*'s enabled questions.

    Callers may only list their own questions unless they are admins.
    """
    if not user.is_admin and str(user.id) != str(user_id):
        raise ForbiddenError("You are not authorized to see other user's questions")
    return [question_to_dict(q) for q in await question_repository.find_by_user(db, user_id)]


async def list_questions_by_article(
    db: AsyncSession,
    article_id: str,
    token: str,
    *,
    catalog: CatalogClient,
) -> list[dict]:
    await _require_enabled_article(catalog, article_id, token)
    return [question_to_dict(q) for q in await question_repository.find_by_article(db, article_id)]


async def get_question(db: AsyncSession, question_id: str) -> dict:
    return question_to_dict(await _require_question(db, question_id))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_question(
    db: AsyncSession,
    data: QuestionCreate,
    user: CurrentUser,
    token: str,
    *,
    catalog: CatalogClient,
    bus: EventBus,
) -> dict:
    """
    Create a question on an enabled article and emit ``question_created``.

    Raises NotFoundError when the catalog does not know the article or has
    it disabled.
    """
    await _require_enabled_article(catalog, data.articleId, token)

    question = await question_repository.insert(
        db,
        article_id=data.articleId,
        question_text=data.question,
        user_id=user.id,
        created_at=datetime.now(timezone.utc),
    )
    logger.info("Question %s created on article %s by %s", question.id, question.article_id, user.id)
    await db.commit()

    await _publish_stats(bus, QUESTION_CREATED, question.article_id, user.id)
    return question_to_dict(question)


async def answer_question(
    db: AsyncSession,
    question_id: str,
    answer: str,
    user: CurrentUser,
    *,
    bus: EventBus,
) -> dict:
    """Record *user*'s answer and emit ``question_answered``."""
    await _require_question(db, question_id)

    question = await question_repository.update(
        db,
        question_id,
        {
            "answer": answer,
            "answered_by": user.id,
            "answered_at": datetime.now(timezone.utc),
        },
    )
    if question is None:
        raise NotFoundError("Question not found")
    await db.commit()

    await _publish_stats(bus, QUESTION_ANSWERED, question.article_id, user.id)
    return question_to_dict(question)


async def delete_answer(db: AsyncSession, question_id: str, user: CurrentUser) -> dict:
    """Clear the answer; only the admin who wrote it may do so."""
    question = await _require_question(db, question_id)
    if question.answered_by is None or str(question.answered_by) != str(user.id):
        raise ForbiddenError("You are not authorized to delete this answer")

    question = await question_repository.update(
        db,
        question_id,
        {"answer": None, "answered_by": None, "answered_at": None},
    )
    return question_to_dict(question)


async def update_question(db: AsyncSession, question_id: str, text: str, user: CurrentUser) -> dict:
    """Replace the question text; authors only, admins included in the ban."""
    question = await _require_question(db, question_id)
    if str(question.user_id) != str(user.id):
        raise ForbiddenError("You are not authorized to update this question")

    question = await question_repository.update(db, question_id, {"question_text": text})
    return question_to_dict(question)


async def delete_question(db: AsyncSession, question_id: str, user: CurrentUser) -> dict:
    """Soft-delete a question.  Allowed for its author and for admins."""
    question = await _require_question(db, question_id)
    is_author = str(question.user_id) == str(user.id)
    if not is_author and not user.is_admin:
        raise ForbiddenError("You are not authorized to delete this question")

    question = await question_repository.update(db, question_id, {"enabled": False})
    logger.info("Question %s disabled by %s", question_id, user.id)
    return question_to_dict(question)


async def disable_article_questions(db: AsyncSession, article_id: str) -> int:
    """Cascade an upstream article deletion to every question of *article_id*."""
    affected = await question_repository.disable_by_article(db, article_id)
    logger.info("Disabled %d question(s) for deleted article %s", affected, article_id)
    return affected
