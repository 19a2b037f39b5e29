"""
Question repository: persistence operations for the Question entity.

Every function takes the caller's ``AsyncSession`` and flushes but never
commits; the transaction boundary belongs to ``get_db`` (HTTP path) or to
the subscriber that opened the session.

Soft delete: ``enabled`` is a tombstone flag.  The lookup functions used by
user-facing reads filter on ``enabled = true``; the aggregate functions take
an explicit ``include_disabled`` argument instead of defaulting either way.

Any SQLAlchemy failure is re-raised as ``RepositoryError`` with the original
exception chained.
"""
import functools
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update as sql_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import RepositoryError, ValidationError
from app.models import Question

logger = logging.getLogger(__name__)

# Columns that update() may touch; id, article_id, user_id and created_at
# are immutable once the row exists.
_MUTABLE_FIELDS: frozenset[str] = frozenset(
    {"question_text", "answer", "answered_by", "answered_at", "enabled"}
)


def _wrap_errors(action: str):
    """Translate SQLAlchemy failures raised by the decorated call."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                logger.error("Error %s: %s", action, exc)
                raise RepositoryError(f"Error {action}") from exc

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Lookups (enabled only)
# ---------------------------------------------------------------------------

@_wrap_errors("fetching questions")
async def find_all_enabled(db: AsyncSession) -> list[Question]:
    result = await db.execute(select(Question).where(Question.enabled.is_(True)))
    return list(result.scalars().all())


@_wrap_errors("fetching question")
async def find_by_id(db: AsyncSession, question_id: str) -> Question | None:
    """Return the enabled question with *question_id*, or None."""
    result = await db.execute(
        select(Question).where(Question.id == question_id, Question.enabled.is_(True))
    )
    return result.scalar_one_or_none()


@_wrap_errors("fetching questions for article")
async def find_by_article(db: AsyncSession, article_id: str) -> list[Question]:
    result = await db.execute(
        select(Question).where(Question.article_id == article_id, Question.enabled.is_(True))
    )
    return list(result.scalars().all())


@_wrap_errors("fetching questions for user")
async def find_by_user(db: AsyncSession, user_id: str) -> list[Question]:
    result = await db.execute(
        select(Question).where(Question.user_id == user_id, Question.enabled.is_(True))
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

@_wrap_errors("counting questions")
async def count(
    db: AsyncSession,
    *,
    include_disabled: bool,
    answered_only: bool = False,
) -> int:
    q = select(func.count()).select_from(Question)
    if not include_disabled:
        q = q.where(Question.enabled.is_(True))
    if answered_only:
        q = q.where(Question.answer.is_not(None))
    return (await db.execute(q)).scalar_one()


def _article_totals(include_disabled: bool):
    total = func.count().label("total")
    q = select(Question.article_id, total).group_by(Question.article_id)
    if not include_disabled:
        q = q.where(Question.enabled.is_(True))
    return q, total


@_wrap_errors("grouping questions by article")
async def count_by_article(db: AsyncSession, *, include_disabled: bool) -> list[tuple[str, int]]:
    """
    Return ``(article_id, total)`` pairs, highest total first.

    Articles with equal totals come back in whatever order the database
    produces.
    """
    q, total = _article_totals(include_disabled)
    result = await db.execute(q.order_by(total.desc()))
    return [(row.article_id, row.total) for row in result.all()]


@_wrap_errors("finding most asked article")
async def most_asked_article(db: AsyncSession, *, include_disabled: bool) -> str | None:
    """Return the article id with the most questions, or None if there are none."""
    q, total = _article_totals(include_disabled)
    result = await db.execute(q.order_by(total.desc()).limit(1))
    row = result.first()
    return row.article_id if row is not None else None


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@_wrap_errors("inserting question")
async def insert(
    db: AsyncSession,
    *,
    article_id: str,
    question_text: str,
    user_id: str,
    created_at: datetime | None = None,
) -> Question:
    """
    Persist a new enabled question and return it with its assigned id.

    Raises ``ValidationError`` when any of the required fields is missing
    or blank.
    """
    missing = [
        name
        for name, value in (
            ("articleId", article_id),
            ("question", question_text),
            ("userId", user_id),
        )
        if value is None or not str(value).strip()
    ]
    if missing:
        raise ValidationError(f"Missing question fields: {', '.join(missing)}")

    question = Question(
        article_id=article_id,
        question_text=question_text,
        user_id=user_id,
        created_at=created_at or datetime.now(timezone.utc),
        enabled=True,
    )
    db.add(question)
    await db.flush()
    return question


@_wrap_errors("updating question")
async def update(db: AsyncSession, question_id: str, fields: dict) -> Question | None:
    """
    Merge *fields* into the question identified by *question_id*.

    Only the supplied keys are written.  Returns None when no row has that
    id; disabled rows are still updated.
    """
    unknown = set(fields) - _MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update question field(s): {', '.join(sorted(unknown))}")

    question = await db.get(Question, question_id)
    if question is None:
        return None

    for field, value in fields.items():
        setattr(question, field, value)
    await db.flush()
    return question


@_wrap_errors("disabling questions for article")
async def disable_by_article(db: AsyncSession, article_id: str) -> int:
    """
    Soft-delete every question of *article_id*.

    Returns the number of rows switched from enabled to disabled, so a
    repeated call returns 0 and leaves the data unchanged.  Runs as a single
    UPDATE statement; Question instances already loaded in *db* are not
    refreshed.
    """
    await db.flush()
    result = await db.execute(
        sql_update(Question)
        .where(Question.article_id == article_id, Question.enabled.is_(True))
        .values(enabled=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
