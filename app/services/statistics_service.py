"""
Statistics service: read-only rollups over every stored question.

Disabled questions are included in every figure except
``activeQuestions``, so ``activeQuestions + disabledQuestions`` always
equals ``totalQuestions``.  When several articles share the top count,
``mostAskedArticleId`` is whichever one the database returns first.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories import question_repository
from app.schemas import ArticleCount, StatisticsResponse


async def get_statistics(db: AsyncSession) -> StatisticsResponse:
    total = await question_repository.count(db, include_disabled=True)
    active = await question_repository.count(db, include_disabled=False)
    answers = await question_repository.count(db, include_disabled=True, answered_only=True)
    most_asked = await question_repository.most_asked_article(db, include_disabled=True)
    by_article = await question_repository.count_by_article(db, include_disabled=True)

    return StatisticsResponse(
        totalQuestions=total,
        totalAnswers=answers,
        activeQuestions=active,
        disabledQuestions=total - active,
        mostAskedArticleId=most_asked,
        byArticle=[ArticleCount(articleId=a, total=n) for a, n in by_article],
    )
