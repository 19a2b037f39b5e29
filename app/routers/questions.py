from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.catalog_client import CatalogClient
from app.database import get_db
from app.dependencies import (
    get_bearer_token,
    get_catalog_client,
    get_current_user,
    get_event_bus,
    require_roles,
)
from app.event_bus import EventBus
from app.schemas import (
    AnswerCreate,
    CurrentUser,
    QuestionCreate,
    QuestionResponse,
    QuestionUpdate,
    StatisticsResponse,
)
from app.services import question_service, statistics_service

router = APIRouter(prefix="/questions", tags=["questions"])

@router.get("", response_model=list[QuestionResponse])
async def list_questions(
    user: CurrentUser = Depends(require_roles("user")),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.list_questions(db)

@router.get("/me", response_model=list[QuestionResponse])
async def list_my_questions(
    user: CurrentUser = Depends(require_roles("user")),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.list_my_questions(db, user)

@router.get("/user/{user_id}", response_model=list[QuestionResponse])
async def list_user_questions(
    user_id: str,
    user: CurrentUser = Depends(require_roles("user", "admin")),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.list_questions_by_user(db, user_id, user)

@router.get("/article/{article_id}", response_model=list[QuestionResponse])
async def list_article_questions(
    article_id: str,
    user: CurrentUser = Depends(require_roles("user")),
    token: str = Depends(get_bearer_token),
    catalog: CatalogClient = Depends(get_catalog_client),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.list_questions_by_article(db, article_id, token, catalog=catalog)

@router.get("/stats", response_model=StatisticsResponse)
async def get_statistics(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await statistics_service.get_statistics(db)

@router.get("/{question_id}", response_model=QuestionResponse)
async def get_question(
    question_id: str,
    user: CurrentUser = Depends(require_roles("user")),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.get_question(db, question_id)

@router.post("", status_code=201, response_model=QuestionResponse)
async def create_question(
    data: QuestionCreate,
    user: CurrentUser = Depends(require_roles("user")),
    token: str = Depends(get_bearer_token),
    catalog: CatalogClient = Depends(get_catalog_client),
    bus: EventBus = Depends(get_event_bus),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.create_question(db, data, user, token, catalog=catalog, bus=bus)

@router.patch("/{question_id}/answer", response_model=QuestionResponse)
async def answer_question(
    question_id: str,
    data: AnswerCreate,
    user: CurrentUser = Depends(require_roles("admin")),
    bus: EventBus = Depends(get_event_bus),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.answer_question(db, question_id, data.answer, user, bus=bus)

@router.patch("/{question_id}", response_model=QuestionResponse)
async def update_question(
    question_id: str,
    data: QuestionUpdate,
    user: CurrentUser = Depends(require_roles("user")),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.update_question(db, question_id, data.question, user)

@router.delete("/{question_id}/answer", response_model=QuestionResponse)
async def delete_answer(
    question_id: str,
    user: CurrentUser = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.delete_answer(db, question_id, user)

@router.delete("/{question_id}", response_model=QuestionResponse)
async def delete_question(
    question_id: str,
    user: CurrentUser = Depends(require_roles("user", "admin")),
    db: AsyncSession = Depends(get_db),
):
    return await question_service.delete_question(db, question_id, user)
