from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# --- Question ---

class QuestionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    articleId: str = Field(min_length=1, max_length=64)
    question: str = Field(min_length=1)


class QuestionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    question: str = Field(min_length=1)


class AnswerCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    answer: str = Field(min_length=1)


class QuestionResponse(BaseModel):
    id: str
    articleId: str
    userId: str
    question: str
    answer: str | None = None
    answeredBy: str | None = None
    answeredAt: datetime | None = None
    createdAt: datetime
    enabled: bool


# --- Statistics ---

class ArticleCount(BaseModel):
    articleId: str
    total: int


class StatisticsResponse(BaseModel):
    totalQuestions: int
    totalAnswers: int
    activeQuestions: int
    disabledQuestions: int
    mostAskedArticleId: str | None
    byArticle: list[ArticleCount] = []


# --- Authenticated identity ---

class CurrentUser(BaseModel):
    """
    Identity payload returned by the auth service and cached per token.

    The auth service has sent permissions either as ``permissions`` (list)
    or as a single ``role``; both shapes are normalised into
    ``permissions``.  Unknown fields are kept so the cached payload
    round-trips unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    permissions: list[str] = []

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value) if value is not None else value

    @model_validator(mode="before")
    @classmethod
    def _normalise_permissions(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        permissions = data.get("permissions")
        if permissions is None:
            permissions = data.get("role") or []
        if not isinstance(permissions, (list, tuple, set)):
            permissions = [permissions]
        data["permissions"] = [str(p) for p in permissions]
        return data

    @property
    def is_admin(self) -> bool:
        return "admin" in self.permissions
