from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Question
# ---------------------------------------------------------------------------
class Question(Base):
    __tablename__ = "questions"

    __table_args__ = (
        # Article page listing (enabled questions for one article)
        Index("ix_questions_article_id_enabled", "article_id", "enabled"),
        # "My questions" listing
        Index("ix_questions_user_id_enabled", "user_id", "enabled"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    article_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)

    # answer / answered_by / answered_at are written together or not at all
    answer: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    answered_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, default=None)
    answered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
