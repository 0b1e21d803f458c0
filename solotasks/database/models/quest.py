"""
Quest Model
===========

Schema-only representation of quests and quest chains. Chain steps are
stored inline as an ordered JSON list.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from solotasks.core.database.base import Base, utc_now


class QuestRow(Base):
    """A quest (or quest chain when `is_chain`) owned by one user."""

    __tablename__ = "quests"
    __table_args__ = (
        Index("ix_quests_user_created", "user_id", "created_at"),
        Index("ix_quests_user_type_completed", "user_id", "quest_type", "completed"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quest_type: Mapped[str] = mapped_column(String(16), nullable=False)
    difficulty: Mapped[int] = mapped_column(nullable=False, default=1)
    xp: Mapped[int] = mapped_column(nullable=False, default=0)

    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ========================================================================
    # DAILY RESET LINEAGE
    # ========================================================================

    is_reset: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_quest_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # ========================================================================
    # QUEST CHAIN
    # ========================================================================

    is_chain: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    steps: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        doc="Ordered [{title, description}] chain steps",
    )
    time_limit_seconds: Mapped[Optional[int]] = mapped_column(nullable=True)
    current_step: Mapped[int] = mapped_column(nullable=False, default=0)
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    time_remaining: Mapped[Optional[int]] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QuestRow(id={self.id!r}, user_id={self.user_id!r}, "
            f"type={self.quest_type!r}, completed={self.completed})>"
        )
