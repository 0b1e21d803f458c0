"""
User Progress Model
===================

Schema-only representation of a user's progression record:
- Level, in-level XP and lifetime XP
- Titles (ordered JSON list) and the displayed title
- Streak bookkeeping
- Completion counters per quest type
- Achievement ids and unlock history (JSON)

All behavior and progression rules live in service/domain layers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from solotasks.core.database.base import Base, TimestampMixin
from solotasks.domain.models.progress import DEFAULT_TITLE


def _default_titles() -> List[str]:
    return [DEFAULT_TITLE]


class UserProgressRow(Base, TimestampMixin):
    """
    Progression record for one user.

    Rows are only ever mutated under `SELECT ... FOR UPDATE` inside a
    single transaction, so counters never lose increments.
    """

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "user_progress"
    __table_args__ = (
        Index("ix_user_progress_level", "level"),
        Index("ix_user_progress_total_xp", "total_xp"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    user_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        doc="External user identifier",
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
        doc="Incremented on every write",
    )

    # ========================================================================
    # LEVEL & XP
    # ========================================================================

    level: Mapped[int] = mapped_column(nullable=False, default=1)

    xp: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
        doc="XP inside the current level",
    )

    total_xp: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
        doc="Lifetime XP including achievement bonuses",
    )

    # ========================================================================
    # TITLES
    # ========================================================================

    titles: Mapped[List[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=_default_titles,
        doc="Unlocked titles in unlock order",
    )

    current_title: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default=DEFAULT_TITLE,
    )

    # ========================================================================
    # STREAK
    # ========================================================================

    streak: Mapped[int] = mapped_column(nullable=False, default=0)

    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Last recognized activity",
    )

    # ========================================================================
    # COMPLETION COUNTERS
    # ========================================================================

    completed_quests: Mapped[int] = mapped_column(nullable=False, default=0)
    completed_daily_quests: Mapped[int] = mapped_column(nullable=False, default=0)
    completed_weekly_quests: Mapped[int] = mapped_column(nullable=False, default=0)
    completed_custom_quests: Mapped[int] = mapped_column(nullable=False, default=0)
    completed_dungeons: Mapped[int] = mapped_column(nullable=False, default=0)

    # ========================================================================
    # ACHIEVEMENTS
    # ========================================================================

    achievements: Mapped[List[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        doc="Unlocked achievement ids in unlock order",
    )

    achievement_history: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        doc="One {id, title, xp_reward, unlocked_at} entry per unlock",
    )

    def __repr__(self) -> str:
        return (
            f"<UserProgressRow(user_id={self.user_id!r}, level={self.level}, "
            f"total_xp={self.total_xp}, version={self.version})>"
        )
