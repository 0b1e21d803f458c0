"""
SoloTasks ORM Models
====================

Schema-only tables. Business rules live in the domain and service layers;
stores convert between these rows and the domain models.

- UserProgressRow: one progression record per user
- QuestRow: quests and quest chains

Usage
-----
    from solotasks.database.models import QuestRow, UserProgressRow
"""

from .quest import QuestRow
from .user_progress import UserProgressRow

__all__ = ["QuestRow", "UserProgressRow"]
