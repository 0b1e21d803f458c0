"""Quest and quest chain lifecycle."""

from .service import ChainCompletion, QuestCompletion, QuestService
from .store import InMemoryQuestStore, QuestStore, SqlQuestStore

__all__ = [
    "ChainCompletion",
    "QuestCompletion",
    "QuestService",
    "InMemoryQuestStore",
    "QuestStore",
    "SqlQuestStore",
]
