"""
Wildcard event-name matching.

Supported patterns: exact (`"achievement.unlocked"`), global (`"*"`),
prefix (`"progression.*"`), suffix (`"*.unlocked"`) and sandwich
(`"quest.*.completed"`). Matching is case-sensitive.
"""

from __future__ import annotations


class EventRouter:
    """
    Stateless matcher for event names against wildcard patterns.

    >>> router = EventRouter()
    >>> router.matches("progression.level_up", "progression.*")
    True
    >>> router.matches("streak.milestone", "progression.*")
    False
    """

    def matches(self, event_name: str, pattern: str) -> bool:
        if pattern == "*":
            return True

        if "*" not in pattern:
            return event_name == pattern

        while "**" in pattern:
            pattern = pattern.replace("**", "*")

        parts = pattern.split("*")

        if parts[0] and not event_name.startswith(parts[0]):
            return False
        if parts[-1] and not event_name.endswith(parts[-1]):
            return False

        # Middle fragments must appear in order after the prefix
        idx = len(parts[0])
        for mid in parts[1:-1]:
            if not mid:
                continue
            next_idx = event_name.find(mid, idx)
            if next_idx == -1:
                return False
            idx = next_idx + len(mid)

        # Suffix must not overlap the consumed region
        return len(event_name) - len(parts[-1]) >= idx
