"""SoloTasks progression engine: levels, titles, streaks and achievements."""

__version__ = "1.0.0"
