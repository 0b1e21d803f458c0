"""Database schema for SoloTasks (schema only, no behavior)."""
