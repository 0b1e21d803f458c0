"""Domain layer: rich models for progression records and quests."""
