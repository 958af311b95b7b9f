"""
services package: persistence and background work around the classification core.

- thread_store: durable user -> session mapping (in-memory and SQLite)
- tag_store: per-user categories, tags and max_tags settings
- thread_pruner: scheduled removal of idle sessions
- dispatcher: bounded worker pool with optional per-user ordering
"""
