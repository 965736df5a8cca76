"""In-memory caches shared across hub services."""

from .snapshot_cache import SessionSnapshotCache, snapshot_cache

__all__ = ["SessionSnapshotCache", "snapshot_cache"]
