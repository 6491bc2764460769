"""Ranking snapshot persistence"""

from volscan.storage.snapshot_store import (
    JsonFileSnapshotStore,
    RedisSnapshotStore,
    create_snapshot_store,
)

__all__ = ["JsonFileSnapshotStore", "RedisSnapshotStore", "create_snapshot_store"]
