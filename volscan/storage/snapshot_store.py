"""
Snapshot persistence for the ranking tracker.

The persisted record is ``{"top_list": [...], "last_check": iso8601}``.
It is read once at the start of a cycle and overwritten once at the end.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import redis.asyncio as redis

from volscan.config.schemas import StorageBackend, StorageConfig
from volscan.core.models import RankingSnapshot
from volscan.core.ranking import SnapshotStore
from volscan.utils.logger import get_logger

logger = get_logger(__name__)


def _decode(raw: str | bytes | None, source: str) -> RankingSnapshot:
    """Parse a stored record; an unreadable record counts as no snapshot."""
    if not raw:
        return RankingSnapshot()
    try:
        state = json.loads(raw)
        if not isinstance(state, dict):
            raise ValueError("snapshot record is not an object")
        return RankingSnapshot.from_state(state)
    except (ValueError, TypeError) as e:
        logger.warning("snapshot_unreadable", source=source, error=str(e))
        return RankingSnapshot()


class JsonFileSnapshotStore:
    """Snapshot kept in a local JSON file, replaced atomically on save."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def load(self) -> RankingSnapshot:
        raw = await asyncio.to_thread(self._read)
        snapshot = _decode(raw, str(self.path))
        logger.debug("snapshot_loaded", path=str(self.path), top=snapshot.symbols)
        return snapshot

    async def save(self, snapshot: RankingSnapshot) -> None:
        payload = json.dumps(snapshot.to_state(), indent=2)
        await asyncio.to_thread(self._write, payload)
        logger.debug("snapshot_saved", path=str(self.path), top=snapshot.symbols)

    def _read(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".snapshot-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class RedisSnapshotStore:
    """Snapshot kept under one Redis key."""

    def __init__(self, client: Any, key: str = "volscan:snapshot") -> None:
        self.client = client
        self.key = key

    @classmethod
    def from_url(cls, url: str, key: str = "volscan:snapshot") -> "RedisSnapshotStore":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, key)

    async def load(self) -> RankingSnapshot:
        raw = await self.client.get(self.key)
        return _decode(raw, self.key)

    async def save(self, snapshot: RankingSnapshot) -> None:
        await self.client.set(self.key, json.dumps(snapshot.to_state()))
        logger.debug("snapshot_saved", key=self.key, top=snapshot.symbols)

    async def close(self) -> None:
        await self.client.aclose()


def create_snapshot_store(config: StorageConfig) -> SnapshotStore:
    """Store selected by ``config.backend``."""
    if config.backend == StorageBackend.REDIS:
        return RedisSnapshotStore.from_url(config.redis_url, config.redis_key)
    return JsonFileSnapshotStore(config.state_path)
