"""
RankingTracker — top-N by volatility and change detection between cycles.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Protocol

from volscan.core.models import InstrumentScore, RankingDelta, RankingSnapshot
from volscan.utils.logger import get_logger

logger = get_logger(__name__)


class SnapshotStore(Protocol):
    """Key-value record holding the previous cycle's top-N."""

    async def load(self) -> RankingSnapshot: ...

    async def save(self, snapshot: RankingSnapshot) -> None: ...


def _as_pairs(scores: Mapping[str, float] | Iterable[InstrumentScore]) -> list[tuple[str, float]]:
    if isinstance(scores, Mapping):
        return [(symbol, float(vol)) for symbol, vol in scores.items()]
    return [(s.symbol, float(s.volatility)) for s in scores]


class RankingTracker:
    """
    Sorts instruments by volatility and diffs the top-N against a snapshot.

    Input order is the discovery order and breaks ties between equal
    volatilities. Only membership counts as a change; reordering inside
    the retained set is not an entry or exit.
    """

    def __init__(self, top_n: int = 10) -> None:
        if top_n < 1:
            raise ValueError("top_n must be at least 1")
        self.top_n = top_n
        self._lock = asyncio.Lock()

    def rank(
        self,
        scores: Mapping[str, float] | Iterable[InstrumentScore],
        now: datetime | None = None,
    ) -> RankingSnapshot:
        """Top-N snapshot, highest volatility first."""
        pairs = _as_pairs(scores)
        # sorted() is stable, so equal volatilities keep discovery order
        ordered = sorted(pairs, key=lambda p: p[1], reverse=True)[: self.top_n]
        return RankingSnapshot(entries=ordered, last_check=now or datetime.now(timezone.utc))

    def diff(self, current: RankingSnapshot, previous_top: Sequence[str]) -> RankingDelta:
        """Entries/exits of ``current`` relative to ``previous_top``."""
        previous = list(previous_top)
        current_set = set(current.symbols)
        previous_set = set(previous)

        return RankingDelta(
            current=current,
            entries=current_set - previous_set,
            exits=previous_set - current_set,
            previous=previous,
            is_initial=not previous,
        )

    async def evaluate(
        self,
        scores: Mapping[str, float] | Iterable[InstrumentScore],
        store: SnapshotStore,
        now: datetime | None = None,
        on_delta: Callable[[RankingDelta], Awaitable[None]] | None = None,
    ) -> RankingDelta:
        """
        Read the stored top-N, rank this cycle, diff, and overwrite the store.

        ``on_delta`` runs between the diff and the save; if it raises, the
        stored snapshot is left untouched so the next cycle diffs against
        the same previous list. The snapshot is rewritten on every
        successful call, including unchanged cycles, so the stored
        timestamp always marks the latest evaluation.
        """
        async with self._lock:
            previous = await store.load()
            current = self.rank(scores, now)
            delta = self.diff(current, previous.symbols)
            if on_delta is not None:
                await on_delta(delta)
            await store.save(current)

        logger.info(
            "ranking_evaluated",
            top=current.symbols,
            initial=delta.is_initial,
            entries=delta.ordered_entries(),
            exits=delta.ordered_exits(),
        )
        return delta
