"""Bounded pull history with running statistics.

The detail buffer keeps at most ``max_size`` batches; the aggregates are
updated incrementally on every append and survive eviction, so totals and
pity counters always reflect every batch ever recorded.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import PityState, PullBatch, RarityTier

logger = logging.getLogger("gachaspire.history")

DEFAULT_MAX_HISTORY = 100


def _zero_counts() -> Dict[RarityTier, int]:
    return {tier: 0 for tier in RarityTier}


@dataclass
class HistoryAggregates:
    total_pulls: int = 0
    total_gold_spent: int = 0
    consecutive_batches: int = 0
    rarity_counts: Dict[RarityTier, int] = field(default_factory=_zero_counts)
    # Pulls since the last record at or above each tier.
    pulls_since: Dict[RarityTier, int] = field(default_factory=_zero_counts)

    def absorb(self, batch: PullBatch) -> None:
        self.total_pulls += batch.total_pulls
        self.total_gold_spent += batch.gold_spent
        self.consecutive_batches += 1
        for record in batch.records:
            self.rarity_counts[record.rarity] = self.rarity_counts.get(record.rarity, 0) + 1
        for tier in RarityTier:
            since = self.pulls_since.get(tier, 0)
            for record in batch.records:
                since = 0 if record.rarity >= tier else since + 1
            self.pulls_since[tier] = since


@dataclass(frozen=True)
class HistorySummary:
    total_pulls: int
    total_gold_spent: int
    per_rarity_counts: Mapping[RarityTier, int]

    def actual_rate_percent(self, rarity: RarityTier) -> float:
        if self.total_pulls == 0:
            return 0.0
        return self.per_rarity_counts.get(rarity, 0) / self.total_pulls * 100.0

    def actual_rates(self) -> Dict[RarityTier, float]:
        return {tier: self.actual_rate_percent(tier) for tier in RarityTier}

    @property
    def average_cost_per_pull(self) -> float:
        if self.total_pulls == 0:
            return 0.0
        return self.total_gold_spent / self.total_pulls

    def average_cost_for_rarity(self, rarity: RarityTier) -> float:
        count = self.per_rarity_counts.get(rarity, 0)
        if count == 0:
            return 0.0
        return self.total_gold_spent / count


class HistoryLedger:
    """FIFO buffer of successful pull batches plus running aggregates."""

    def __init__(self, max_size: int = DEFAULT_MAX_HISTORY, *, guaranteed_floor: RarityTier = RarityTier.RARE):
        if max_size <= 0:
            raise ValueError("History size must be positive.")
        self.max_size = max_size
        self.guaranteed_floor = guaranteed_floor
        self._batches: Deque[PullBatch] = deque(maxlen=max_size)
        self._aggregates = HistoryAggregates()

    def __len__(self) -> int:
        return len(self._batches)

    def __iter__(self):
        return iter(self._batches)

    @property
    def batches(self) -> Sequence[PullBatch]:
        return tuple(self._batches)

    @property
    def aggregates(self) -> HistoryAggregates:
        return self._aggregates

    @property
    def total_pulls(self) -> int:
        return self._aggregates.total_pulls

    @property
    def total_gold_spent(self) -> int:
        return self._aggregates.total_gold_spent

    @property
    def consecutive_batches(self) -> int:
        return self._aggregates.consecutive_batches

    @property
    def consecutive_without_rare(self) -> int:
        return self.consecutive_pulls_without(self.guaranteed_floor)

    def per_rarity_counts(self) -> Dict[RarityTier, int]:
        return dict(self._aggregates.rarity_counts)

    def append(self, batch: PullBatch) -> bool:
        """Record a successful batch. Failed batches are ignored."""
        if not batch.is_success:
            logger.debug("Ignoring %s batch for %s", batch.status.value, batch.session_id)
            return False
        if len(self._batches) == self._batches.maxlen:
            logger.debug("History full (%s); evicting oldest batch", self.max_size)
        self._batches.append(batch)
        self._aggregates.absorb(batch)
        return True

    def clear(self) -> None:
        self._batches.clear()
        self._aggregates = HistoryAggregates()

    def consecutive_pulls_without(self, rarity: RarityTier) -> int:
        return self._aggregates.pulls_since.get(rarity, 0)

    def pity_state(self, *, floor: RarityTier, ceiling: RarityTier) -> PityState:
        return PityState(
            without_floor=self.consecutive_pulls_without(floor),
            without_ceiling=self.consecutive_pulls_without(ceiling),
        )

    def summary(self) -> HistorySummary:
        return HistorySummary(
            total_pulls=self.total_pulls,
            total_gold_spent=self.total_gold_spent,
            per_rarity_counts=self.per_rarity_counts(),
        )

    def last(self) -> Optional[PullBatch]:
        return self._batches[-1] if self._batches else None

    def recent(self, count: int) -> List[PullBatch]:
        if count <= 0:
            return []
        return list(self._batches)[-count:]

    def in_period(self, start: datetime, end: datetime) -> List[PullBatch]:
        return [batch for batch in self._batches if start <= batch.timestamp <= end]

    def pickup_rate(self, item_ids: Iterable[str]) -> float:
        """Share of buffered draws that produced one of ``item_ids``, in percent."""
        wanted = set(item_ids)
        if not wanted:
            return 0.0
        total = 0
        hits = 0
        for batch in self._batches:
            for record in batch.records:
                total += 1
                if record.item_id in wanted:
                    hits += 1
        return hits / total * 100.0 if total else 0.0

    def restore(self, batches: Iterable[PullBatch], aggregates: Optional[HistoryAggregates] = None) -> None:
        """Load persisted batches; rebuild aggregates by replay when none are given."""
        self.clear()
        if aggregates is None:
            for batch in batches:
                self.append(batch)
            return
        for batch in batches:
            self._batches.append(batch)
        self._aggregates = aggregates

    def statistics_summary(self) -> str:
        summary = self.summary()
        lines = [
            "=== Gacha statistics ===",
            f"Total pulls: {summary.total_pulls}",
            f"Total gold spent: {summary.total_gold_spent:,}",
            f"Average cost: {summary.average_cost_per_pull:.1f} gold/pull",
            f"Batches: {self.consecutive_batches}",
            f"Pulls without {self.guaranteed_floor.label}+: {self.consecutive_without_rare}",
            "",
            "=== By rarity ===",
        ]
        for tier in RarityTier:
            count = summary.per_rarity_counts.get(tier, 0)
            lines.append(f"{tier.label}: {count} ({summary.actual_rate_percent(tier):.2f}%)")
        return "\n".join(lines)


__all__ = ["DEFAULT_MAX_HISTORY", "HistoryAggregates", "HistoryLedger", "HistorySummary"]
