"""Enums and immutable records shared by the gacha engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RarityTier(IntEnum):
    COMMON = 1
    UNCOMMON = 2
    RARE = 3
    EPIC = 4
    LEGENDARY = 5

    @classmethod
    def parse(cls, value: object) -> "RarityTier":
        """Accept a member, its integer value, or a case-insensitive name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        text = str(value or "").strip().upper()
        try:
            return cls[text]
        except KeyError:
            raise ValueError(f"Unknown rarity '{value}'") from None

    @property
    def label(self) -> str:
        return self.name.title()


class UpgradeType(Enum):
    RATE_BONUS = "rate_bonus"
    COST_REDUCTION = "cost_reduction"
    SIMULTANEOUS_PULL = "simultaneous_pull"
    GUARANTEED_RARE = "guaranteed_rare"
    PICKUP = "pickup"
    CEILING_REDUCTION = "ceiling_reduction"


class ResultKind(Enum):
    NORMAL = "normal"
    GUARANTEED = "guaranteed"
    CEILING = "ceiling"
    PICKUP = "pickup"
    BONUS = "bonus"


class PullStatus(Enum):
    SUCCESS = "success"
    INSUFFICIENT_GOLD = "insufficient_gold"
    DISABLED = "disabled"


@dataclass(frozen=True)
class DropRateEntry:
    rarity: RarityTier
    base_rate: float
    per_level_bonus: float = 0.0
    weight: int = 1


@dataclass(frozen=True)
class UpgradeEffect:
    type: UpgradeType
    value: float
    target_rarity: Optional[RarityTier] = None


@dataclass(frozen=True)
class UpgradeLevel:
    level: int
    cost: int
    description: str = ""
    effects: Tuple[UpgradeEffect, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PityConfig:
    ceiling_enabled: bool = True
    ceiling_count: int = 100
    ceiling_rarity: RarityTier = RarityTier.EPIC
    guaranteed_rare_count: int = 20
    guaranteed_floor: RarityTier = RarityTier.RARE


@dataclass(frozen=True)
class PickupConfig:
    enabled: bool = False
    item_ids: Tuple[str, ...] = field(default_factory=tuple)
    rate_percent: float = 2.0


@dataclass(frozen=True)
class PityState:
    """Pull counters since the last guarantee-floor and ceiling-tier results."""

    without_floor: int = 0
    without_ceiling: int = 0

    def advance(self, rarity: RarityTier, *, floor: RarityTier, ceiling: RarityTier) -> "PityState":
        return PityState(
            without_floor=0 if rarity >= floor else self.without_floor + 1,
            without_ceiling=0 if rarity >= ceiling else self.without_ceiling + 1,
        )


@dataclass(frozen=True)
class PullRecord:
    item_id: Optional[str]
    rarity: RarityTier
    kind: ResultKind = ResultKind.NORMAL
    pickup: bool = False

    def describe(self) -> str:
        name = self.item_id or "(nothing)"
        text = f"{name} ({self.rarity.label})"
        if self.kind is not ResultKind.NORMAL:
            text += f" [{self.kind.value}]"
        if self.pickup and self.kind is not ResultKind.PICKUP:
            text += " [pickup]"
        return text


@dataclass(frozen=True)
class PullBatch:
    session_id: str
    records: Tuple[PullRecord, ...]
    gold_spent: int
    level: int
    timestamp: datetime = field(default_factory=utc_now)
    status: PullStatus = PullStatus.SUCCESS

    @property
    def is_success(self) -> bool:
        return self.status is PullStatus.SUCCESS

    @property
    def total_pulls(self) -> int:
        return len(self.records)

    @property
    def was_guaranteed(self) -> bool:
        return any(record.kind is ResultKind.GUARANTEED for record in self.records)

    @property
    def was_ceiling(self) -> bool:
        return any(record.kind is ResultKind.CEILING for record in self.records)

    @property
    def empty_draws(self) -> int:
        """Number of draws whose tier had no catalog items."""
        return sum(1 for record in self.records if record.item_id is None)

    @property
    def highest_rarity(self) -> Optional[RarityTier]:
        if not self.records:
            return None
        return max(record.rarity for record in self.records)

    def count_of(self, rarity: RarityTier) -> int:
        return sum(1 for record in self.records if record.rarity == rarity)

    def rarity_counts(self) -> Dict[RarityTier, int]:
        return {tier: self.count_of(tier) for tier in RarityTier}

    def item_ids(self) -> Tuple[Optional[str], ...]:
        return tuple(record.item_id for record in self.records)

    def summary(self) -> str:
        if not self.is_success:
            return f"Pull failed: {self.status.value}"
        lines = [
            f"Level {self.level} pull",
            f"Gold spent: {self.gold_spent}",
            f"Draws: {self.total_pulls}",
        ]
        for tier, count in self.rarity_counts().items():
            if count:
                lines.append(f"{tier.label}: {count}")
        if self.was_guaranteed:
            lines.append("Guarantee triggered")
        if self.was_ceiling:
            lines.append("Ceiling triggered")
        return "\n".join(lines)


__all__ = [
    "DropRateEntry",
    "PickupConfig",
    "PityConfig",
    "PityState",
    "PullBatch",
    "PullRecord",
    "PullStatus",
    "RarityTier",
    "ResultKind",
    "UpgradeEffect",
    "UpgradeLevel",
    "UpgradeType",
    "utc_now",
]
