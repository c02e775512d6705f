"""Per-rarity drop rates and their validation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ConfigError, ConfigErrorCode, ConfigProblem
from .models import DropRateEntry, RarityTier

if TYPE_CHECKING:
    from .upgrades import UpgradeLedger

RATE_SUM_TARGET = 100.0
RATE_SUM_TOLERANCE = 0.01


class RateTable:
    """Immutable lookup of drop rates keyed by rarity tier."""

    def __init__(self, entries: Iterable[DropRateEntry]):
        by_rarity: Dict[RarityTier, DropRateEntry] = {}
        duplicates: List[RarityTier] = []
        for entry in entries:
            if entry.rarity in by_rarity:
                duplicates.append(entry.rarity)
            by_rarity[entry.rarity] = entry
        self._entries = by_rarity
        self._duplicates = tuple(duplicates)

    @classmethod
    def from_rates(
        cls,
        rates: Mapping[RarityTier, float],
        *,
        bonus: Optional[Mapping[RarityTier, float]] = None,
        weights: Optional[Mapping[RarityTier, int]] = None,
    ) -> "RateTable":
        """Build a table from plain mappings; missing bonus/weight default to 0/1."""
        bonus = bonus or {}
        weights = weights or {}
        return cls(
            DropRateEntry(
                rarity=RarityTier.parse(rarity),
                base_rate=float(rate),
                per_level_bonus=float(bonus.get(rarity, 0.0)),
                weight=int(weights.get(rarity, 1)),
            )
            for rarity, rate in rates.items()
        )

    def __contains__(self, rarity: object) -> bool:
        return rarity in self._entries

    def entries(self) -> Tuple[DropRateEntry, ...]:
        return tuple(self._entries[tier] for tier in self.tiers())

    def tiers(self) -> Tuple[RarityTier, ...]:
        """Configured tiers, lowest first."""
        return tuple(sorted(self._entries))

    def lowest_tier(self) -> RarityTier:
        tiers = self.tiers()
        return tiers[0] if tiers else RarityTier.COMMON

    def base_rate(self, rarity: RarityTier) -> float:
        entry = self._entries.get(rarity)
        return entry.base_rate if entry else 0.0

    def weight(self, rarity: RarityTier) -> int:
        entry = self._entries.get(rarity)
        return entry.weight if entry else 0

    def level_bonus(self, level: int, rarity: RarityTier) -> float:
        entry = self._entries.get(rarity)
        return entry.per_level_bonus * level if entry else 0.0

    def effective_rate(
        self,
        level: int,
        rarity: RarityTier,
        upgrades: Optional["UpgradeLedger"] = None,
    ) -> float:
        if rarity not in self._entries:
            return 0.0
        rate = self.base_rate(rarity) + self.level_bonus(level, rarity)
        if upgrades is not None:
            rate += upgrades.rate_bonus(level, rarity)
        return rate

    def rates_for_level(
        self,
        level: int,
        upgrades: Optional["UpgradeLedger"] = None,
    ) -> Dict[RarityTier, float]:
        return {tier: self.effective_rate(level, tier, upgrades) for tier in self.tiers()}

    def problems(self) -> List[ConfigProblem]:
        problems: List[ConfigProblem] = []
        if not self._entries:
            problems.append((ConfigErrorCode.RATES_DO_NOT_SUM_TO_100, "No drop rates are configured."))
            return problems
        for rarity in self._duplicates:
            problems.append((ConfigErrorCode.INVALID_VALUE, f"Rarity {rarity.label} is configured more than once."))
        total = sum(entry.base_rate for entry in self._entries.values())
        if abs(total - RATE_SUM_TARGET) > RATE_SUM_TOLERANCE:
            problems.append(
                (
                    ConfigErrorCode.RATES_DO_NOT_SUM_TO_100,
                    f"Base drop rates must sum to 100% (currently {total:.2f}%).",
                )
            )
        for entry in self.entries():
            if entry.base_rate < 0:
                problems.append((ConfigErrorCode.NEGATIVE_RATE, f"Rarity {entry.rarity.label} has a negative rate."))
            if entry.per_level_bonus < 0:
                problems.append(
                    (ConfigErrorCode.NEGATIVE_RATE, f"Rarity {entry.rarity.label} has a negative level bonus.")
                )
            if entry.weight <= 0:
                problems.append(
                    (ConfigErrorCode.NON_POSITIVE_WEIGHT, f"Rarity {entry.rarity.label} must have a weight above 0.")
                )
        return problems

    def validate(self) -> None:
        problems = self.problems()
        if problems:
            raise ConfigError(problems)


__all__ = ["RATE_SUM_TARGET", "RATE_SUM_TOLERANCE", "RateTable"]
