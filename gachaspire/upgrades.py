"""Per-level gacha upgrades and the cumulative effects they grant."""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import ConfigError, ConfigErrorCode, ConfigProblem
from .models import RarityTier, UpgradeEffect, UpgradeLevel, UpgradeType

# Hard design rule, not configurable.
MAX_COST_REDUCTION = 0.5


class UpgradeLedger:
    """Ordered upgrade entries; every query is a pure function of the level."""

    def __init__(self, levels: Iterable[UpgradeLevel], *, max_level: int = 10):
        ordered = sorted(levels, key=lambda entry: entry.level)
        self.max_level = max_level
        self._levels: Tuple[UpgradeLevel, ...] = tuple(ordered)
        self._by_level: Dict[int, UpgradeLevel] = {}
        for entry in ordered:
            self._by_level.setdefault(entry.level, entry)

    @classmethod
    def from_levels(
        cls,
        levels: Dict[int, Iterable[UpgradeEffect]],
        *,
        cost: int = 0,
        max_level: int = 10,
    ) -> "UpgradeLedger":
        """Build a ledger from ``{level: effects}`` with a flat upgrade cost."""
        return cls(
            (UpgradeLevel(level=level, cost=cost, effects=tuple(effects)) for level, effects in levels.items()),
            max_level=max_level,
        )

    def __iter__(self) -> Iterator[UpgradeLevel]:
        return iter(self._levels)

    def __len__(self) -> int:
        return len(self._levels)

    def entry(self, level: int) -> Optional[UpgradeLevel]:
        return self._by_level.get(level)

    def _effects_up_to(self, level: int, effect_type: UpgradeType) -> Iterator[UpgradeEffect]:
        for entry in self._levels:
            if entry.level > level:
                break
            if self._by_level.get(entry.level) is not entry:
                continue
            for effect in entry.effects:
                if effect.type is effect_type:
                    yield effect

    def _total(self, level: int, effect_type: UpgradeType) -> float:
        return sum(effect.value for effect in self._effects_up_to(level, effect_type))

    def cost_reduction(self, level: int) -> float:
        return min(self._total(level, UpgradeType.COST_REDUCTION), MAX_COST_REDUCTION)

    def simultaneous_pulls(self, level: int) -> int:
        return 1 + sum(int(effect.value) for effect in self._effects_up_to(level, UpgradeType.SIMULTANEOUS_PULL))

    def upgrade_cost(self, level: int) -> int:
        if level >= self.max_level:
            return 0
        entry = self.entry(level + 1)
        return entry.cost if entry else 0

    def rate_bonus(self, level: int, rarity: RarityTier) -> float:
        return sum(
            effect.value
            for effect in self._effects_up_to(level, UpgradeType.RATE_BONUS)
            if effect.target_rarity == rarity
        )

    def ceiling_reduction(self, level: int) -> int:
        return int(self._total(level, UpgradeType.CEILING_REDUCTION))

    def guaranteed_rare_reduction(self, level: int) -> int:
        return int(self._total(level, UpgradeType.GUARANTEED_RARE))

    def pickup_rate_bonus(self, level: int) -> float:
        return self._total(level, UpgradeType.PICKUP)

    def describe(self, level: int) -> str:
        entry = self.entry(level)
        if entry is None:
            return ""
        if entry.description:
            return entry.description
        return ", ".join(_describe_effect(effect) for effect in entry.effects)

    def problems(self) -> List[ConfigProblem]:
        problems: List[ConfigProblem] = []
        if self.max_level < 1:
            problems.append((ConfigErrorCode.INVALID_VALUE, "max_level must be at least 1."))
        counts = Counter(entry.level for entry in self._levels)
        for level, count in sorted(counts.items()):
            if count > 1:
                problems.append((ConfigErrorCode.DUPLICATE_UPGRADE_LEVEL, f"Upgrade level {level} is defined {count} times."))
        for entry in self._levels:
            if entry.level < 1:
                problems.append((ConfigErrorCode.INVALID_UPGRADE_LEVEL, f"Upgrade level {entry.level} must be 1 or higher."))
            if entry.cost < 0:
                problems.append((ConfigErrorCode.INVALID_VALUE, f"Upgrade level {entry.level} has a negative cost."))
            for effect in entry.effects:
                if effect.type is UpgradeType.RATE_BONUS and effect.target_rarity is None:
                    problems.append(
                        (ConfigErrorCode.UNKNOWN_RARITY, f"Rate bonus at level {entry.level} has no target rarity.")
                    )
        return problems

    def validate(self) -> None:
        problems = self.problems()
        if problems:
            raise ConfigError(problems)


def _describe_effect(effect: UpgradeEffect) -> str:
    if effect.type is UpgradeType.COST_REDUCTION:
        return f"-{effect.value * 100:g}% cost"
    if effect.type is UpgradeType.SIMULTANEOUS_PULL:
        return f"+{int(effect.value)} draws per pull"
    if effect.type is UpgradeType.RATE_BONUS and effect.target_rarity is not None:
        return f"+{effect.value:g}% {effect.target_rarity.label}"
    if effect.type is UpgradeType.CEILING_REDUCTION:
        return f"ceiling -{int(effect.value)}"
    if effect.type is UpgradeType.GUARANTEED_RARE:
        return f"guarantee -{int(effect.value)}"
    return f"{effect.type.value} {effect.value:g}"


__all__ = ["MAX_COST_REDUCTION", "UpgradeLedger"]
