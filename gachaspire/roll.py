"""Rarity resolution for a single draw."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional, Tuple

from .models import PityConfig, PityState, RarityTier, ResultKind
from .rates import RateTable
from .upgrades import UpgradeLedger

logger = logging.getLogger("gachaspire.roll")


@dataclass(frozen=True)
class ResolvedPity:
    """Pity thresholds after level-based reductions."""

    ceiling_enabled: bool
    ceiling_count: int
    ceiling_rarity: RarityTier
    guaranteed_count: int
    guaranteed_floor: RarityTier


def resolve_pity(pity: PityConfig, upgrades: UpgradeLedger, level: int) -> ResolvedPity:
    return ResolvedPity(
        ceiling_enabled=pity.ceiling_enabled,
        ceiling_count=max(1, pity.ceiling_count - upgrades.ceiling_reduction(level)),
        ceiling_rarity=pity.ceiling_rarity,
        guaranteed_count=max(1, pity.guaranteed_rare_count - upgrades.guaranteed_rare_reduction(level)),
        guaranteed_floor=pity.guaranteed_floor,
    )


class RollEngine:
    """Resolves one rarity per draw: overrides first, then a weighted roll.

    The RNG is injected so that draw sequences are reproducible.
    """

    def __init__(
        self,
        rates: RateTable,
        upgrades: UpgradeLedger,
        pity: PityConfig,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.rates = rates
        self.upgrades = upgrades
        self.pity = pity
        self.rng = rng if rng is not None else random.Random()

    def resolve(self, level: int, state: PityState) -> Tuple[RarityTier, ResultKind]:
        thresholds = resolve_pity(self.pity, self.upgrades, level)

        if thresholds.ceiling_enabled and state.without_ceiling >= thresholds.ceiling_count:
            logger.debug(
                "Ceiling override after %s pulls -> %s",
                state.without_ceiling,
                thresholds.ceiling_rarity.label,
            )
            return thresholds.ceiling_rarity, ResultKind.CEILING

        # The draw being resolved counts toward the guarantee.
        if state.without_floor + 1 >= thresholds.guaranteed_count:
            logger.debug(
                "Guarantee override after %s pulls -> %s",
                state.without_floor,
                thresholds.guaranteed_floor.label,
            )
            return thresholds.guaranteed_floor, ResultKind.GUARANTEED

        return self.weighted_roll(level), ResultKind.NORMAL

    def weighted_roll(self, level: int) -> RarityTier:
        roll = self.rng.random() * 100.0
        cumulative = 0.0
        # Highest tier first; it wins exact ties on the boundary.
        for tier in reversed(self.rates.tiers()):
            cumulative += self.rates.effective_rate(level, tier, self.upgrades)
            if cumulative >= roll:
                logger.debug("Roll %.4f landed %s (cumulative %.4f)", roll, tier.label, cumulative)
                return tier

        fallback = self.rates.lowest_tier()
        logger.warning(
            "Roll %.4f exceeded cumulative rate %.4f at level %s; falling back to %s",
            roll,
            cumulative,
            level,
            fallback.label,
        )
        return fallback

    def advance(self, level: int, state: PityState, rarity: RarityTier) -> PityState:
        thresholds = resolve_pity(self.pity, self.upgrades, level)
        return state.advance(rarity, floor=thresholds.guaranteed_floor, ceiling=thresholds.ceiling_rarity)


__all__ = ["ResolvedPity", "RollEngine", "resolve_pity"]
