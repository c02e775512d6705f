"""Gacha session orchestration: cost, spend, draws and history."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .catalog import CharacterCatalog
from .config import GachaConfig
from .errors import AtMaxLevel, Disabled, InsufficientFunds, InvalidArgument
from .history import HistoryLedger, HistorySummary
from .ledger import Ledger
from .models import PullBatch, PullRecord, PullStatus, RarityTier, ResultKind
from .pickup import PickupSelector
from .roll import RollEngine, resolve_pity
from .state import GachaSessionState, deserialize_session_state, serialize_session_state

logger = logging.getLogger("gachaspire.session")


@dataclass(frozen=True)
class UpgradePreview:
    current_level: int
    next_level: int
    upgrade_cost: int
    description: str
    can_upgrade: bool
    current_cost: int
    next_cost: int
    current_rates: Mapping[RarityTier, float] = field(default_factory=dict)
    next_rates: Mapping[RarityTier, float] = field(default_factory=dict)

    def rate_changes(self) -> Dict[RarityTier, float]:
        return {
            tier: self.next_rates.get(tier, 0.0) - self.current_rates.get(tier, 0.0)
            for tier in self.current_rates
        }

    def summary(self) -> str:
        lines = [
            f"Level {self.current_level} -> {self.next_level}",
            f"Upgrade cost: {self.upgrade_cost} gold",
            f"Effect: {self.description or 'Level up'}",
            f"Pull cost: {self.current_cost} -> {self.next_cost}",
        ]
        for tier, change in self.rate_changes().items():
            if abs(change) > 0.01:
                sign = "+" if change > 0 else ""
                lines.append(f"{tier.label}: {sign}{change:.2f}%")
        return "\n".join(lines)


@dataclass(frozen=True)
class SystemInfo:
    level: int
    rates: Mapping[RarityTier, float]
    cost: int
    simultaneous_pulls: int
    statistics: str


class GachaSession:
    """One player's gacha state and the operations that mutate it.

    Operations on a session must be serialised by the caller; configuration,
    ledger and catalog are injected and the session holds no global state.
    """

    def __init__(
        self,
        config: GachaConfig,
        ledger: Ledger,
        catalog: CharacterCatalog,
        *,
        rng: Optional[random.Random] = None,
        state: Optional[GachaSessionState] = None,
        session_id: str = "default",
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.catalog = catalog
        self.session_id = session_id
        self.rng = rng if rng is not None else random.Random(config.rng_seed)
        self.state = state or GachaSessionState(
            history=HistoryLedger(config.max_history, guaranteed_floor=config.pity.guaranteed_floor)
        )
        self.engine = RollEngine(config.rates, config.upgrades, config.pity, self.rng)
        self.selector = PickupSelector(catalog, config.pickup)

    @classmethod
    def restore(
        cls,
        config: GachaConfig,
        ledger: Ledger,
        catalog: CharacterCatalog,
        snapshot: Mapping[str, object],
        **kwargs,
    ) -> "GachaSession":
        state = deserialize_session_state(
            snapshot,
            guaranteed_floor=config.pity.guaranteed_floor,
            max_level=config.max_level,
        )
        return cls(config, ledger, catalog, state=state, **kwargs)

    # Queries ----------------------------------------------------------

    @property
    def current_level(self) -> int:
        return self.state.level

    @property
    def history(self) -> HistoryLedger:
        return self.state.history

    @property
    def last_batch(self) -> Optional[PullBatch]:
        return self.state.last_batch

    def cost_for_level(self, level: int) -> int:
        if self.config.free_pulls:
            return 0
        reduction = self.config.upgrades.cost_reduction(level)
        return int(round(self.config.base_cost * (1.0 - reduction)))

    def current_cost(self) -> int:
        return self.cost_for_level(self.state.level)

    def simultaneous_pulls(self) -> int:
        return self.config.upgrades.simultaneous_pulls(self.state.level)

    def upgrade_cost(self) -> int:
        return self.config.upgrades.upgrade_cost(self.state.level)

    def current_rates(self) -> Dict[RarityTier, float]:
        return self.config.rates.rates_for_level(self.state.level, self.config.upgrades)

    def can_pull(self, count: int = 1) -> bool:
        if not self.config.active or count <= 0:
            return False
        return self.ledger.current_balance() >= self.current_cost() * count

    def can_upgrade(self) -> bool:
        if self.state.level >= self.config.max_level:
            return False
        return self.ledger.current_balance() >= self.upgrade_cost()

    def history_summary(self) -> HistorySummary:
        return self.state.history.summary()

    def upgrade_preview(self) -> UpgradePreview:
        level = self.state.level
        next_level = min(level + 1, self.config.max_level)
        upgrades = self.config.upgrades
        return UpgradePreview(
            current_level=level,
            next_level=next_level,
            upgrade_cost=self.upgrade_cost(),
            description=upgrades.describe(next_level) if next_level > level else "",
            can_upgrade=self.can_upgrade(),
            current_cost=self.cost_for_level(level),
            next_cost=self.cost_for_level(next_level),
            current_rates=self.config.rates.rates_for_level(level, upgrades),
            next_rates=self.config.rates.rates_for_level(next_level, upgrades),
        )

    def system_info(self) -> SystemInfo:
        return SystemInfo(
            level=self.state.level,
            rates=self.current_rates(),
            cost=self.current_cost(),
            simultaneous_pulls=self.simultaneous_pulls(),
            statistics=self.state.history.statistics_summary(),
        )

    def snapshot(self) -> Dict[str, object]:
        return serialize_session_state(self.state)

    # Operations -------------------------------------------------------

    def pull(self, count: int = 1) -> PullBatch:
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise InvalidArgument(f"Pull count must be a positive integer (got {count!r}).")
        if not self.config.active:
            raise Disabled(f"{self.config.display_name} is not active.")

        level = self.state.level
        per_pull = self.config.upgrades.simultaneous_pulls(level)
        total_draws = count * per_pull
        total_cost = self.cost_for_level(level) * count

        if not self.ledger.try_spend(total_cost):
            failed = PullBatch(
                session_id=self.session_id,
                records=(),
                gold_spent=0,
                level=level,
                status=PullStatus.INSUFFICIENT_GOLD,
            )
            self.state.last_batch = failed
            logger.warning(
                "Session %s cannot afford %s pull(s): need %s, have %s",
                self.session_id,
                count,
                total_cost,
                self.ledger.current_balance(),
            )
            raise InsufficientFunds(
                f"Not enough gold: {total_cost} required.",
                required=total_cost,
                batch=failed,
            )

        try:
            records = self._draw(level, total_draws, per_pull)
        except Exception:
            logger.exception("Draw failed for session %s; refunding %s gold", self.session_id, total_cost)
            if total_cost:
                self.ledger.credit(total_cost)
            raise

        batch = PullBatch(
            session_id=self.session_id,
            records=tuple(records),
            gold_spent=total_cost,
            level=level,
        )
        self.state.history.append(batch)
        self.state.last_batch = batch
        logger.info(
            "Session %s pulled %s (x%s draws) for %s gold; best %s%s%s",
            self.session_id,
            count,
            per_pull,
            total_cost,
            batch.highest_rarity.label if batch.highest_rarity else "none",
            " [guaranteed]" if batch.was_guaranteed else "",
            " [ceiling]" if batch.was_ceiling else "",
        )
        return batch

    def _draw(self, level: int, total_draws: int, per_pull: int) -> List[PullRecord]:
        thresholds = resolve_pity(self.config.pity, self.config.upgrades, level)
        pity = self.state.history.pity_state(
            floor=thresholds.guaranteed_floor,
            ceiling=thresholds.ceiling_rarity,
        )
        pickup_bonus = self.config.upgrades.pickup_rate_bonus(level)

        records: List[PullRecord] = []
        for index in range(total_draws):
            rarity, kind = self.engine.resolve(level, pity)
            item_id, picked = self.selector.select_or_none(rarity, self.rng, rate_bonus=pickup_bonus)
            if kind is ResultKind.NORMAL and index % per_pull:
                kind = ResultKind.BONUS
            if picked and kind in (ResultKind.NORMAL, ResultKind.BONUS):
                kind = ResultKind.PICKUP
            records.append(PullRecord(item_id=item_id, rarity=rarity, kind=kind, pickup=picked))
            pity = self.engine.advance(level, pity, rarity)
        return records

    def upgrade(self) -> int:
        level = self.state.level
        if level >= self.config.max_level:
            raise AtMaxLevel(f"Already at max level {self.config.max_level}.")
        cost = self.config.upgrades.upgrade_cost(level)
        if not self.ledger.try_spend(cost):
            logger.warning("Session %s cannot afford upgrade to %s (%s gold)", self.session_id, level + 1, cost)
            raise InsufficientFunds(f"Not enough gold: {cost} required to upgrade.", required=cost)
        self.state.level = level + 1
        logger.info("Session %s upgraded to level %s for %s gold", self.session_id, self.state.level, cost)
        return self.state.level

    def reset(self) -> None:
        self.state.level = 1
        self.state.history.clear()
        self.state.last_batch = None
        logger.info("Session %s reset", self.session_id)


__all__ = ["GachaSession", "SystemInfo", "UpgradePreview"]
