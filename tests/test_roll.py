import unittest

from gachaspire.config import DEFAULT_DROP_RATES
from gachaspire.models import PityConfig, PityState, RarityTier, ResultKind, UpgradeEffect, UpgradeType
from gachaspire.rates import RateTable
from gachaspire.roll import RollEngine, resolve_pity
from gachaspire.upgrades import UpgradeLedger

from support import ROLL_COMMON, ROLL_EPIC, ROLL_LEGENDARY, ROLL_RARE, ROLL_UNCOMMON, ScriptedRandom

PITY = PityConfig(
    ceiling_enabled=True,
    ceiling_count=10,
    ceiling_rarity=RarityTier.EPIC,
    guaranteed_rare_count=5,
    guaranteed_floor=RarityTier.RARE,
)


class RollEngineTests(unittest.TestCase):
    def _engine(self, *values: float, pity: PityConfig = PITY, upgrades: UpgradeLedger = None) -> RollEngine:
        return RollEngine(
            RateTable.from_rates(DEFAULT_DROP_RATES),
            upgrades or UpgradeLedger([]),
            pity,
            ScriptedRandom(values),
        )

    def test_weighted_roll_walks_highest_tier_first(self) -> None:
        engine = self._engine(ROLL_LEGENDARY, ROLL_EPIC, ROLL_RARE, ROLL_UNCOMMON, ROLL_COMMON)
        rolled = [engine.weighted_roll(1) for _ in range(5)]
        self.assertEqual(
            rolled,
            [RarityTier.LEGENDARY, RarityTier.EPIC, RarityTier.RARE, RarityTier.UNCOMMON, RarityTier.COMMON],
        )

    def test_boundary_roll_goes_to_higher_tier(self) -> None:
        engine = RollEngine(
            RateTable.from_rates({RarityTier.COMMON: 50.0, RarityTier.RARE: 50.0}),
            UpgradeLedger([]),
            PITY,
            ScriptedRandom([0.5]),
        )
        self.assertEqual(engine.weighted_roll(1), RarityTier.RARE)

    def test_shortfall_falls_back_to_lowest_tier(self) -> None:
        engine = RollEngine(
            RateTable.from_rates({RarityTier.UNCOMMON: 30.0, RarityTier.RARE: 10.0}),
            UpgradeLedger([]),
            PITY,
            ScriptedRandom([0.9]),
        )
        with self.assertLogs("gachaspire.roll", level="WARNING"):
            self.assertEqual(engine.weighted_roll(1), RarityTier.UNCOMMON)

    def test_guarantee_fires_on_threshold_draw(self) -> None:
        engine = self._engine(ROLL_COMMON)
        self.assertEqual(engine.resolve(1, PityState(without_floor=3)), (RarityTier.COMMON, ResultKind.NORMAL))
        self.assertEqual(
            engine.resolve(1, PityState(without_floor=4)),
            (RarityTier.RARE, ResultKind.GUARANTEED),
        )

    def test_ceiling_takes_precedence_over_guarantee(self) -> None:
        engine = self._engine()
        rarity, kind = engine.resolve(1, PityState(without_floor=4, without_ceiling=10))
        self.assertEqual((rarity, kind), (RarityTier.EPIC, ResultKind.CEILING))

    def test_disabled_ceiling_never_fires(self) -> None:
        pity = PityConfig(ceiling_enabled=False, ceiling_count=1, guaranteed_rare_count=100)
        engine = self._engine(ROLL_COMMON, pity=pity)
        self.assertEqual(engine.resolve(1, PityState(without_ceiling=500))[1], ResultKind.NORMAL)

    def test_upgrades_shorten_pity_but_not_below_one(self) -> None:
        upgrades = UpgradeLedger.from_levels(
            {
                2: [UpgradeEffect(UpgradeType.CEILING_REDUCTION, 4)],
                3: [UpgradeEffect(UpgradeType.GUARANTEED_RARE, 50), UpgradeEffect(UpgradeType.CEILING_REDUCTION, 50)],
            }
        )
        self.assertEqual(resolve_pity(PITY, upgrades, 2).ceiling_count, 6)
        thresholds = resolve_pity(PITY, upgrades, 3)
        self.assertEqual(thresholds.guaranteed_count, 1)
        self.assertEqual(thresholds.ceiling_count, 1)

    def test_advance_resets_on_qualifying_rarity(self) -> None:
        engine = self._engine()
        state = PityState(without_floor=3, without_ceiling=8)
        self.assertEqual(engine.advance(1, state, RarityTier.COMMON), PityState(4, 9))
        self.assertEqual(engine.advance(1, state, RarityTier.RARE), PityState(0, 9))
        self.assertEqual(engine.advance(1, state, RarityTier.LEGENDARY), PityState(0, 0))


if __name__ == "__main__":
    unittest.main()
