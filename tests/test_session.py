import random
import subprocess
import sys
import unittest
from pathlib import Path

from gachaspire.catalog import ConfigCatalog
from gachaspire.errors import AtMaxLevel, Disabled, InsufficientFunds, InvalidArgument
from gachaspire.models import (
    PickupConfig,
    PityConfig,
    PullStatus,
    RarityTier,
    ResultKind,
    UpgradeEffect,
    UpgradeLevel,
    UpgradeType,
)

from support import ROLL_EPIC, ScriptedRandom, make_config, make_session


class ExplodingCatalog:
    def items_of_rarity(self, rarity):
        raise RuntimeError("catalog offline")

    def is_pickup_eligible(self, item_id):
        return False


class GachaSessionPullTests(unittest.TestCase):
    def test_non_positive_count_is_rejected_without_side_effects(self) -> None:
        session = make_session(balance=500)
        for count in (0, -1, True, 1.5):
            with self.assertRaises(InvalidArgument):
                session.pull(count)
        self.assertEqual(session.ledger.current_balance(), 500)
        self.assertEqual(len(session.history), 0)
        self.assertIsNone(session.last_batch)

    def test_guarantee_fires_on_fifth_pull_after_four_commons(self) -> None:
        session = make_session()
        for _ in range(4):
            batch = session.pull(1)
            self.assertEqual(batch.records[0].rarity, RarityTier.COMMON)
            self.assertEqual(batch.records[0].kind, ResultKind.NORMAL)

        batch = session.pull(1)
        record = batch.records[0]
        self.assertGreaterEqual(record.rarity, RarityTier.RARE)
        self.assertEqual(record.kind, ResultKind.GUARANTEED)
        self.assertEqual(record.item_id, "knight")
        self.assertTrue(batch.was_guaranteed)
        self.assertEqual(session.history.consecutive_without_rare, 0)

    def test_counter_without_rare_never_reaches_threshold(self) -> None:
        config = make_config(pity=PityConfig(ceiling_enabled=False, guaranteed_rare_count=5))
        session = make_session(config)
        for count in (1, 3, 2, 4, 1, 5):
            session.pull(count)
            self.assertLess(session.history.consecutive_without_rare, 5)

    def test_ceiling_forces_ceiling_rarity(self) -> None:
        config = make_config(
            pity=PityConfig(
                ceiling_enabled=True,
                ceiling_count=10,
                ceiling_rarity=RarityTier.EPIC,
                guaranteed_rare_count=50,
            )
        )
        session = make_session(config)
        records = []
        for _ in range(10):
            records.extend(session.pull(4).records)

        run = 0
        for record in records:
            run = 0 if record.rarity >= RarityTier.EPIC else run + 1
            self.assertLessEqual(run, 10)
        ceilings = [index for index, record in enumerate(records) if record.kind is ResultKind.CEILING]
        self.assertEqual(ceilings, [10, 21, 32])
        self.assertTrue(all(records[index].rarity == RarityTier.EPIC for index in ceilings))

    def test_insufficient_funds_records_failed_batch(self) -> None:
        session = make_session(balance=150)
        with self.assertRaises(InsufficientFunds) as ctx:
            session.pull(2)
        self.assertEqual(ctx.exception.required, 200)
        self.assertIs(session.last_batch, ctx.exception.batch)
        self.assertEqual(session.last_batch.status, PullStatus.INSUFFICIENT_GOLD)
        self.assertEqual(session.ledger.current_balance(), 150)
        self.assertEqual(len(session.history), 0)

    def test_successful_pull_spends_and_records(self) -> None:
        session = make_session(balance=1000)
        batch = session.pull(3)
        self.assertEqual(batch.gold_spent, 300)
        self.assertEqual(batch.total_pulls, 3)
        self.assertEqual(session.ledger.current_balance(), 700)
        self.assertIs(session.last_batch, batch)
        self.assertIs(session.history.last(), batch)
        self.assertEqual(session.history_summary().total_pulls, 3)

    def test_simultaneous_pull_extras_are_bonus_draws(self) -> None:
        upgrades = [UpgradeLevel(level=2, cost=0, effects=(UpgradeEffect(UpgradeType.SIMULTANEOUS_PULL, 1),))]
        session = make_session(make_config(upgrades=upgrades, max_level=2), balance=1000)
        session.state.level = 2
        batch = session.pull(2)
        self.assertEqual(batch.gold_spent, 200)
        self.assertEqual(
            [record.kind for record in batch.records],
            [ResultKind.NORMAL, ResultKind.BONUS, ResultKind.NORMAL, ResultKind.BONUS],
        )

    def test_pickup_draw_is_marked(self) -> None:
        config = make_config(pickup=PickupConfig(enabled=True, item_ids=("seraphine",), rate_percent=100.0))
        session = make_session(config, rng=ScriptedRandom([ROLL_EPIC, 0.1]))
        record = session.pull(1).records[0]
        self.assertEqual((record.item_id, record.kind, record.pickup), ("seraphine", ResultKind.PICKUP, True))

    def test_ceiling_draw_can_land_pickup_item(self) -> None:
        config = make_config(
            pity=PityConfig(
                ceiling_enabled=True,
                ceiling_count=2,
                ceiling_rarity=RarityTier.EPIC,
                guaranteed_rare_count=50,
            ),
            pickup=PickupConfig(enabled=True, item_ids=("seraphine",), rate_percent=100.0),
        )
        batch = make_session(config).pull(3)
        record = batch.records[2]
        self.assertIs(record.kind, ResultKind.CEILING)
        self.assertTrue(record.pickup)
        self.assertEqual((record.item_id, record.rarity), ("seraphine", RarityTier.EPIC))
        self.assertTrue(batch.was_ceiling)

    def test_guaranteed_draw_keeps_kind_when_picked_up(self) -> None:
        config = make_config(
            pity=PityConfig(ceiling_enabled=False, guaranteed_rare_count=2, guaranteed_floor=RarityTier.EPIC),
            pickup=PickupConfig(enabled=True, item_ids=("seraphine",), rate_percent=100.0),
        )
        record = make_session(config).pull(2).records[1]
        self.assertEqual((record.kind, record.pickup, record.item_id), (ResultKind.GUARANTEED, True, "seraphine"))

    def test_inactive_gacha_is_disabled(self) -> None:
        session = make_session(make_config(active=False), balance=500)
        with self.assertRaises(Disabled):
            session.pull(1)
        self.assertEqual(session.ledger.current_balance(), 500)
        self.assertFalse(session.can_pull())

    def test_empty_catalog_records_empty_draws(self) -> None:
        session = make_session(catalog=ConfigCatalog([]))
        batch = session.pull(2)
        self.assertEqual(batch.item_ids(), (None, None))
        self.assertEqual(batch.empty_draws, 2)

    def test_failed_draw_refunds_gold(self) -> None:
        session = make_session(balance=500, catalog=ExplodingCatalog())
        with self.assertRaises(RuntimeError):
            session.pull(2)
        self.assertEqual(session.ledger.current_balance(), 500)
        self.assertEqual(len(session.history), 0)

    def test_seeded_sessions_are_reproducible(self) -> None:
        first = make_session(rng=random.Random(42))
        second = make_session(rng=random.Random(42))
        self.assertEqual(first.pull(10).records, second.pull(10).records)


class GachaSessionUpgradeTests(unittest.TestCase):
    def _session(self, balance: int):
        upgrades = [
            UpgradeLevel(level=2, cost=500, effects=(UpgradeEffect(UpgradeType.COST_REDUCTION, 0.2),)),
        ]
        return make_session(make_config(upgrades=upgrades, max_level=2), balance=balance)

    def test_upgrade_spends_and_levels_up(self) -> None:
        session = self._session(1000)
        self.assertTrue(session.can_upgrade())
        self.assertEqual(session.upgrade(), 2)
        self.assertEqual(session.ledger.current_balance(), 500)
        self.assertEqual(session.current_cost(), 80)

    def test_upgrade_at_max_level_spends_nothing(self) -> None:
        session = self._session(1000)
        session.upgrade()
        with self.assertRaises(AtMaxLevel):
            session.upgrade()
        self.assertEqual(session.current_level, 2)
        self.assertEqual(session.ledger.current_balance(), 500)
        self.assertFalse(session.can_upgrade())

    def test_upgrade_without_gold_keeps_level(self) -> None:
        session = self._session(100)
        with self.assertRaises(InsufficientFunds):
            session.upgrade()
        self.assertEqual(session.current_level, 1)
        self.assertEqual(session.ledger.current_balance(), 100)

    def test_preview_describes_next_level(self) -> None:
        preview = self._session(1000).upgrade_preview()
        self.assertEqual((preview.current_level, preview.next_level), (1, 2))
        self.assertEqual((preview.current_cost, preview.next_cost), (100, 80))
        self.assertEqual(preview.upgrade_cost, 500)
        self.assertIn("-20% cost", preview.summary())

    def test_reset_clears_level_and_history(self) -> None:
        session = self._session(2000)
        session.upgrade()
        session.pull(1)
        session.reset()
        self.assertEqual(session.current_level, 1)
        self.assertEqual(session.history.total_pulls, 0)
        self.assertIsNone(session.last_batch)

    def test_system_info(self) -> None:
        info = self._session(1000).system_info()
        self.assertEqual(info.level, 1)
        self.assertEqual(info.cost, 100)
        self.assertEqual(info.simultaneous_pulls, 1)
        self.assertIn("Total pulls: 0", info.statistics)


class EngineImportTests(unittest.TestCase):
    def test_engine_core_does_not_load_discord(self) -> None:
        code = (
            "import sys\n"
            "import gachaspire.config, gachaspire.session, gachaspire.state\n"
            "print('discord' in sys.modules)\n"
        )
        result = subprocess.run(
            [sys.executable, "-c", code],
            cwd=Path(__file__).resolve().parent.parent,
            capture_output=True,
            text=True,
            check=True,
        )
        self.assertEqual(result.stdout.strip(), "False")


if __name__ == "__main__":
    unittest.main()
