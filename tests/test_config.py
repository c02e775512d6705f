import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from gachaspire.config import config_from_payload, load_gacha_config
from gachaspire.errors import ConfigError, ConfigErrorCode
from gachaspire.models import RarityTier, UpgradeType

REPO_ROOT = Path(__file__).resolve().parent.parent

YAML_CONFIG = """
display_name: Spring Banner
base_cost: 160
drop_rates:
  common: 60
  rare: 30
  legendary: {rate: 10, bonus: 0.5, weight: 2}
upgrades:
  - level: 2
    cost: 300
    effects:
      - {type: rate_bonus, rarity: legendary, value: 1.5}
pity:
  ceiling_count: 40
  ceiling_rarity: legendary
  guaranteed_rare_count: 8
characters:
  Slime: common
  Golem: {name: Stone Golem, rarity: rare}
"""


class GachaConfigLoadingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        for name in ("GACHA_BASE_COST", "GACHA_MAX_HISTORY", "GACHA_FREE_PULLS", "GACHA_RNG_SEED"):
            os.environ.pop(name, None)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_bundled_config_is_valid(self) -> None:
        config = load_gacha_config(REPO_ROOT / "gacha_config.json")
        self.assertEqual(config.max_level, 5)
        self.assertEqual(config.pickup.item_ids, ("seraphine",))
        self.assertAlmostEqual(config.upgrades.cost_reduction(5), 0.25)
        self.assertEqual(len(config.characters), 10)

    def test_yaml_config(self) -> None:
        path = self.root / "gacha.yaml"
        path.write_text(YAML_CONFIG, encoding="utf-8")
        config = load_gacha_config(path)
        self.assertEqual(config.display_name, "Spring Banner")
        self.assertEqual(config.base_cost, 160)
        self.assertEqual(config.max_level, 2)
        self.assertEqual(config.rates.tiers(), (RarityTier.COMMON, RarityTier.RARE, RarityTier.LEGENDARY))
        self.assertEqual(config.rates.weight(RarityTier.LEGENDARY), 2)
        self.assertAlmostEqual(config.rates.effective_rate(2, RarityTier.LEGENDARY, config.upgrades), 12.5)
        self.assertEqual(config.pity.ceiling_rarity, RarityTier.LEGENDARY)
        effect = config.upgrades.entry(2).effects[0]
        self.assertIs(effect.type, UpgradeType.RATE_BONUS)

    def test_missing_file_falls_back_to_defaults(self) -> None:
        with self.assertLogs("gachaspire.config", level="WARNING"):
            config = load_gacha_config(self.root / "absent.json")
        self.assertEqual(config.base_cost, 100)
        self.assertAlmostEqual(sum(config.rates.rates_for_level(0).values()), 100.0)
        self.assertEqual(config.max_level, 1)

    def test_unparsable_file_falls_back_to_defaults(self) -> None:
        path = self.root / "broken.json"
        path.write_text("{", encoding="utf-8")
        with self.assertLogs("gachaspire.config", level="WARNING"):
            config = load_gacha_config(path)
        self.assertEqual(config.system_id, "basic_gacha")

    def test_bad_rates_are_fatal(self) -> None:
        path = self.root / "bad.json"
        path.write_text(json.dumps({"drop_rates": {"common": 50, "rare": 20}}), encoding="utf-8")
        with self.assertRaises(ConfigError) as ctx:
            load_gacha_config(path)
        self.assertIn(ConfigErrorCode.RATES_DO_NOT_SUM_TO_100, ctx.exception.codes)

    def test_unknown_effect_and_rarity_are_reported(self) -> None:
        payload = {
            "drop_rates": {"common": 100, "mythic": 0},
            "upgrades": [{"level": 2, "cost": 10, "effects": [{"type": "teleport", "value": 1}]}],
        }
        with self.assertRaises(ConfigError) as ctx:
            config_from_payload(payload)
        self.assertIn(ConfigErrorCode.UNKNOWN_RARITY, ctx.exception.codes)
        self.assertIn(ConfigErrorCode.INVALID_VALUE, ctx.exception.codes)

    def test_pickup_without_items_is_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            config_from_payload({"pickup": {"enabled": True}})

    def test_string_booleans_are_parsed(self) -> None:
        config = config_from_payload(
            {
                "active": "false",
                "free_pulls": "yes",
                "pity": {"ceiling_enabled": "off"},
                "pickup": {"enabled": "0", "items": ["seraphine"]},
            }
        )
        self.assertFalse(config.active)
        self.assertTrue(config.free_pulls)
        self.assertFalse(config.pity.ceiling_enabled)
        self.assertFalse(config.pickup.enabled)

    def test_unrecognised_boolean_is_rejected(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            config_from_payload({"active": "sometimes"})
        self.assertEqual(ctx.exception.codes, [ConfigErrorCode.INVALID_VALUE])

    def test_environment_overrides(self) -> None:
        with mock.patch.dict(
            os.environ,
            {"GACHA_BASE_COST": "250", "GACHA_RNG_SEED": "7", "GACHA_FREE_PULLS": "yes"},
        ):
            config = load_gacha_config(None)
        self.assertEqual(config.base_cost, 250)
        self.assertEqual(config.rng_seed, 7)
        self.assertTrue(config.free_pulls)


if __name__ == "__main__":
    unittest.main()
