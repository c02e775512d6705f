"""Shared builders for the gachaspire test suite."""

from __future__ import annotations

import random
from typing import Dict, Iterable, Optional

from gachaspire.catalog import ConfigCatalog
from gachaspire.config import GachaConfig, build_config
from gachaspire.ledger import MemoryLedger
from gachaspire.models import PityConfig, RarityTier
from gachaspire.session import GachaSession

# ``random()`` values that land each tier with the default 70/20/8/1.5/0.5 table.
ROLL_COMMON = 0.99
ROLL_UNCOMMON = 0.2
ROLL_RARE = 0.05
ROLL_EPIC = 0.01
ROLL_LEGENDARY = 0.001

CHARACTERS: Dict[str, object] = {
    "militia": {"name": "Militia", "rarity": "common"},
    "scout": {"name": "Scout", "rarity": "common"},
    "archer": {"name": "Archer", "rarity": "uncommon"},
    "knight": {"name": "Knight", "rarity": "rare"},
    "paladin": {"name": "Paladin", "rarity": "epic"},
    "seraphine": {"name": "Seraphine", "rarity": "epic"},
    "dragon_lord": {"name": "Dragon Lord", "rarity": "legendary"},
}


class ScriptedRandom(random.Random):
    """Random whose ``random()`` replays a script, then repeats ``default``."""

    def __init__(self, values: Iterable[float] = (), *, default: float = ROLL_COMMON, seed: int = 1234):
        super().__init__(seed)
        self.values = list(values)
        self.default = default
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        return self.default

    def getrandbits(self, k: int) -> int:
        # Keeps randrange() on the seeded bit generator instead of random().
        return super().getrandbits(k)


def make_config(**overrides) -> GachaConfig:
    options = {
        "pity": PityConfig(
            ceiling_enabled=True,
            ceiling_count=10,
            ceiling_rarity=RarityTier.EPIC,
            guaranteed_rare_count=5,
            guaranteed_floor=RarityTier.RARE,
        ),
        "characters": CHARACTERS,
    }
    options.update(overrides)
    return build_config(**options)


def make_catalog(config: GachaConfig, entries: Optional[Dict[str, object]] = None) -> ConfigCatalog:
    return ConfigCatalog.from_config(
        entries if entries is not None else config.characters,
        pickup_ids=config.pickup.item_ids,
    )


def make_session(
    config: Optional[GachaConfig] = None,
    *,
    balance: int = 10_000,
    rng: Optional[random.Random] = None,
    catalog: Optional[ConfigCatalog] = None,
) -> GachaSession:
    config = config or make_config()
    return GachaSession(
        config,
        MemoryLedger(balance),
        catalog if catalog is not None else make_catalog(config),
        rng=rng if rng is not None else ScriptedRandom(),
        session_id="test",
    )
