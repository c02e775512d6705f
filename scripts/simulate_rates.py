#!/usr/bin/env python
"""Run many seeded pulls against a gacha config and compare observed rates."""

from __future__ import annotations

import argparse
import logging
import random
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from dotenv import load_dotenv

from gachaspire.catalog import ConfigCatalog
from gachaspire.config import GachaConfig, load_gacha_config
from gachaspire.errors import ConfigError
from gachaspire.ledger import UnlimitedLedger
from gachaspire.models import RarityTier, ResultKind
from gachaspire.session import GachaSession

logger = logging.getLogger("simulate_rates")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    load_dotenv()
    parser = argparse.ArgumentParser(
        description="Simulate pulls and report configured vs observed rarity rates.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("gacha_config.json"),
        help="Path to the gacha config file (default: gacha_config.json).",
    )
    parser.add_argument("--pulls", type=int, default=100_000, help="Number of single pulls to simulate.")
    parser.add_argument("--level", type=int, default=1, help="Gacha level to simulate at.")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed for reproducible runs.")
    parser.add_argument(
        "--no-pity",
        action="store_true",
        help="Roll every draw with the weighted table only, skipping ceiling and guarantee overrides.",
    )
    parser.add_argument("--verbose", action="store_true", help="Increase logging verbosity.")
    return parser.parse_args(argv)


def clamp_level(config: GachaConfig, level: int) -> int:
    """Levels outside 1..max_level cannot be reached by a session."""
    return max(1, min(level, config.max_level))


def simulate(config: GachaConfig, *, pulls: int, level: int, seed: Optional[int]) -> Dict[str, Counter]:
    catalog = ConfigCatalog.from_config(config.characters, pickup_ids=config.pickup.item_ids)
    session = GachaSession(config, UnlimitedLedger(), catalog, rng=random.Random(seed), session_id="simulation")
    session.state.level = level
    rarities: Counter = Counter()
    kinds: Counter = Counter()
    for _ in range(pulls):
        batch = session.pull(1)
        for record in batch.records:
            rarities[record.rarity] += 1
            kinds[record.kind] += 1
    return {"rarities": rarities, "kinds": kinds}


def simulate_table_only(config: GachaConfig, *, pulls: int, level: int, seed: Optional[int]) -> Counter:
    catalog = ConfigCatalog.from_config(config.characters, pickup_ids=config.pickup.item_ids)
    session = GachaSession(config, UnlimitedLedger(), catalog, rng=random.Random(seed))
    return Counter(session.engine.weighted_roll(level) for _ in range(pulls))


def format_report(config: GachaConfig, rarities: Counter, level: int, kinds: Optional[Counter] = None) -> List[str]:
    total = sum(rarities.values()) or 1
    expected = config.rates.rates_for_level(level, config.upgrades)
    lines = [f"{'Rarity':<10} {'Configured':>11} {'Observed':>10} {'Delta':>8}"]
    for tier in sorted(RarityTier, reverse=True):
        configured = expected.get(tier, 0.0)
        observed = rarities.get(tier, 0) / total * 100.0
        lines.append(f"{tier.label:<10} {configured:>10.3f}% {observed:>9.3f}% {observed - configured:>+7.3f}")
    if kinds:
        lines.append("")
        for kind in ResultKind:
            if kinds.get(kind):
                lines.append(f"{kind.value:<10} {kinds[kind]:>10}")
    return lines


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )
    if not args.verbose:
        logging.getLogger("gachaspire").setLevel(logging.WARNING)
    if args.pulls <= 0:
        logger.error("--pulls must be positive.")
        return 2

    try:
        config = load_gacha_config(args.config)
    except ConfigError as exc:
        logger.error("Config rejected: %s", exc)
        return 1

    level = clamp_level(config, args.level)
    if level != args.level:
        logger.warning("Level %s is outside 1..%s; simulating level %s.", args.level, config.max_level, level)

    if args.no_pity:
        rarities = simulate_table_only(config, pulls=args.pulls, level=level, seed=args.seed)
        kinds = None
    else:
        result = simulate(config, pulls=args.pulls, level=level, seed=args.seed)
        rarities, kinds = result["rarities"], result["kinds"]

    print(f"{config.display_name}: {args.pulls} pulls at level {level}")
    for line in format_report(config, rarities, level, kinds):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
