"""Loading and validation of gacha configuration."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import yaml

from .catalog import normalize_item_id
from .errors import ConfigError, ConfigErrorCode, ConfigProblem
from .history import DEFAULT_MAX_HISTORY
from .models import (
    DropRateEntry,
    PickupConfig,
    PityConfig,
    RarityTier,
    UpgradeEffect,
    UpgradeLevel,
    UpgradeType,
)
from .rates import RateTable
from .upgrades import UpgradeLedger
from .utils import bool_from_env, int_from_env, optional_int_from_env, parse_bool

logger = logging.getLogger("gachaspire.config")

DEFAULT_BASE_COST = 100
CEILING_WARNING_THRESHOLD = 1000

DEFAULT_DROP_RATES: Dict[RarityTier, float] = {
    RarityTier.COMMON: 70.0,
    RarityTier.UNCOMMON: 20.0,
    RarityTier.RARE: 8.0,
    RarityTier.EPIC: 1.5,
    RarityTier.LEGENDARY: 0.5,
}


@dataclass(frozen=True)
class GachaConfig:
    rates: RateTable
    upgrades: UpgradeLedger
    pity: PityConfig = field(default_factory=PityConfig)
    pickup: PickupConfig = field(default_factory=PickupConfig)
    system_id: str = "basic_gacha"
    display_name: str = "Basic Gacha"
    base_cost: int = DEFAULT_BASE_COST
    active: bool = True
    max_history: int = DEFAULT_MAX_HISTORY
    free_pulls: bool = False
    rng_seed: Optional[int] = None
    characters: Mapping[str, object] = field(default_factory=dict)

    @property
    def max_level(self) -> int:
        return self.upgrades.max_level

    def problems(self) -> List[ConfigProblem]:
        problems: List[ConfigProblem] = []
        if not self.system_id:
            problems.append((ConfigErrorCode.INVALID_VALUE, "system_id must not be empty."))
        if self.base_cost <= 0:
            problems.append((ConfigErrorCode.INVALID_VALUE, "base_cost must be positive."))
        if self.max_history <= 0:
            problems.append((ConfigErrorCode.INVALID_VALUE, "max_history must be positive."))
        problems.extend(self.rates.problems())
        problems.extend(self.upgrades.problems())
        if self.pity.ceiling_enabled and self.pity.ceiling_count <= 0:
            problems.append((ConfigErrorCode.INVALID_VALUE, "ceiling_count must be positive."))
        if self.pity.guaranteed_rare_count <= 0:
            problems.append((ConfigErrorCode.INVALID_VALUE, "guaranteed_rare_count must be positive."))
        if self.pickup.enabled:
            if not self.pickup.item_ids:
                problems.append((ConfigErrorCode.INVALID_VALUE, "Pickup is enabled but no pickup items are set."))
            if self.pickup.rate_percent <= 0:
                problems.append((ConfigErrorCode.INVALID_VALUE, "Pickup rate must be positive."))
        return problems

    def validate(self) -> "GachaConfig":
        problems = self.problems()
        if problems:
            for _, text in problems:
                logger.error("Gacha config error: %s", text)
            raise ConfigError(problems)
        if self.pity.ceiling_enabled and self.pity.ceiling_count > CEILING_WARNING_THRESHOLD:
            logger.warning(
                "Ceiling count %s exceeds %s; check that this is intended.",
                self.pity.ceiling_count,
                CEILING_WARNING_THRESHOLD,
            )
        return self


def build_config(
    *,
    rates: Optional[Mapping[RarityTier, float]] = None,
    bonus: Optional[Mapping[RarityTier, float]] = None,
    weights: Optional[Mapping[RarityTier, int]] = None,
    upgrades: Iterable[UpgradeLevel] = (),
    max_level: int = 10,
    **options,
) -> GachaConfig:
    """Assemble and validate a config from plain values, mainly for tests."""
    table = RateTable.from_rates(rates or DEFAULT_DROP_RATES, bonus=bonus, weights=weights)
    ledger = UpgradeLedger(upgrades, max_level=max_level)
    return GachaConfig(rates=table, upgrades=ledger, **options).validate()


def _read_payload(path: Optional[Path]) -> dict:
    if not path:
        return {}
    try:
        if not path.exists():
            logger.warning("Gacha config %s not found; using defaults.", path)
            return {}
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in {".yaml", ".yml"}:
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
        if isinstance(payload, dict):
            return payload
        logger.warning("Gacha config %s must be a mapping.", path)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse gacha config %s: %s", path, exc)
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse gacha config %s: %s", path, exc)
    return {}


def _coerce_number(raw: object, name: str, problems: List[ConfigProblem], *, default: float = 0.0) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        problems.append((ConfigErrorCode.INVALID_VALUE, f"{name} must be a number (got {raw!r})."))
        return default


def _coerce_bool(raw: object, name: str, problems: List[ConfigProblem], *, default: bool) -> bool:
    if raw is None:
        return default
    value = parse_bool(raw)
    if value is None:
        problems.append((ConfigErrorCode.INVALID_VALUE, f"{name} must be true or false (got {raw!r})."))
        return default
    return value


def _parse_rarity(raw: object, context: str, problems: List[ConfigProblem]) -> Optional[RarityTier]:
    try:
        return RarityTier.parse(raw)
    except ValueError:
        problems.append((ConfigErrorCode.UNKNOWN_RARITY, f"{context}: unknown rarity {raw!r}."))
        return None


def _parse_drop_rates(raw: object, problems: List[ConfigProblem]) -> List[DropRateEntry]:
    if raw is None:
        return [DropRateEntry(rarity=tier, base_rate=rate) for tier, rate in DEFAULT_DROP_RATES.items()]

    items: List[tuple] = []
    if isinstance(raw, Mapping):
        items = list(raw.items())
    elif isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, Mapping):
                items.append((entry.get("rarity"), entry))
            else:
                problems.append((ConfigErrorCode.INVALID_VALUE, f"Drop rate entry {entry!r} must be a mapping."))
    else:
        problems.append((ConfigErrorCode.INVALID_VALUE, "drop_rates must be a mapping or a list."))

    entries: List[DropRateEntry] = []
    for key, value in items:
        rarity = _parse_rarity(key, "drop_rates", problems)
        if rarity is None:
            continue
        if isinstance(value, Mapping):
            rate = _coerce_number(value.get("rate"), f"{rarity.label} rate", problems)
            bonus = _coerce_number(value.get("bonus"), f"{rarity.label} bonus", problems)
            weight = int(_coerce_number(value.get("weight"), f"{rarity.label} weight", problems, default=1))
        else:
            rate = _coerce_number(value, f"{rarity.label} rate", problems)
            bonus = 0.0
            weight = 1
        entries.append(DropRateEntry(rarity=rarity, base_rate=rate, per_level_bonus=bonus, weight=weight))
    return entries


def _parse_effect(raw: object, level: int, problems: List[ConfigProblem]) -> Optional[UpgradeEffect]:
    if not isinstance(raw, Mapping):
        problems.append((ConfigErrorCode.INVALID_VALUE, f"Upgrade level {level}: effect must be a mapping."))
        return None
    type_name = str(raw.get("type", "")).strip().lower()
    try:
        effect_type = UpgradeType(type_name)
    except ValueError:
        problems.append((ConfigErrorCode.INVALID_VALUE, f"Upgrade level {level}: unknown effect type {type_name!r}."))
        return None
    target: Optional[RarityTier] = None
    if raw.get("rarity") is not None:
        target = _parse_rarity(raw.get("rarity"), f"Upgrade level {level}", problems)
    value = _coerce_number(raw.get("value"), f"Upgrade level {level} {type_name} value", problems)
    return UpgradeEffect(type=effect_type, value=value, target_rarity=target)


def _parse_upgrades(raw: object, problems: List[ConfigProblem]) -> List[UpgradeLevel]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        problems.append((ConfigErrorCode.INVALID_VALUE, "upgrades must be a list."))
        return []
    levels: List[UpgradeLevel] = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            problems.append((ConfigErrorCode.INVALID_VALUE, f"Upgrade entry {entry!r} must be a mapping."))
            continue
        level = int(_coerce_number(entry.get("level"), "Upgrade level", problems))
        cost = int(_coerce_number(entry.get("cost"), f"Upgrade level {level} cost", problems))
        effects: List[UpgradeEffect] = []
        for raw_effect in entry.get("effects") or []:
            effect = _parse_effect(raw_effect, level, problems)
            if effect is not None:
                effects.append(effect)
        levels.append(
            UpgradeLevel(
                level=level,
                cost=cost,
                description=str(entry.get("description", "") or ""),
                effects=tuple(effects),
            )
        )
    return levels


def _parse_pity(raw: object, problems: List[ConfigProblem]) -> PityConfig:
    defaults = PityConfig()
    if not isinstance(raw, Mapping):
        return defaults
    ceiling_rarity = defaults.ceiling_rarity
    if raw.get("ceiling_rarity") is not None:
        ceiling_rarity = _parse_rarity(raw["ceiling_rarity"], "pity.ceiling_rarity", problems) or ceiling_rarity
    floor = defaults.guaranteed_floor
    if raw.get("guaranteed_floor") is not None:
        floor = _parse_rarity(raw["guaranteed_floor"], "pity.guaranteed_floor", problems) or floor
    return PityConfig(
        ceiling_enabled=_coerce_bool(
            raw.get("ceiling_enabled"), "pity.ceiling_enabled", problems, default=defaults.ceiling_enabled
        ),
        ceiling_count=int(
            _coerce_number(raw.get("ceiling_count"), "pity.ceiling_count", problems, default=defaults.ceiling_count)
        ),
        ceiling_rarity=ceiling_rarity,
        guaranteed_rare_count=int(
            _coerce_number(
                raw.get("guaranteed_rare_count"),
                "pity.guaranteed_rare_count",
                problems,
                default=defaults.guaranteed_rare_count,
            )
        ),
        guaranteed_floor=floor,
    )


def _parse_pickup(raw: object, problems: List[ConfigProblem]) -> PickupConfig:
    defaults = PickupConfig()
    if not isinstance(raw, Mapping):
        return defaults
    items: Sequence[object] = raw.get("items") or []
    if not isinstance(items, list):
        problems.append((ConfigErrorCode.INVALID_VALUE, "pickup.items must be a list."))
        items = []
    return PickupConfig(
        enabled=_coerce_bool(raw.get("enabled"), "pickup.enabled", problems, default=defaults.enabled),
        item_ids=tuple(normalize_item_id(str(item)) for item in items if str(item).strip()),
        rate_percent=_coerce_number(raw.get("rate"), "pickup.rate", problems, default=defaults.rate_percent),
    )


def config_from_payload(payload: Mapping[str, object]) -> GachaConfig:
    """Build a validated config from a decoded JSON/YAML document."""
    problems: List[ConfigProblem] = []
    drop_rates = _parse_drop_rates(payload.get("drop_rates"), problems)
    upgrade_levels = _parse_upgrades(payload.get("upgrades"), problems)
    default_max_level = max((entry.level for entry in upgrade_levels), default=1)
    max_level = int(_coerce_number(payload.get("max_level"), "max_level", problems, default=default_max_level))
    pity = _parse_pity(payload.get("pity"), problems)
    pickup = _parse_pickup(payload.get("pickup"), problems)
    base_cost = int(_coerce_number(payload.get("base_cost"), "base_cost", problems, default=DEFAULT_BASE_COST))
    max_history = int(
        _coerce_number(payload.get("max_history"), "max_history", problems, default=DEFAULT_MAX_HISTORY)
    )
    characters = payload.get("characters") or {}
    if not isinstance(characters, Mapping):
        problems.append((ConfigErrorCode.INVALID_VALUE, "characters must be a mapping."))
        characters = {}
    active = _coerce_bool(payload.get("active"), "active", problems, default=True)
    free_pulls = _coerce_bool(payload.get("free_pulls"), "free_pulls", problems, default=False)
    seed = payload.get("rng_seed")
    if problems:
        for _, text in problems:
            logger.error("Gacha config error: %s", text)
        raise ConfigError(problems)

    config = GachaConfig(
        rates=RateTable(drop_rates),
        upgrades=UpgradeLedger(upgrade_levels, max_level=max_level),
        pity=pity,
        pickup=pickup,
        system_id=str(payload.get("system_id", "basic_gacha") or ""),
        display_name=str(payload.get("display_name", "Basic Gacha") or ""),
        base_cost=base_cost,
        active=active,
        max_history=max_history,
        free_pulls=free_pulls,
        rng_seed=int(seed) if seed is not None else None,
        characters=dict(characters),
    )
    return config.validate()


def apply_env_overrides(config: GachaConfig) -> GachaConfig:
    seed = optional_int_from_env("GACHA_RNG_SEED")
    return replace(
        config,
        base_cost=int_from_env("GACHA_BASE_COST", config.base_cost),
        max_history=int_from_env("GACHA_MAX_HISTORY", config.max_history),
        free_pulls=bool_from_env("GACHA_FREE_PULLS", config.free_pulls),
        rng_seed=seed if seed is not None else config.rng_seed,
    ).validate()


def load_gacha_config(path: Optional[Path]) -> GachaConfig:
    """Read, override from the environment, and validate the gacha config.

    A missing or unparsable file falls back to defaults with a warning;
    a parsable file with inconsistent content raises ConfigError.
    """
    config = config_from_payload(_read_payload(path))
    return apply_env_overrides(config)


__all__ = [
    "DEFAULT_BASE_COST",
    "DEFAULT_DROP_RATES",
    "GachaConfig",
    "apply_env_overrides",
    "build_config",
    "config_from_payload",
    "load_gacha_config",
]
