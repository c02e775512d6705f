"""Character catalog boundary and a config-backed implementation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

from .errors import ConfigError, ConfigErrorCode, ConfigProblem
from .models import RarityTier

logger = logging.getLogger("gachaspire.catalog")


class CharacterCatalog(Protocol):
    def items_of_rarity(self, rarity: RarityTier) -> Sequence[str]:
        ...

    def is_pickup_eligible(self, item_id: str) -> bool:
        ...


@dataclass(frozen=True)
class CatalogItem:
    item_id: str
    name: str
    rarity: RarityTier


def normalize_item_id(value: str) -> str:
    if not value:
        return ""
    return re.sub(r"[^a-z0-9_]", "", value.strip().lower().replace(" ", "_"))


class ConfigCatalog:
    """Catalog built from the ``characters`` section of the gacha config."""

    def __init__(self, items: Iterable[CatalogItem], *, pickup_ids: Iterable[str] = ()):
        self._items: Dict[str, CatalogItem] = {}
        self._by_rarity: Dict[RarityTier, List[str]] = {tier: [] for tier in RarityTier}
        for item in items:
            if item.item_id in self._items:
                logger.warning("Duplicate catalog item %s; keeping the first definition.", item.item_id)
                continue
            self._items[item.item_id] = item
            self._by_rarity[item.rarity].append(item.item_id)
        for ids in self._by_rarity.values():
            ids.sort()
        self._pickup_ids: Set[str] = {normalize_item_id(item_id) for item_id in pickup_ids}
        unknown = sorted(self._pickup_ids - set(self._items))
        if unknown:
            logger.warning("Pickup items not present in the catalog: %s", ", ".join(unknown))

    @classmethod
    def from_config(
        cls,
        entries: Mapping[str, object],
        *,
        pickup_ids: Iterable[str] = (),
    ) -> "ConfigCatalog":
        items: List[CatalogItem] = []
        problems: List[ConfigProblem] = []
        for key, raw in entries.items():
            item_id = normalize_item_id(str(key))
            if not item_id:
                logger.warning("Ignoring catalog entry with empty id %r", key)
                continue
            if isinstance(raw, Mapping):
                name = str(raw.get("name") or key).strip()
                rarity_value = raw.get("rarity", "common")
            else:
                name = str(key).strip()
                rarity_value = raw
            try:
                rarity = RarityTier.parse(rarity_value)
            except ValueError as exc:
                problems.append((ConfigErrorCode.UNKNOWN_RARITY, f"Character {key}: {exc}"))
                continue
            items.append(CatalogItem(item_id=item_id, name=name, rarity=rarity))
        if problems:
            raise ConfigError(problems)
        return cls(items, pickup_ids=pickup_ids)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> Optional[CatalogItem]:
        return self._items.get(item_id)

    def display_name(self, item_id: Optional[str]) -> str:
        if item_id is None:
            return "(nothing)"
        item = self._items.get(item_id)
        return item.name if item else item_id

    def items_of_rarity(self, rarity: RarityTier) -> Sequence[str]:
        return tuple(self._by_rarity.get(rarity, ()))

    def is_pickup_eligible(self, item_id: str) -> bool:
        return item_id in self._pickup_ids

    def rarity_counts(self) -> Dict[RarityTier, int]:
        return {tier: len(ids) for tier, ids in self._by_rarity.items()}

    def pickup_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(self._pickup_ids))


__all__ = ["CatalogItem", "CharacterCatalog", "ConfigCatalog", "normalize_item_id"]
