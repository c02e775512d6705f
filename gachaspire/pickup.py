"""Item selection within a resolved rarity tier."""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence, Tuple

from .catalog import CharacterCatalog
from .errors import CatalogEmpty
from .models import PickupConfig, RarityTier

logger = logging.getLogger("gachaspire.pickup")


class PickupSelector:
    """Pick one catalog item of a tier, biased toward pickup items."""

    def __init__(self, catalog: CharacterCatalog, pickup: PickupConfig) -> None:
        self.catalog = catalog
        self.pickup = pickup

    def select(self, rarity: RarityTier, rng: random.Random, *, rate_bonus: float = 0.0) -> Tuple[str, bool]:
        """Return ``(item_id, was_pickup)``.

        Raises CatalogEmpty when the catalog has nothing of ``rarity``.
        """
        candidates: Sequence[str] = tuple(self.catalog.items_of_rarity(rarity))
        if not candidates:
            raise CatalogEmpty(f"No catalog items for rarity {rarity.label}.")

        if self.pickup.enabled:
            featured = [item_id for item_id in candidates if self.catalog.is_pickup_eligible(item_id)]
            if featured:
                rate = self.pickup.rate_percent + rate_bonus
                roll = rng.random() * 100.0
                if roll <= rate:
                    choice = featured[rng.randrange(len(featured))]
                    logger.debug("Pickup roll %.3f <= %.3f; selected %s", roll, rate, choice)
                    return choice, True

        return candidates[rng.randrange(len(candidates))], False

    def select_or_none(
        self, rarity: RarityTier, rng: random.Random, *, rate_bonus: float = 0.0
    ) -> Tuple[Optional[str], bool]:
        try:
            return self.select(rarity, rng, rate_bonus=rate_bonus)
        except CatalogEmpty as exc:
            logger.warning("%s Recording an empty draw.", exc)
            return None, False


__all__ = ["PickupSelector"]
