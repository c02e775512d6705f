"""Exception types raised by the gacha engine."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from .models import PullBatch


class ConfigErrorCode(Enum):
    RATES_DO_NOT_SUM_TO_100 = "rates_do_not_sum_to_100"
    NON_POSITIVE_WEIGHT = "non_positive_weight"
    NEGATIVE_RATE = "negative_rate"
    DUPLICATE_UPGRADE_LEVEL = "duplicate_upgrade_level"
    INVALID_UPGRADE_LEVEL = "invalid_upgrade_level"
    INVALID_VALUE = "invalid_value"
    UNKNOWN_RARITY = "unknown_rarity"


ConfigProblem = Tuple[ConfigErrorCode, str]


class ConfigError(Exception):
    """Raised when gacha configuration is internally inconsistent.

    Configuration errors are fatal: the engine refuses to start with them.
    """

    def __init__(self, problems: Sequence[ConfigProblem]):
        self.problems: List[ConfigProblem] = list(problems)
        message = "; ".join(text for _, text in self.problems) or "Invalid gacha configuration."
        super().__init__(message)

    @property
    def code(self) -> Optional[ConfigErrorCode]:
        return self.problems[0][0] if self.problems else None

    @property
    def codes(self) -> List[ConfigErrorCode]:
        return [code for code, _ in self.problems]


class GachaError(Exception):
    """Base class for recoverable, per-call gacha failures."""

    code = "gacha_error"


class InvalidArgument(GachaError):
    code = "invalid_argument"


class Disabled(GachaError):
    code = "disabled"


class InsufficientFunds(GachaError):
    code = "insufficient_funds"

    def __init__(self, message: str, *, required: int, batch: Optional["PullBatch"] = None):
        super().__init__(message)
        self.required = required
        self.batch = batch


class AtMaxLevel(GachaError):
    code = "at_max_level"


class CatalogEmpty(GachaError):
    code = "catalog_empty"


__all__ = [
    "AtMaxLevel",
    "CatalogEmpty",
    "ConfigError",
    "ConfigErrorCode",
    "ConfigProblem",
    "Disabled",
    "GachaError",
    "InsufficientFunds",
    "InvalidArgument",
]
