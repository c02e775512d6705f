"""gachaspire package: probabilistic reward engine and its command surface."""

from . import catalog, config, errors, history, ledger, models, pickup, rates, roll, session, state, upgrades, utils  # noqa: F401

__all__ = [
    "catalog",
    "config",
    "errors",
    "history",
    "ledger",
    "models",
    "pickup",
    "rates",
    "roll",
    "session",
    "state",
    "upgrades",
    "utils",
]
