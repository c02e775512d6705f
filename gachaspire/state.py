"""Per-player session state and its persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional

from .history import DEFAULT_MAX_HISTORY, HistoryAggregates, HistoryLedger
from .models import PullBatch, PullRecord, PullStatus, RarityTier, ResultKind

logger = logging.getLogger("gachaspire.state")


@dataclass
class GachaSessionState:
    level: int = 1
    history: HistoryLedger = field(default_factory=HistoryLedger)
    last_batch: Optional[PullBatch] = None


def serialize_record(record: PullRecord) -> Dict[str, object]:
    return {
        "item_id": record.item_id,
        "rarity": record.rarity.name.lower(),
        "kind": record.kind.value,
        "pickup": record.pickup,
    }


def deserialize_record(payload: Mapping[str, object]) -> PullRecord:
    item_id = payload.get("item_id")
    return PullRecord(
        item_id=str(item_id) if item_id is not None else None,
        rarity=RarityTier.parse(payload["rarity"]),
        kind=ResultKind(str(payload.get("kind", ResultKind.NORMAL.value))),
        pickup=bool(payload.get("pickup", False)),
    )


def serialize_batch(batch: PullBatch) -> Dict[str, object]:
    return {
        "session_id": batch.session_id,
        "records": [serialize_record(record) for record in batch.records],
        "gold_spent": batch.gold_spent,
        "level": batch.level,
        "timestamp": batch.timestamp.isoformat(),
        "status": batch.status.value,
        "was_guaranteed": batch.was_guaranteed,
        "was_ceiling": batch.was_ceiling,
    }


def deserialize_batch(payload: Mapping[str, object]) -> PullBatch:
    return PullBatch(
        session_id=str(payload.get("session_id", "")),
        records=tuple(deserialize_record(entry) for entry in payload.get("records", [])),
        gold_spent=int(payload.get("gold_spent", 0)),
        level=int(payload.get("level", 1)),
        timestamp=datetime.fromisoformat(str(payload["timestamp"])),
        status=PullStatus(str(payload.get("status", PullStatus.SUCCESS.value))),
    )


def _serialize_counts(counts: Mapping[RarityTier, int]) -> Dict[str, int]:
    return {tier.name.lower(): int(counts.get(tier, 0)) for tier in RarityTier}


def _deserialize_counts(payload: object) -> Dict[RarityTier, int]:
    counts = {tier: 0 for tier in RarityTier}
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            counts[RarityTier.parse(key)] = int(value)
    return counts


def serialize_aggregates(aggregates: HistoryAggregates) -> Dict[str, object]:
    return {
        "total_pulls": aggregates.total_pulls,
        "total_gold_spent": aggregates.total_gold_spent,
        "consecutive_batches": aggregates.consecutive_batches,
        "rarity_counts": _serialize_counts(aggregates.rarity_counts),
        "pulls_since": _serialize_counts(aggregates.pulls_since),
    }


def deserialize_aggregates(payload: Mapping[str, object]) -> HistoryAggregates:
    return HistoryAggregates(
        total_pulls=int(payload.get("total_pulls", 0)),
        total_gold_spent=int(payload.get("total_gold_spent", 0)),
        consecutive_batches=int(payload.get("consecutive_batches", 0)),
        rarity_counts=_deserialize_counts(payload.get("rarity_counts")),
        pulls_since=_deserialize_counts(payload.get("pulls_since")),
    )


def serialize_session_state(state: GachaSessionState) -> Dict[str, object]:
    history = state.history
    return {
        "level": state.level,
        "history": {
            "batches": [serialize_batch(batch) for batch in history.batches],
            "max_size": history.max_size,
            "aggregates": serialize_aggregates(history.aggregates),
        },
    }


def deserialize_session_state(
    payload: Mapping[str, object],
    *,
    guaranteed_floor: RarityTier = RarityTier.RARE,
    max_level: Optional[int] = None,
) -> GachaSessionState:
    history_payload = payload.get("history") or {}
    if not isinstance(history_payload, Mapping):
        raise ValueError("history must be a mapping")
    max_size = int(history_payload.get("max_size", DEFAULT_MAX_HISTORY))
    history = HistoryLedger(max_size, guaranteed_floor=guaranteed_floor)
    batches = [deserialize_batch(entry) for entry in history_payload.get("batches", [])]
    raw_aggregates = history_payload.get("aggregates")
    aggregates = deserialize_aggregates(raw_aggregates) if isinstance(raw_aggregates, Mapping) else None
    history.restore(batches, aggregates)

    level = max(int(payload.get("level", 1)), 1)
    if max_level is not None and level > max_level:
        logger.warning("Persisted level %s exceeds max level %s; clamping.", level, max_level)
        level = max_level
    return GachaSessionState(level=level, history=history)


class SessionStore:
    """JSON document of session snapshots keyed by session id."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._snapshots: Dict[str, Dict[str, object]] = self._read()

    def _read(self) -> Dict[str, Dict[str, object]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse %s: %s", self.path, exc)
            return {}
        if isinstance(data, dict):
            return data
        logger.error("Session store %s must contain a JSON object.", self.path)
        return {}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._snapshots, indent=2), encoding="utf-8")

    def keys(self):
        return self._snapshots.keys()

    def load(
        self,
        key: str,
        *,
        guaranteed_floor: RarityTier = RarityTier.RARE,
        max_level: Optional[int] = None,
    ) -> Optional[GachaSessionState]:
        payload = self._snapshots.get(key)
        if payload is None:
            return None
        try:
            return deserialize_session_state(payload, guaranteed_floor=guaranteed_floor, max_level=max_level)
        except (KeyError, ValueError) as exc:
            logger.warning("Skipping malformed persisted session %s: %s", key, exc)
            return None

    def save(self, key: str, state: GachaSessionState) -> None:
        self._snapshots[key] = serialize_session_state(state)
        self._write()

    def delete(self, key: str) -> bool:
        if self._snapshots.pop(key, None) is None:
            return False
        self._write()
        return True


__all__ = [
    "GachaSessionState",
    "SessionStore",
    "deserialize_aggregates",
    "deserialize_batch",
    "deserialize_record",
    "deserialize_session_state",
    "serialize_aggregates",
    "serialize_batch",
    "serialize_record",
    "serialize_session_state",
]
