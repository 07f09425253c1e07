"""Append-only event log: the audit trail of every options action.

Every state change in the engine (pool creation, randomness requests,
commitments, claims, redemptions, closures, configuration changes)
produces an event record appended here. Events are immutable once
written. The log serves as:
1. The event stream off-chain tooling reacts to.
2. The audit trail for pools that are closed but retained.
3. The source of truth for reconstructing what happened to a pool.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of engine events."""
    POOL_CREATED = "pool_created"
    POOL_CLOSED = "pool_closed"
    RANDOMNESS_REQUESTED = "randomness_requested"
    RANDOMNESS_FULFILLED = "randomness_fulfilled"
    REQUEST_CLEARED = "request_cleared"
    ALLOCATIONS_COMMITTED = "allocations_committed"
    CLAIM_MINTED = "claim_minted"
    CLAIM_BURNED = "claim_burned"
    REDEMPTION_EXECUTED = "redemption_executed"
    FEE_BALANCE_LOW = "fee_balance_low"
    FEE_BALANCE_INCREASED = "fee_balance_increased"
    RECIPIENT_UPDATED = "recipient_updated"
    CALCULATOR_UPDATED = "calculator_updated"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event.

    The event_hash is computed at creation time over the canonical JSON
    of the other fields.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        digest = _canonical_hash(event_id, event_kind.value, ts_str, actor_id, payload)

        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=digest,
        )


class EventLog:
    """Append-only event log with optional file persistence.

    Events can only be appended, never modified or deleted.
    The log can be persisted to a JSONL file (one JSON object per line)
    and loaded back for recovery.

    Usage:
        log = EventLog()
        log.record(EventKind.POOL_CREATED, "admin", {"pool_id": 0})
        log.events(EventKind.POOL_CREATED)
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        self._events.append(event)
        self._event_ids.add(event.event_id)

        if self._storage_path:
            self._append_to_file(event)

    def record(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> EventRecord:
        """Create and append an event with the next sequential ID."""
        event = EventRecord.create(
            event_id=f"EVT-{len(self._events) + 1:08d}",
            event_kind=kind,
            actor_id=actor_id,
            payload=_jsonable(payload),
            timestamp_utc=now,
        )
        self.append(event)
        return event

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def count_of(self, kind: EventKind) -> int:
        return sum(1 for e in self._events if e.event_kind == kind)

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_to_file(self, event: EventRecord) -> None:
        """Append a single event to the JSONL file."""
        record = {
            "event_id": event.event_id,
            "event_kind": event.event_kind.value,
            "timestamp_utc": event.timestamp_utc,
            "actor_id": event.actor_id,
            "payload": event.payload,
            "event_hash": event.event_hash,
        }
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs (replay protection on recovery).
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    data["event_id"],
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                self._events.append(event)
                self._event_ids.add(event_id)


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


def _jsonable(payload: dict[str, Any]) -> dict[str, Any]:
    """Decimals and datetimes are stored as strings."""
    result: dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, datetime):
            result[key] = value.strftime("%Y-%m-%dT%H:%M:%SZ")
        elif isinstance(value, (int, str, bool)) or value is None:
            result[key] = value
        else:
            result[key] = str(value)
    return result
