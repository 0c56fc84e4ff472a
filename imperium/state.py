"""Game state serialization and snapshot persistence."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from . import economy
from .config import Settings, get_settings
from .models import (
    Effect,
    EventProgress,
    EventStatus,
    GameState,
    HistoryEntry,
    PriceEntry,
    PriceModifier,
    QueuedEffect,
    Season,
    SenatorRecord,
)

logger = logging.getLogger(__name__)

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    label TEXT NOT NULL,
    round INTEGER NOT NULL,
    payload TEXT NOT NULL
);
"""


def _senator_to_dict(senator: SenatorRecord) -> Dict[str, Any]:
    return {
        "id": senator.id,
        "name": senator.name,
        "relation": senator.relation,
        "disposition": senator.disposition,
        "behaviour": dict(senator.behaviour),
        "arc_cursor": senator.arc_cursor,
        "triggered": list(senator.triggered),
        "events": {
            event_id: {
                "status": progress.status.value,
                "presented_round": progress.presented_round,
                "resolved_round": progress.resolved_round,
                "times_resolved": progress.times_resolved,
                "rearmed": progress.rearmed,
            }
            for event_id, progress in senator.events.items()
        },
        "disabled_events": list(senator.disabled_events),
    }


def _senator_from_dict(data: Dict[str, Any]) -> SenatorRecord:
    return SenatorRecord(
        id=data["id"],
        name=data["name"],
        relation=float(data["relation"]),
        disposition=data["disposition"],
        behaviour={flag: int(value) for flag, value in data.get("behaviour", {}).items()},
        arc_cursor=int(data.get("arc_cursor", 0)),
        triggered=list(data.get("triggered", [])),
        events={
            event_id: EventProgress(
                status=EventStatus(entry["status"]),
                presented_round=entry.get("presented_round"),
                resolved_round=entry.get("resolved_round"),
                times_resolved=int(entry.get("times_resolved", 0)),
                rearmed=bool(entry.get("rearmed", False)),
            )
            for event_id, entry in data.get("events", {}).items()
        },
        disabled_events=list(data.get("disabled_events", [])),
    )


def serialize_state(state: GameState) -> Dict[str, Any]:
    """Flat, JSON-safe snapshot of the whole state.

    Current prices are written for display only; :func:`restore_state`
    recomputes them.
    """

    return {
        "seed": state.seed,
        "round": state.round,
        "season": state.season.value,
        "year": state.year,
        "resources": dict(state.resources),
        "reputation": state.reputation,
        "senators": {senator_id: _senator_to_dict(senator) for senator_id, senator in state.senators.items()},
        "markets": {
            city: {
                resource: {
                    "base": entry.base,
                    "current": entry.current,
                    "supply": entry.supply,
                    "demand": entry.demand,
                    "modifiers": [
                        {"multiplier": mod.multiplier, "expires_round": mod.expires_round, "source": mod.source}
                        for mod in entry.modifiers
                    ],
                }
                for resource, entry in table.items()
            }
            for city, table in state.markets.items()
        },
        "merchant_reputation": dict(state.merchant_reputation),
        "factions": dict(state.factions),
        # Expired flags are dropped on the way out.
        "flags": state.active_flags(),
        "attention": dict(state.attention),
        "queued": [{"due_round": item.due_round, "effect": item.effect.to_dict()} for item in state.queued],
        "history": [
            {"round": entry.round, "kind": entry.kind, "details": entry.details} for entry in state.history
        ],
    }


def restore_state(data: Dict[str, Any], settings: Settings | None = None) -> GameState:
    settings = settings or get_settings()
    state = GameState(
        seed=int(data["seed"]),
        round=int(data["round"]),
        season=Season(data["season"]),
        year=int(data["year"]),
        resources={name: float(amount) for name, amount in data["resources"].items()},
        reputation=float(data["reputation"]),
        senators={senator_id: _senator_from_dict(entry) for senator_id, entry in data.get("senators", {}).items()},
        markets={
            city: {
                resource: PriceEntry(
                    base=float(entry["base"]),
                    current=0.0,
                    supply=float(entry.get("supply", 100.0)),
                    demand=float(entry.get("demand", 100.0)),
                    modifiers=[
                        PriceModifier(
                            multiplier=float(mod["multiplier"]),
                            expires_round=int(mod["expires_round"]),
                            source=mod.get("source", ""),
                        )
                        for mod in entry.get("modifiers", [])
                    ],
                )
                for resource, entry in table.items()
            }
            for city, table in data.get("markets", {}).items()
        },
        merchant_reputation={city: float(value) for city, value in data.get("merchant_reputation", {}).items()},
        factions={name: float(value) for name, value in data.get("factions", {}).items()},
        flags={tag: (None if expiry is None else int(expiry)) for tag, expiry in data.get("flags", {}).items()},
        attention={name: int(points) for name, points in data.get("attention", {}).items()},
        queued=[
            QueuedEffect(due_round=int(item["due_round"]), effect=Effect.from_dict(item["effect"]))
            for item in data.get("queued", [])
        ],
        history=[
            HistoryEntry(round=int(entry["round"]), kind=entry["kind"], details=dict(entry.get("details", {})))
            for entry in data.get("history", [])
        ],
    )
    economy.reprice(state, settings)
    return state


def dumps(state: GameState) -> str:
    return json.dumps(serialize_state(state), sort_keys=True)


def loads(payload: str, settings: Settings | None = None) -> GameState:
    return restore_state(json.loads(payload), settings)


class SnapshotStore:
    """SQLite-backed save slots holding whole serialized states."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.executescript(_DB_SCHEMA)
            conn.commit()

    @property
    def path(self) -> Path:
        return self._db_path

    def save(self, state: GameState, label: str = "autosave") -> int:
        with closing(sqlite3.connect(self._db_path)) as conn:
            cursor = conn.execute(
                "INSERT INTO snapshots (timestamp, label, round, payload) VALUES (?, ?, ?, ?)",
                (datetime.now(timezone.utc).isoformat(), label, state.round, dumps(state)),
            )
            conn.commit()
            snapshot_id = int(cursor.lastrowid)
        logger.debug("Saved snapshot %d (%s) at round %d", snapshot_id, label, state.round)
        return snapshot_id

    def load(self, snapshot_id: int, settings: Settings | None = None) -> GameState:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute("SELECT payload FROM snapshots WHERE id = ?", (snapshot_id,)).fetchone()
        if row is None:
            raise KeyError(f"Unknown snapshot {snapshot_id}")
        return loads(row[0], settings)

    def latest(self, label: Optional[str] = None, settings: Settings | None = None) -> Optional[GameState]:
        query = "SELECT payload FROM snapshots"
        params: Tuple[Any, ...] = ()
        if label is not None:
            query += " WHERE label = ?"
            params = (label,)
        query += " ORDER BY id DESC LIMIT 1"
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(query, params).fetchone()
        return loads(row[0], settings) if row else None

    def list_snapshots(self) -> List[Tuple[int, str, int, str]]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute("SELECT id, label, round, timestamp FROM snapshots ORDER BY id").fetchall()
        return [(int(row[0]), row[1], int(row[2]), row[3]) for row in rows]


__all__ = ["serialize_state", "restore_state", "dumps", "loads", "SnapshotStore"]
