"""Deterministic debug collectors for structured JSON events.

Every pipeline stage (night assembly, darkness walk, filter, weather fetch and
evaluation) reports through a collector. Events carry the stage name, the
instant they describe, and optional location / night context.
"""
from __future__ import annotations

import datetime as _dt
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol


class DebugCollector(Protocol):
    def emit(self, stage: str, payload: Dict[str, Any], *, ts: Any, location: Optional[str] = None, night: Optional[str] = None) -> None:
        ...


def _json_safe_scalar(val: Any) -> Any:
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, (_dt.datetime, _dt.date, _dt.time)) or hasattr(val, "isoformat"):
        try:
            return val.isoformat()
        except (TypeError, ValueError):
            return str(val)
    if isinstance(val, (set, frozenset)):
        return sorted(val)
    return val


def _ordered(obj: Any) -> Any:
    """Recursively order mappings for deterministic JSON dumps."""
    if isinstance(obj, dict):
        return {str(k): _ordered(obj[k]) for k in sorted(obj, key=str)}
    if isinstance(obj, (list, tuple)):
        return [_ordered(v) for v in obj]
    return _ordered(_json_safe_scalar(obj)) if isinstance(obj, (set, frozenset)) else _json_safe_scalar(obj)


def _event(stage: str, payload: Dict[str, Any], ts: Any, location: Optional[str], night: Optional[str]) -> Dict[str, Any]:
    return {
        "stage": stage,
        "ts": _json_safe_scalar(ts),
        "location": location,
        "night": night,
        "payload": _ordered(payload),
    }


class NullDebugCollector:
    def emit(self, stage: str, payload: Dict[str, Any], *, ts: Any, location: Optional[str] = None, night: Optional[str] = None) -> None:  # noqa: D401
        """Discard events (no-op)."""
        return


@dataclass
class ListDebugCollector:
    events: List[Dict[str, Any]] = field(default_factory=list)

    def emit(self, stage: str, payload: Dict[str, Any], *, ts: Any, location: Optional[str] = None, night: Optional[str] = None) -> None:
        self.events.append(_event(stage, payload, ts, location, night))

    def stages(self) -> List[str]:
        return [e["stage"] for e in self.events]


class JsonlDebugWriter:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8")

    def emit(self, stage: str, payload: Dict[str, Any], *, ts: Any, location: Optional[str] = None, night: Optional[str] = None) -> None:
        json.dump(_event(stage, payload, ts, location, night), self._fh, sort_keys=True)
        self._fh.write("\n")
        self._fh.flush()

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()


class JsonDebugWriter:
    """Collect all events in memory then write a single JSON array.

    Used when callers pass a ``--debug`` path ending with ``.json`` so a whole
    planning run ends up in one self-contained file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._events: List[Dict[str, Any]] = []

    def emit(self, stage: str, payload: Dict[str, Any], *, ts: Any, location: Optional[str] = None, night: Optional[str] = None) -> None:
        self._events.append(_event(stage, payload, ts, location, night))

    def finalize(self) -> None:
        """Write collected events as a single JSON document."""
        self.path.write_text(json.dumps(self._events, indent=2, sort_keys=True))

    def close(self) -> None:
        self.finalize()


def build_debug_collector(path: str | Path) -> DebugCollector:
    """Factory: .json -> JsonDebugWriter, otherwise JsonlDebugWriter."""
    if str(path).lower().endswith(".json"):
        return JsonDebugWriter(path)
    return JsonlDebugWriter(path)


class ScopedDebugCollector:
    """Wrapper that injects fixed location/night context into every emit."""

    def __init__(self, inner: DebugCollector, *, location: Optional[str] = None, night: Optional[str] = None):
        self.inner = inner
        self.location = location
        self.night = night

    def emit(self, stage: str, payload: Dict[str, Any], *, ts: Any, location: Optional[str] = None, night: Optional[str] = None) -> None:
        # Explicit overrides win over the scoped defaults.
        self.inner.emit(
            stage,
            payload,
            ts=ts,
            location=location if location is not None else self.location,
            night=night if night is not None else self.night,
        )


__all__ = [
    "DebugCollector",
    "NullDebugCollector",
    "ListDebugCollector",
    "JsonlDebugWriter",
    "JsonDebugWriter",
    "ScopedDebugCollector",
    "build_debug_collector",
]
