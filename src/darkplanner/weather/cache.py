"""Weather cache: TTL-bound forecast entries with offline fallback.

``load`` fetches the three forecast streams concurrently, persists them as one
entry per rounded coordinate and keeps a parsed :class:`ForecastView` for
lookups. Concurrent ``load`` calls for the same coordinate share one fetch.
AOD and seeing failures are tolerated; a failed basic weather fetch falls back
to whatever entry the store still holds.
"""
from __future__ import annotations

import datetime as dt
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from darkplanner.core.debug import DebugCollector, NullDebugCollector
from .base import FetchFailed, ForecastProvider, NotReady, Payload
from .forecast import ForecastView, InvalidPayload
from .store import CacheStore, MemoryStore

TTL = dt.timedelta(hours=1)
CACHE_VERSION = "v2"


class Cancelled(RuntimeError):
    """Raised inside a load when its cancel token fires."""


class LoadStatus(str, Enum):
    FRESH_FROM_CACHE = "fresh_from_cache"
    FRESH_FROM_NETWORK = "fresh_from_network"
    STALE_FROM_CACHE = "stale_from_cache"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CacheState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY_FRESH = "ready_fresh"
    READY_STALE = "ready_stale"


@dataclass(frozen=True)
class LoadOutcome:
    status: LoadStatus
    fetched_at_ms: Optional[int] = None
    error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.status in {
            LoadStatus.FRESH_FROM_CACHE,
            LoadStatus.FRESH_FROM_NETWORK,
            LoadStatus.STALE_FROM_CACHE,
        }

    @property
    def from_cache(self) -> bool:
        return self.status in {LoadStatus.FRESH_FROM_CACHE, LoadStatus.STALE_FROM_CACHE}


class CancelToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Weather load cancelled")


def cache_key(lat: float, lon: float) -> str:
    return f"weather_{CACHE_VERSION}_{lat:.3f}_{lon:.3f}"


@dataclass(frozen=True)
class CacheEntry:
    fetched_at_ms: int
    zone: Optional[str]
    weather: Payload
    lat: float
    lon: float
    aod: Optional[Payload] = None
    seeing: Optional[Payload] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fetchedAtMs": self.fetched_at_ms,
            "zone": self.zone,
            "raw": {"weather": self.weather, "aod": self.aod, "seeing": self.seeing},
            "lat": self.lat,
            "lon": self.lon,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["CacheEntry"]:
        try:
            payloads = raw["raw"]
            return cls(
                fetched_at_ms=int(raw["fetchedAtMs"]),
                zone=raw.get("zone"),
                weather=payloads["weather"],
                aod=payloads.get("aod"),
                seeing=payloads.get("seeing"),
                lat=float(raw["lat"]),
                lon=float(raw["lon"]),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def view(self) -> ForecastView:
        return ForecastView.from_payloads(self.weather, self.aod, self.seeing)


@dataclass
class _Loaded:
    view: ForecastView
    fetched_at_ms: int
    from_cache: bool


class WeatherCache:
    def __init__(
        self,
        provider: ForecastProvider,
        store: Optional[CacheStore] = None,
        *,
        ttl: dt.timedelta = TTL,
        clock: Callable[[], float] = time.time,
        is_online: Callable[[], bool] = lambda: True,
        debug: Optional[DebugCollector] = None,
        poll_interval: float = 0.05,
    ):
        self.provider = provider
        self.store = store if store is not None else MemoryStore()
        self.ttl_ms = int(ttl.total_seconds() * 1000)
        self.clock = clock
        self.is_online = is_online
        self.debug = debug or NullDebugCollector()
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._inflight: Dict[str, Future] = {}
        self._loaded: Dict[str, _Loaded] = {}

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def load(
        self,
        lat: float,
        lon: float,
        *,
        force: bool = False,
        cancel: Optional[CancelToken] = None,
    ) -> LoadOutcome:
        key = cache_key(lat, lon)
        with self._lock:
            pending = self._inflight.get(key)
            owner = pending is None
            if owner:
                pending = Future()
                self._inflight[key] = pending
        if not owner:
            return pending.result()
        try:
            outcome = self._load(key, lat, lon, force, cancel)
        except BaseException as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(outcome)
            return outcome
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def _load(self, key: str, lat: float, lon: float, force: bool, cancel: Optional[CancelToken]) -> LoadOutcome:
        now_ms = self._now_ms()
        cached = self._read(key)
        fresh = cached is not None and now_ms - cached.fetched_at_ms < self.ttl_ms
        self.debug.emit(
            "weather.cache",
            {"key": key, "cached": cached is not None, "fresh": fresh, "force": force},
            ts=now_ms,
            location=key,
        )
        if fresh and not force:
            return self._use(key, cached, LoadStatus.FRESH_FROM_CACHE)
        if not force and not self.is_online():
            if cached is not None:
                return self._use(key, cached, LoadStatus.STALE_FROM_CACHE)
            return self._fail(key, "offline")

        try:
            entry = self._fetch(lat, lon, cancel or CancelToken())
        except Cancelled:
            self.debug.emit("weather.cancelled", {"key": key}, ts=now_ms, location=key)
            return LoadOutcome(LoadStatus.CANCELLED)
        except (FetchFailed, InvalidPayload) as exc:
            stage = "weather.invalid_payload" if isinstance(exc, InvalidPayload) else "weather.fetch_failed"
            self.debug.emit(stage, {"key": key, "error": str(exc)}, ts=now_ms, location=key)
            if cached is not None:
                return self._use(key, cached, LoadStatus.STALE_FROM_CACHE, error=str(exc))
            return self._fail(key, str(exc))

        self.store.put(key, entry.to_dict())
        return self._use(key, entry, LoadStatus.FRESH_FROM_NETWORK)

    def _read(self, key: str) -> Optional[CacheEntry]:
        raw = self.store.get(key)
        return CacheEntry.from_dict(raw) if raw is not None else None

    def _use(self, key: str, entry: CacheEntry, status: LoadStatus, error: Optional[str] = None) -> LoadOutcome:
        try:
            view = entry.view()
        except InvalidPayload as exc:
            self.debug.emit("weather.invalid_payload", {"key": key, "error": str(exc)}, ts=entry.fetched_at_ms, location=key)
            self.store.delete(key)
            return self._fail(key, str(exc))
        from_cache = status is not LoadStatus.FRESH_FROM_NETWORK
        with self._lock:
            self._loaded[key] = _Loaded(view=view, fetched_at_ms=entry.fetched_at_ms, from_cache=from_cache)
        return LoadOutcome(status, fetched_at_ms=entry.fetched_at_ms, error=error)

    def _fail(self, key: str, error: str) -> LoadOutcome:
        with self._lock:
            self._loaded.pop(key, None)
        return LoadOutcome(LoadStatus.FAILED, error=error)

    def _fetch(self, lat: float, lon: float, cancel: CancelToken) -> CacheEntry:
        cancel.raise_if_cancelled()
        pool = ThreadPoolExecutor(max_workers=3, thread_name_prefix="darkplanner-weather")
        try:
            futures = {
                "weather": pool.submit(self.provider.fetch_weather, lat, lon),
                "aod": pool.submit(self.provider.fetch_aod, lat, lon),
                "seeing": pool.submit(self.provider.fetch_seeing, lat, lon),
            }
            pending = set(futures.values())
            while pending:
                cancel.raise_if_cancelled()
                _, pending = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
            cancel.raise_if_cancelled()

            weather = futures["weather"].result()
            extras: Dict[str, Optional[Payload]] = {}
            for name in ("aod", "seeing"):
                try:
                    extras[name] = futures[name].result()
                except FetchFailed as exc:
                    extras[name] = None
                    self.debug.emit("weather.partial", {"stream": name, "error": str(exc)}, ts=None)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        if not isinstance(weather, dict):
            raise InvalidPayload("Forecast payload is not a JSON object")
        # Parse once so a malformed payload never reaches the store.
        view = ForecastView.from_payloads(weather, extras["aod"], extras["seeing"])
        return CacheEntry(
            fetched_at_ms=self._now_ms(),
            zone=view.zone,
            weather=weather,
            aod=extras["aod"],
            seeing=extras["seeing"],
            lat=lat,
            lon=lon,
        )

    def _loaded_for(self, lat: float, lon: float) -> Optional[_Loaded]:
        with self._lock:
            return self._loaded.get(cache_key(lat, lon))

    def is_ready(self, lat: float, lon: float) -> bool:
        return self._loaded_for(lat, lon) is not None

    def forecast_for(self, lat: float, lon: float) -> ForecastView:
        loaded = self._loaded_for(lat, lon)
        if loaded is None:
            raise NotReady(f"No forecast loaded for {cache_key(lat, lon)}")
        return loaded.view

    def last_update_ms(self, lat: float, lon: float) -> Optional[int]:
        loaded = self._loaded_for(lat, lon)
        return loaded.fetched_at_ms if loaded is not None else None

    def is_from_cache(self, lat: float, lon: float) -> bool:
        loaded = self._loaded_for(lat, lon)
        return loaded.from_cache if loaded is not None else False

    def state(self, lat: float, lon: float) -> CacheState:
        key = cache_key(lat, lon)
        with self._lock:
            if key in self._inflight:
                return CacheState.LOADING
            loaded = self._loaded.get(key)
        if loaded is None:
            return CacheState.EMPTY
        if self._now_ms() - loaded.fetched_at_ms < self.ttl_ms:
            return CacheState.READY_FRESH
        return CacheState.READY_STALE


__all__ = [
    "TTL",
    "NotReady",
    "Cancelled",
    "LoadStatus",
    "CacheState",
    "LoadOutcome",
    "CancelToken",
    "CacheEntry",
    "cache_key",
    "WeatherCache",
]
