from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict


@dataclass
class PromoAnalyticsSnapshot:
    events: Dict[str, int]
    cache: Dict[str, int]
    backfill: Dict[str, int]
    last_backfill: Dict[str, Any] | None = field(default=None)

    def as_dict(self) -> Dict[str, object]:
        return {
            "events": dict(self.events),
            "cache": dict(self.cache),
            "backfill": dict(self.backfill),
            "last_backfill": dict(self.last_backfill) if self.last_backfill else None,
        }


class PromoAnalyticsObservabilityStore:
    """Collect promo funnel telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: Dict[str, int] = defaultdict(int)
        self._cache: Dict[str, int] = defaultdict(int)
        self._backfill: Dict[str, int] = defaultdict(int)
        self._last_backfill: Dict[str, Any] | None = None

    def record_event(self, event_type: str) -> None:
        with self._lock:
            self._events[event_type] += 1

    def record_duplicate_redeem(self) -> None:
        with self._lock:
            self._events["duplicate_redeem_rejected"] += 1

    def record_cache_refresh(self, *, success: bool) -> None:
        with self._lock:
            self._cache["refreshed" if success else "failed"] += 1

    def record_backfill_run(self, *, success: bool, summary: Dict[str, Any] | None = None) -> None:
        with self._lock:
            self._backfill["completed" if success else "failed"] += 1
            if summary is not None:
                self._last_backfill = dict(summary)

    def snapshot(self) -> PromoAnalyticsSnapshot:
        with self._lock:
            return PromoAnalyticsSnapshot(
                events=dict(self._events),
                cache=dict(self._cache),
                backfill=dict(self._backfill),
                last_backfill=dict(self._last_backfill) if self._last_backfill else None,
            )

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
            self._cache.clear()
            self._backfill.clear()
            self._last_backfill = None


_STORE = PromoAnalyticsObservabilityStore()


def get_promo_analytics_store() -> PromoAnalyticsObservabilityStore:
    return _STORE


__all__ = ["get_promo_analytics_store", "PromoAnalyticsObservabilityStore", "PromoAnalyticsSnapshot"]
