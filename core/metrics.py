"""
core/metrics.py -- In-process application metrics.

MetricsCollector keeps counters for HTTP traffic, cache hit rate, token
issuance/validation, registrations and logins. One collector is built in the
FastAPI lifespan and kept on app.state.metrics; the request middleware, the
cache helper, TokenService and the auth routes feed it, and GET /api/metrics
returns a snapshot.

Counters are plain dicts guarded by a lock: sync route handlers run in the
threadpool, so increments can arrive from several threads at once.

Route labels use the matched route template (/api/options/{kind}), never the
raw path, so the label set stays bounded.

Layer rule: core/ is the kernel. No imports from api/, auth/, cache/, or options/.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass, field


def status_group(status_code: int) -> str:
    """200 -> "2xx", 404 -> "4xx"."""
    if 100 <= status_code < 600:
        return f"{status_code // 100}xx"
    return "unknown"


@dataclass
class MetricsSnapshot:
    requests_total: int = 0
    errors_total: int = 0
    avg_response_time_ms: float = 0.0
    requests_by_status: dict[str, int] = field(default_factory=dict)
    requests_by_route: dict[str, int] = field(default_factory=dict)
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_ratio: float = 0.0
    tokens_issued: int = 0
    tokens_validated: int = 0
    token_validation_errors: dict[str, int] = field(default_factory=dict)
    registrations: dict[str, int] = field(default_factory=dict)
    logins: dict[str, int] = field(default_factory=dict)
    uptime_seconds: float = 0.0


class MetricsCollector:
    """Thread-safe in-memory counters.

    Usage:
        metrics = MetricsCollector()
        metrics.record_request("GET", "/api/health/", 200, 1.7)
        metrics.record_cache(hit=False)
        snapshot = metrics.snapshot()
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._started_at = clock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._requests = 0
        self._errors = 0
        self._total_ms = 0.0
        self._by_status: Counter[str] = Counter()
        self._by_route: Counter[str] = Counter()
        self._cache_hits = 0
        self._cache_misses = 0
        self._tokens_issued = 0
        self._tokens_validated = 0
        self._token_errors: Counter[str] = Counter()
        self._registrations: Counter[str] = Counter()
        self._logins: Counter[str] = Counter()

    # ------------------------------------------------------------------
    # Recorders
    # ------------------------------------------------------------------

    def record_request(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        with self._lock:
            self._requests += 1
            self._total_ms += duration_ms
            self._by_status[status_group(status_code)] += 1
            self._by_route[f"{method} {route}"] += 1
            if status_code >= 500:
                self._errors += 1

    def record_cache(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1

    def record_token_issued(self) -> None:
        with self._lock:
            self._tokens_issued += 1

    def record_token_validation(self, reason: str | None = None) -> None:
        """reason is None for a valid token, else the failure reason."""
        with self._lock:
            if reason is None:
                self._tokens_validated += 1
            else:
                self._token_errors[reason] += 1

    def record_registration(self, status: str) -> None:
        with self._lock:
            self._registrations[status] += 1

    def record_login(self, status: str) -> None:
        with self._lock:
            self._logins[status] += 1

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            lookups = self._cache_hits + self._cache_misses
            return MetricsSnapshot(
                requests_total=self._requests,
                errors_total=self._errors,
                avg_response_time_ms=round(self._total_ms / self._requests, 3) if self._requests else 0.0,
                requests_by_status=dict(self._by_status),
                requests_by_route=dict(self._by_route),
                cache_hits=self._cache_hits,
                cache_misses=self._cache_misses,
                cache_hit_ratio=round(self._cache_hits / lookups, 4) if lookups else 0.0,
                tokens_issued=self._tokens_issued,
                tokens_validated=self._tokens_validated,
                token_validation_errors=dict(self._token_errors),
                registrations=dict(self._registrations),
                logins=dict(self._logins),
                uptime_seconds=round(self._clock() - self._started_at, 3),
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_counters()
