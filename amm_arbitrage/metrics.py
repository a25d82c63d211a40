"""
Prometheus metrics for the discovery and allocation pipeline.

Collectors live on a per-instance registry so several engines (and tests)
can coexist in one process. Exposition is text only; serving it over HTTP
is left to the host application.
"""

import threading
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .constants import METRICS_PREFIX


class ArbitrageMetrics:
    """
    Metrics collection for ticks, opportunities, the GA and positions.

    Provides Prometheus-compatible metrics for:
    - Tick count and duration
    - Opportunities by source
    - Dead edges and failed pool refreshes
    - Genetic optimizer runs, wins and failures
    - Position lifecycle and deployed capital
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._lock = threading.RLock()
        self._initialize_metrics()

    def _initialize_metrics(self):
        # === TICK METRICS ===
        self.ticks_total = Counter(
            f"{METRICS_PREFIX}_ticks_total",
            "Total evaluation ticks run",
            registry=self.registry,
        )

        self.tick_duration_seconds = Histogram(
            f"{METRICS_PREFIX}_tick_duration_seconds",
            "Wall-clock duration of one tick",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
            registry=self.registry,
        )

        self.opportunities_total = Counter(
            f"{METRICS_PREFIX}_opportunities_total",
            "Ranked opportunities produced, by source",
            ["source"],
            registry=self.registry,
        )

        # === DATA QUALITY METRICS ===
        self.dead_edges = Gauge(
            f"{METRICS_PREFIX}_dead_edges",
            "Graph edges marked dead in the latest tick",
            registry=self.registry,
        )

        self.pool_refresh_failures_total = Counter(
            f"{METRICS_PREFIX}_pool_refresh_failures_total",
            "Pool refreshes that failed after retries",
            registry=self.registry,
        )

        # === GENETIC OPTIMIZER METRICS ===
        self.ga_runs_total = Counter(
            f"{METRICS_PREFIX}_ga_runs_total",
            "Genetic optimizer invocations",
            registry=self.registry,
        )

        self.ga_wins_total = Counter(
            f"{METRICS_PREFIX}_ga_wins_total",
            "Evaluations where the GA beat the deterministic baseline",
            registry=self.registry,
        )

        self.ga_failures_total = Counter(
            f"{METRICS_PREFIX}_ga_failures_total",
            "Genetic optimizer failures and timeouts",
            registry=self.registry,
        )

        # === POSITION METRICS ===
        self.positions_opened_total = Counter(
            f"{METRICS_PREFIX}_positions_opened_total",
            "Speculative positions opened",
            registry=self.registry,
        )

        self.positions_closed_total = Counter(
            f"{METRICS_PREFIX}_positions_closed_total",
            "Speculative positions closed, by exit reason",
            ["reason"],
            registry=self.registry,
        )

        self.deployed_capital_wei = Gauge(
            f"{METRICS_PREFIX}_deployed_capital_wei",
            "Capital currently committed to open positions",
            registry=self.registry,
        )

    def record_tick(self, duration_seconds: float, dead_edges: int = 0):
        with self._lock:
            self.ticks_total.inc()
            self.tick_duration_seconds.observe(duration_seconds)
            self.dead_edges.set(dead_edges)

    def record_opportunity(self, source: str, count: int = 1):
        if count <= 0:
            return
        with self._lock:
            self.opportunities_total.labels(source=source).inc(count)

    def record_refresh_failures(self, count: int):
        if count <= 0:
            return
        with self._lock:
            self.pool_refresh_failures_total.inc(count)

    def record_ga_run(self, won: bool = False, failed: bool = False):
        with self._lock:
            self.ga_runs_total.inc()
            if won:
                self.ga_wins_total.inc()
            if failed:
                self.ga_failures_total.inc()

    def record_position_opened(self):
        with self._lock:
            self.positions_opened_total.inc()

    def record_position_closed(self, reason: str):
        with self._lock:
            self.positions_closed_total.labels(reason=reason).inc()

    def update_deployed_capital(self, amount: int):
        with self._lock:
            self.deployed_capital_wei.set(amount)

    def export(self) -> bytes:
        """Text exposition of every collector on this registry."""
        return generate_latest(self.registry)
