"""
Metrics instrumentation.

Prometheus counters and histograms for the dispensation pipeline, grouped
in a single registry so call sites read `metrics.<name>.labels(...).inc()`.
"""
from functools import wraps
import time

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics.
    """

    def __init__(self, registry=None):
        # registry=None means the prometheus_client default registry, which
        # is what the /metrics endpoint exposes.
        self._registry = registry
        self._setup_metrics()

    def _registry_kwargs(self):
        if self._registry is None:
            return {}
        return {'registry': self._registry}

    def _create_counter(self, name, description, labels=None):
        return Counter(name, description, labels or [], **self._registry_kwargs())

    def _create_histogram(self, name, description, labels=None, buckets=None):
        if buckets:
            return Histogram(name, description, labels or [], buckets=buckets, **self._registry_kwargs())
        return Histogram(name, description, labels or [], **self._registry_kwargs())

    def _setup_metrics(self):
        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.exceptions_total = self._create_counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Dispensation Metrics
        # ===================================================================
        self.dispensation_outcomes_total = self._create_counter(
            'dispensation_outcomes_total',
            'Dispensation requests by outcome',
            ['outcome']  # success, blocked, episode_closed, batch_expired, ...
        )

        self.dispensation_duration_seconds = self._create_histogram(
            'dispensation_duration_seconds',
            'Duration of a dispensation request through the orchestrator',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
        )

        self.dispensation_retries_total = self._create_counter(
            'dispensation_retries_total',
            'Dispensation attempts restarted from scratch',
            ['reason']  # stock_changed, episode_changed, db_contention
        )

        # ===================================================================
        # Allergy Metrics
        # ===================================================================
        self.allergy_crosscheck_total = self._create_counter(
            'allergy_crosscheck_total',
            'Allergy cross-check verdicts',
            ['verdict']  # safe, warning, blocking
        )

        # ===================================================================
        # Audit Metrics
        # ===================================================================
        self.audit_entries_total = self._create_counter(
            'audit_entries_total',
            'Audit ledger entries appended',
            ['action_kind']
        )

        self.audit_best_effort_failures_total = self._create_counter(
            'audit_best_effort_failures_total',
            'Best-effort audit appends that failed and were swallowed',
            ['action_kind']
        )

        # ===================================================================
        # Stock Metrics
        # ===================================================================
        self.stock_alerts_total = self._create_counter(
            'stock_alerts_total',
            'Stock alerts raised after dispensation',
            ['level']
        )

        self.stock_lot_selection_duration_seconds = self._create_histogram(
            'stock_lot_selection_duration_seconds',
            'FEFO lot selection duration',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5]
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.stock_lot_selection_duration_seconds)
            def best_lot(self, medication_id, quantity_needed):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    histogram_metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
