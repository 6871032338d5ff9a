"""
Prometheus metrics registry.
"""
import time
from functools import wraps

from prometheus_client import Counter, Gauge, Histogram


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        """Initialize metrics registry."""
        self._setup_metrics()

    def _setup_metrics(self):
        """Setup all application metrics."""

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        self.exceptions_total = Counter(
            'exceptions_total',
            'Total unhandled exceptions',
            ['exception_type', 'location']
        )

        self.audit_log_created_total = Counter(
            'audit_log_created_total',
            'Audit log rows created',
            ['entity_type', 'action']
        )

        # ===================================================================
        # Patient flow / scheduling
        # ===================================================================
        self.flow_transitions_total = Counter(
            'flow_transitions_total',
            'Patient flow stage transitions',
            ['from_stage', 'to_stage', 'result']
        )

        self.appointment_transitions_total = Counter(
            'appointment_transitions_total',
            'Appointment status transitions',
            ['from_status', 'to_status', 'result']
        )

        self.appointment_conflicts_total = Counter(
            'appointment_conflicts_total',
            'Appointment bookings rejected by overlap checks',
            ['resource']  # provider, chair, room
        )

        self.chairs_occupied = Gauge(
            'chairs_occupied',
            'Chairs currently marked OCCUPIED',
            ['clinic_id']
        )

        self.dashboard_build_duration_seconds = Histogram(
            'dashboard_build_duration_seconds',
            'Duration of dashboard aggregation',
            ['view'],  # day, week, month
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
        )

        # ===================================================================
        # Lab
        # ===================================================================
        self.lab_status_changes_total = Counter(
            'lab_status_changes_total',
            'Lab order status changes',
            ['to_status', 'source']
        )

        self.lab_batch_operations_total = Counter(
            'lab_batch_operations_total',
            'Lab batch operations',
            ['operation', 'result']  # result: success|partial|rejected
        )

        self.lab_batch_items_total = Counter(
            'lab_batch_items_total',
            'Lab batch per-order outcomes',
            ['operation', 'outcome']  # outcome: success|failed|skipped
        )

        self.lab_remake_decisions_total = Counter(
            'lab_remake_decisions_total',
            'Remake approval decisions',
            ['decision']  # approved, denied
        )

        # ===================================================================
        # Staff / content
        # ===================================================================
        self.staff_terminations_total = Counter(
            'staff_terminations_total',
            'Staff termination attempts',
            ['result']  # success, blocked
        )

        self.content_deliveries_total = Counter(
            'content_deliveries_total',
            'Patient content deliveries',
            ['method', 'result']  # result: sent, failed, rejected
        )

        self.content_scheduled_runs_total = Counter(
            'content_scheduled_runs_total',
            'Scheduled content delivery runs',
            ['result']
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.dashboard_build_duration_seconds.labels(view='week'))
            def build_week_dashboard(clinic, week_start):
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
