"""
Prometheus metrics for the Relay plugin API
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST

from .. import config

# Build info
BUILD_INFO = Gauge(
    'plugin_build_info',
    'Build information',
    ['plugin_id', 'version']
)

# Request counters
REQUESTS_TOTAL = Counter(
    'plugin_requests_total',
    'Total number of HTTP requests',
    ['status_class']
)

# Job lifecycle
JOBS_SUBMITTED_TOTAL = Counter(
    'plugin_jobs_submitted_total',
    'Total number of asynchronous jobs accepted',
    ['transform']
)

JOBS_REJECTED_TOTAL = Counter(
    'plugin_jobs_rejected_total',
    'Total number of job submissions rejected at validation',
    ['transform']
)

JOBS_FINISHED_TOTAL = Counter(
    'plugin_jobs_finished_total',
    'Total number of jobs that reached a terminal state',
    ['status']
)

JOBS_RUNNING = Gauge(
    'plugin_jobs_running',
    'Number of jobs currently running'
)

JOBS_EVICTED_TOTAL = Counter(
    'plugin_jobs_evicted_total',
    'Total number of terminal jobs removed by retention'
)

JOB_DURATION_SECONDS = Histogram(
    'plugin_job_duration_seconds',
    'Wall time from submission to terminal state',
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300]
)

# Webhook delivery
WEBHOOK_DELIVERIES_TOTAL = Counter(
    'plugin_webhook_deliveries_total',
    'Webhook delivery attempts by outcome',
    ['outcome']
)

WEBHOOK_LATENCY_MS = Histogram(
    'plugin_webhook_latency_ms',
    'Webhook POST latency in milliseconds',
    buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000]
)

# Tenants
TENANTS_REGISTERED = Gauge(
    'plugin_tenants_registered',
    'Number of tenants holding an active webhook secret'
)


class PrometheusMetrics:
    """Service for managing Prometheus metrics."""

    def __init__(self):
        self._setup_build_info()

    def _setup_build_info(self):
        """Set up build information gauge."""
        BUILD_INFO.labels(
            plugin_id=config.PLUGIN_ID,
            version=config.PLUGIN_VERSION
        ).set(1)

    def increment_requests(self, status_code: int):
        """Increment request counter."""
        if 200 <= status_code < 300:
            status_class = "2xx"
        elif 400 <= status_code < 500:
            status_class = "4xx"
        elif 500 <= status_code < 600:
            status_class = "5xx"
        else:
            status_class = "other"
        REQUESTS_TOTAL.labels(status_class=status_class).inc()

    def increment_jobs_submitted(self, transform: str):
        JOBS_SUBMITTED_TOTAL.labels(transform=transform).inc()
        JOBS_RUNNING.inc()

    def increment_jobs_rejected(self, transform: str):
        JOBS_REJECTED_TOTAL.labels(transform=transform).inc()

    def increment_jobs_finished(self, status: str, duration_sec: float):
        JOBS_FINISHED_TOTAL.labels(status=status).inc()
        JOB_DURATION_SECONDS.observe(duration_sec)

    def decrement_jobs_running(self):
        JOBS_RUNNING.dec()

    def increment_jobs_evicted(self, count: int = 1):
        JOBS_EVICTED_TOTAL.inc(count)

    def increment_webhook_delivery(self, outcome: str):
        """Count a delivery outcome: delivered, failed or skipped."""
        WEBHOOK_DELIVERIES_TOTAL.labels(outcome=outcome).inc()

    def observe_webhook_latency(self, latency_ms: float):
        WEBHOOK_LATENCY_MS.observe(latency_ms)

    def set_tenants_registered(self, count: int):
        TENANTS_REGISTERED.set(count)

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest()

    def get_content_type(self) -> str:
        """Get the content type for Prometheus metrics."""
        return CONTENT_TYPE_LATEST

# Global metrics instance
prometheus_metrics = PrometheusMetrics()
