"""
Prometheus metrics for the lineage proxy.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os

from .logging import SERVICE_NAME


class Metrics:
    """
    Centralized metrics for the lineage proxy service.
    """

    def __init__(self, service_name: str = SERVICE_NAME, version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Allocation and storage
        self.events_committed_total = Counter(
            "lineage_events_committed_total",
            "Events durably committed",
            ["mode"],
            registry=self.registry,
        )

        self.commit_failures_total = Counter(
            "lineage_commit_failures_total",
            "Events that failed allocation or commit",
            ["error"],
            registry=self.registry,
        )

        self.allocation_fallbacks_total = Counter(
            "lineage_allocation_fallbacks_total",
            "Allocations that used timestamp identifiers",
            ["reason"],
            registry=self.registry,
        )

        self.event_size_bytes = Histogram(
            "lineage_event_size_bytes",
            "Serialized event size in bytes",
            buckets=(256, 1024, 4096, 16384, 65536, 262144, 1048576),
            registry=self.registry,
        )

        self.commit_duration = Histogram(
            "lineage_commit_duration_seconds",
            "Time spent in the sink commit",
            ["backend"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_cpu_seconds = Counter(
            "process_cpu_seconds_total",
            "Total CPU time consumed by process",
            ["service"],
            registry=self.registry,
        )

        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self._last_cpu_total = 0.0
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
        except psutil.Error:
            return

        cpu_times = process.cpu_times()
        cpu_total = cpu_times.user + cpu_times.system
        cpu_diff = cpu_total - self._last_cpu_total
        if cpu_diff > 0:
            self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
        self._last_cpu_total = cpu_total

        self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)

        # num_fds() is POSIX only
        if hasattr(process, "num_fds"):
            self.process_open_fds.labels(service=self.service_name).set(process.num_fds())

    def record_commit(self, mode: str, backend: str, size_bytes: int, duration: float):
        """Record a successful commit."""
        self.events_committed_total.labels(mode=mode).inc()
        self.event_size_bytes.observe(size_bytes)
        self.commit_duration.labels(backend=backend).observe(duration)

    def record_failure(self, error: str):
        self.commit_failures_total.labels(error=error).inc()

    def record_fallback(self, reason: str):
        self.allocation_fallbacks_total.labels(reason=reason).inc()


# Global metrics instance
metrics = Metrics()
