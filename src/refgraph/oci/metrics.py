"""OpenTelemetry metrics for referrer discovery.

Metrics Emitted:
    Counters:
        - refgraph_operations_total: Operations by type, status, and store
        - refgraph_referrers_discovered_total: Referrers listed, by store

    Histograms:
        - refgraph_operation_duration_seconds: Operation duration distribution

Trace Spans:
    - refgraph.discover: Full discovery of one subject
    - refgraph.resolve: Subject reference resolution
    - refgraph.referrers: Referrer listing for one tree level

Without an OpenTelemetry SDK installed and configured, every instrument is a
no-op.

Example:
    >>> metrics = DiscoveryMetrics()
    >>> with metrics.operation_timer("discover", "ghcr.io/acme/app"):
    ...     result = service.discover("ghcr.io/acme/app:v1")
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.metrics import Counter, Histogram
    from opentelemetry.trace import Span, Tracer


logger = structlog.get_logger(__name__)


class DiscoveryMetrics:
    """OpenTelemetry metrics collector for discovery operations.

    Label Conventions:
        - operation: discover, resolve
        - status: success, failure
        - store: Registry hostname or layout path
    """

    OPERATIONS_TOTAL = "refgraph_operations_total"
    OPERATION_DURATION_SECONDS = "refgraph_operation_duration_seconds"
    REFERRERS_DISCOVERED_TOTAL = "refgraph_referrers_discovered_total"

    SPAN_DISCOVER = "refgraph.discover"
    SPAN_RESOLVE = "refgraph.resolve"
    SPAN_REFERRERS = "refgraph.referrers"

    def __init__(
        self,
        meter_name: str = "refgraph",
        meter_version: str = "1.0.0",
        tracer_name: str = "refgraph",
    ) -> None:
        """Initialize discovery metrics collector.

        Args:
            meter_name: Name for the OpenTelemetry meter.
            meter_version: Version for the meter.
            tracer_name: Name for the OpenTelemetry tracer.
        """
        self._meter = metrics.get_meter(meter_name, meter_version)
        self._tracer: Tracer = trace.get_tracer(tracer_name)

        self._operations_counter: Counter | None = None
        self._referrers_counter: Counter | None = None
        self._duration_histogram: Histogram | None = None

    @property
    def operations_counter(self) -> Counter:
        """Get or create the operations counter."""
        if self._operations_counter is None:
            self._operations_counter = self._meter.create_counter(
                self.OPERATIONS_TOTAL,
                unit="1",
                description="Total number of discovery operations by type, status, and store",
            )
        return self._operations_counter

    @property
    def referrers_counter(self) -> Counter:
        """Get or create the discovered referrers counter."""
        if self._referrers_counter is None:
            self._referrers_counter = self._meter.create_counter(
                self.REFERRERS_DISCOVERED_TOTAL,
                unit="1",
                description="Total number of referrers listed by store",
            )
        return self._referrers_counter

    @property
    def duration_histogram(self) -> Histogram:
        """Get or create the duration histogram."""
        if self._duration_histogram is None:
            self._duration_histogram = self._meter.create_histogram(
                self.OPERATION_DURATION_SECONDS,
                unit="s",
                description="Duration of discovery operations in seconds",
            )
        return self._duration_histogram

    def record_operation(
        self,
        operation: str,
        store: str,
        *,
        success: bool,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record a discovery operation completion.

        Args:
            operation: Operation type (discover, resolve).
            store: Registry repository or layout path.
            success: Whether the operation succeeded.
            labels: Additional labels to add to the metric.
        """
        attributes: dict[str, Any] = {
            "operation": operation,
            "store": self._normalize_store(store),
            "status": "success" if success else "failure",
        }
        if labels:
            attributes.update(labels)

        self.operations_counter.add(1, attributes=attributes)

        logger.debug(
            "discovery_operation_recorded",
            operation=operation,
            store=store,
            success=success,
        )

    def record_duration(
        self,
        operation: str,
        store: str,
        duration_seconds: float,
        *,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record the duration of a discovery operation."""
        attributes: dict[str, Any] = {
            "operation": operation,
            "store": self._normalize_store(store),
        }
        if labels:
            attributes.update(labels)

        self.duration_histogram.record(duration_seconds, attributes=attributes)

    def record_referrers(self, store: str, count: int) -> None:
        """Record the number of referrers listed for one tree level."""
        if count <= 0:
            return
        self.referrers_counter.add(count, attributes={"store": self._normalize_store(store)})

    @contextmanager
    def operation_timer(
        self,
        operation: str,
        store: str,
        *,
        labels: dict[str, str] | None = None,
    ) -> Generator[None, None, None]:
        """Context manager to time a discovery operation.

        Records both duration and success/failure status automatically.

        Args:
            operation: Operation type (discover, resolve).
            store: Registry repository or layout path.
            labels: Additional labels to add to metrics.

        Yields:
            None
        """
        start_time = time.monotonic()
        success = False
        try:
            yield
            success = True
        finally:
            duration = time.monotonic() - start_time
            self.record_duration(operation, store, duration, labels=labels)
            self.record_operation(operation, store, success=success, labels=labels)

    @contextmanager
    def create_span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        """Create a trace span for a discovery operation.

        Args:
            name: Span name (use SPAN_* constants).
            attributes: Optional span attributes.

        Yields:
            The created span for additional attribute setting.

        Example:
            >>> with metrics.create_span(DiscoveryMetrics.SPAN_RESOLVE, {"ref": "v1"}) as span:
            ...     span.set_attribute("refgraph.digest", digest)
        """
        with self._tracer.start_as_current_span(name) as span:
            if attributes:
                for key, value in attributes.items():
                    span.set_attribute(key, value)
            try:
                yield span
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise

    def _normalize_store(self, store: str) -> str:
        """Normalize a registry repository to its hostname for metric labels.

        Layout paths are kept as given.
        """
        if store.startswith("oci://"):
            store = store[6:]
        if store.startswith((".", "/", "~")):
            return store
        if "/" in store:
            return store.split("/")[0]
        return store


_default_metrics: DiscoveryMetrics | None = None


def get_discovery_metrics() -> DiscoveryMetrics:
    """Get the default DiscoveryMetrics singleton."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = DiscoveryMetrics()
    return _default_metrics


def set_discovery_metrics(metrics_instance: DiscoveryMetrics | None) -> None:
    """Set the default DiscoveryMetrics instance (for testing).

    Args:
        metrics_instance: DiscoveryMetrics instance or None to reset.
    """
    global _default_metrics
    _default_metrics = metrics_instance


__all__ = [
    "DiscoveryMetrics",
    "get_discovery_metrics",
    "set_discovery_metrics",
]
