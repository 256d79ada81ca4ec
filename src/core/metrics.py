"""
Prometheus Metrics for Observability

Tracks pipeline stage latency, transform tool invocations and request outcomes.
Exposes /api/v1/metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Pipeline Latency - Per Stage
pipeline_latency_seconds = Histogram(
    "pipeline_latency_seconds",
    "Time spent in each pipeline stage",
    labelnames=["stage", "status"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0]
)

# Transform Tool Invocations
transform_invocations_total = Counter(
    "transform_invocations_total",
    "Total number of transform tool invocations",
    labelnames=["op", "status"]
)

# Requests Counter
image_requests_total = Counter(
    "image_requests_total",
    "Total number of image processing requests",
    labelnames=["status", "failure_stage"]
)

# Artifacts
processed_images_total = Counter(
    "processed_images_total",
    "Total number of artifacts produced and recorded"
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Application Info
app_info = Info(
    "image_processor",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_stage_latency(stage: str):
    """
    Context manager to track stage latency.

    Usage:
        with track_stage_latency("execute"):
            # do work
    """
    start = time.time()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.time() - start
        pipeline_latency_seconds.labels(stage=stage, status=status).observe(duration)


def record_transform_invocation(op: str, status: str):
    """Record a transform tool invocation."""
    transform_invocations_total.labels(op=op, status=status).inc()


def record_request_completion(status: str, failure_stage: str = "none", images: int = 0):
    """Record request completion."""
    image_requests_total.labels(status=status, failure_stage=failure_stage).inc()
    if images:
        processed_images_total.inc(images)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
