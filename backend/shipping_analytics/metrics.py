"""
Prometheus metrics for the analytics service.

Exposed on the /metrics endpoint next to the HTTP metrics collected by
prometheus-fastapi-instrumentator.

Metrics include:
- Dataset load counters and timings
- Size of the active dataset
- Upload volume and unhandled application errors
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Dataset loads by outcome (success/error) and manifest format (plain/gzip/zip)
dataset_loads_total = Counter(
    "dataset_loads_total",
    "Total number of dataset loads",
    ["status", "format"],
)

# Decode + index build time, successful or not
dataset_load_duration_seconds = Histogram(
    "dataset_load_duration_seconds",
    "Time spent decoding and indexing a dataset in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

dataset_records = Gauge(
    "dataset_records",
    "Number of records in the active dataset",
)

dataset_consignees = Gauge(
    "dataset_consignees",
    "Number of consignee groups in the active dataset",
)

file_upload_bytes = Counter(
    "file_upload_bytes",
    "Total bytes uploaded",
)

app_errors_total = Counter(
    "app_errors_total",
    "Application errors by endpoint and type",
    ["endpoint", "error_type"],
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format.

    Returns:
        bytes: Prometheus-formatted metrics data.
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
