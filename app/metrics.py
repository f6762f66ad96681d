from prometheus_client import Counter, Histogram, Gauge
# Prometheus metrics definitions

# Extraction calls issued to the last-frame service
extraction_requests_total = Counter(
    "extraction_requests_total", "Total extraction requests"
)

# The service decodes the whole upload, so buckets go well past a minute
_extraction_latency_buckets = (
    1.0,
    2.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
)

extraction_latency_seconds = Histogram(
    "extraction_latency_seconds",
    "Extraction call latency",
    buckets=_extraction_latency_buckets,
)

# Non-2xx answers and transport errors
extraction_fail_total = Counter(
    "extraction_fail_total", "Total failed extraction calls"
)

# Attempts rejected before the network call because the window is used up
quota_reject_total = Counter(
    "quota_reject_total", "Number of quota rejected extractions"
)

# Files refused by the validator, labelled by reason
validation_reject_total = Counter(
    "validation_reject_total", "Number of rejected uploads", ["reason"]
)

probe_fail_total = Counter(
    "probe_fail_total", "Number of failed metadata probes"
)

# Usage counters zeroed by the reconciliation pass
usage_reset_total = Counter(
    "usage_reset_total", "Number of usage windows reset by reconciliation"
)

# Local blobs (uploads, probe aliases, frames) not yet revoked
blob_handles_open = Gauge(
    "blob_handles_open", "Number of live revocable handles"
)

__all__ = [
    "extraction_requests_total",
    "extraction_latency_seconds",
    "extraction_fail_total",
    "quota_reject_total",
    "validation_reject_total",
    "probe_fail_total",
    "usage_reset_total",
    "blob_handles_open",
]
