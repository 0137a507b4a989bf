"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- Poll job ticks per job kind and outcome
- Session renewals
- Streaming toggle requests
- Registered accessory count
"""
import logging
from prometheus_client import (
    Counter, Gauge, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

# Custom registry to avoid conflicts with the default registry
REGISTRY = CollectorRegistry()

app_info = Info(
    'nestcam',
    'Bridge information',
    registry=REGISTRY
)

poll_ticks_total = Counter(
    'nestcam_poll_ticks_total',
    'Total poll job ticks',
    ['job', 'result'],  # job: refresh, alerts; result: success, error, skipped
    registry=REGISTRY
)

session_renewals_total = Counter(
    'nestcam_session_renewals_total',
    'Total session renewal attempts',
    ['result'],
    registry=REGISTRY
)

toggle_requests_total = Counter(
    'nestcam_toggle_requests_total',
    'Total streaming toggle requests',
    ['result'],  # confirmed, failed
    registry=REGISTRY
)

accessories_registered = Gauge(
    'nestcam_accessories_registered',
    'Number of camera accessories currently registered on the bridge',
    registry=REGISTRY
)


def init_metrics(version: str, field_test: bool = False) -> None:
    """Record static bridge information."""
    app_info.info({
        'version': version,
        'field_test': str(field_test).lower(),
    })


def record_poll_tick(job: str, result: str) -> None:
    poll_ticks_total.labels(job=job, result=result).inc()


def record_session_renewal(result: str) -> None:
    session_renewals_total.labels(result=result).inc()


def record_toggle_request(result: str) -> None:
    toggle_requests_total.labels(result=result).inc()


def update_accessory_count(count: int) -> None:
    accessories_registered.set(count)


def get_metrics() -> bytes:
    """Render the registry in Prometheus text format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
