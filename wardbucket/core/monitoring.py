"""
Monitoring and error tracking for Ward Data Bucket

Integrates with Sentry for error tracking and provides custom metrics.
"""
import logging
from typing import Optional, Dict, Any

from wardbucket.core.config import settings

logger = logging.getLogger(__name__)


def init_sentry() -> None:
    """Initialize Sentry for error tracking."""
    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=f"wardbucket-api@{settings.VERSION}",
        traces_sample_rate=0.1 if settings.ENVIRONMENT == 'production' else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        # Don't send PII
        send_default_pii=False,
        # Filter out health check transactions
        before_send_transaction=_filter_transactions,
    )

    logger.info("Sentry initialized successfully")


def _filter_transactions(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Filter out noisy transactions."""
    transaction = event.get('transaction', '')
    if '/health' in transaction:
        return None
    return event


def capture_exception(error: Exception, extra: Optional[Dict[str, Any]] = None) -> None:
    """Capture an exception to Sentry."""
    if not settings.SENTRY_DSN:
        return

    import sentry_sdk
    with sentry_sdk.push_scope() as scope:
        if extra:
            for key, value in extra.items():
                scope.set_extra(key, value)
        sentry_sdk.capture_exception(error)


def set_user_context(user_id: str, role: Optional[str] = None) -> None:
    """Set user context for error tracking."""
    if not settings.SENTRY_DSN:
        return

    import sentry_sdk
    sentry_sdk.set_user({
        'id': user_id,
        'role': role,
    })


# Simple in-memory metrics (replace with Prometheus/StatsD in production)
class Metrics:
    """Simple metrics collection."""

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, tags)
        self._counters[key] = self._counters.get(key, 0) + value

    def gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Set a gauge value."""
        key = self._make_key(name, tags)
        self._gauges[key] = value

    def get_counter(self, name: str, tags: Optional[Dict[str, str]] = None) -> int:
        key = self._make_key(name, tags)
        return self._counters.get(key, 0)

    def get_all(self) -> Dict[str, Any]:
        """Get all metrics."""
        return {
            'counters': self._counters.copy(),
            'gauges': self._gauges.copy(),
        }

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()

    def _make_key(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        """Create a unique key for a metric."""
        if not tags:
            return name
        tag_str = ','.join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}[{tag_str}]"


# Global metrics instance
metrics = Metrics()


def track_api_request(method: str, path: str, status_code: int, duration_ms: float) -> None:
    """Track an API request."""
    metrics.increment('api.requests.total', tags={'method': method, 'status': str(status_code)})
    metrics.gauge('api.request.duration_ms', duration_ms, tags={'method': method, 'path': path})


def track_geo_operation(operation: str, kind: str) -> None:
    """Track a geo hierarchy mutation (add, update, delete, move)."""
    metrics.increment('geo.operations.total', tags={'operation': operation, 'kind': kind})
