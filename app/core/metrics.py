"""Prometheus metrics for monitoring"""
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry
import time
from functools import wraps
from typing import Callable

registry = CollectorRegistry()

request_count = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=registry
)

request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=registry
)

db_operations = Counter(
    'db_operations_total',
    'Total database operations',
    ['operation', 'table', 'status'],
    registry=registry
)

db_query_duration = Histogram(
    'db_query_duration_seconds',
    'Database query duration in seconds',
    ['table', 'operation'],
    registry=registry
)

cache_hits = Counter(
    'cache_hits_total',
    'Total cache hits',
    ['cache_key'],
    registry=registry
)

cache_misses = Counter(
    'cache_misses_total',
    'Total cache misses',
    ['cache_key'],
    registry=registry
)

rate_limit_exceeded = Counter(
    'rate_limit_exceeded_total',
    'Total rate limit exceeded events',
    ['scope'],
    registry=registry
)

status_transitions = Counter(
    'order_status_transitions_total',
    'Total order status transitions',
    ['status'],
    registry=registry
)

document_sync = Counter(
    'document_sync_total',
    'Accounting document sync attempts by outcome',
    ['kind', 'outcome'],
    registry=registry
)

external_call_duration = Histogram(
    'external_call_duration_seconds',
    'Duration of calls to external collaborators',
    ['collaborator', 'operation'],
    registry=registry
)

notification_deliveries = Counter(
    'notification_deliveries_total',
    'Total notification delivery attempts',
    ['status', 'retry_count'],
    registry=registry
)

outbox_side_effects = Counter(
    'outbox_side_effects_total',
    'Outbox side effects by kind and resulting status',
    ['kind', 'status'],
    registry=registry
)

audit_logs_created = Counter(
    'audit_logs_created_total',
    'Total audit logs created',
    ['action'],
    registry=registry
)

redis_connected = Gauge(
    'redis_connected',
    'Redis connection status (1=connected, 0=disconnected)',
    registry=registry
)

db_connected = Gauge(
    'db_connected',
    'Database connection status (1=connected, 0=disconnected)',
    registry=registry
)


def track_db_operation(operation: str, table: str):
    """Decorator to track database operation metrics"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
                db_operations.labels(
                    operation=operation,
                    table=table,
                    status='success'
                ).inc()
                return result
            except Exception:
                db_operations.labels(
                    operation=operation,
                    table=table,
                    status='error'
                ).inc()
                raise
            finally:
                db_query_duration.labels(
                    table=table,
                    operation=operation
                ).observe(time.time() - start_time)
        return wrapper
    return decorator


def track_external_call(collaborator: str, operation: str):
    """Decorator to time calls to an external collaborator"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                external_call_duration.labels(
                    collaborator=collaborator,
                    operation=operation
                ).observe(time.time() - start_time)
        return wrapper
    return decorator


def get_metrics_text() -> str:
    """Generate Prometheus metrics in text format"""
    from prometheus_client import generate_latest
    return generate_latest(registry).decode('utf-8')
