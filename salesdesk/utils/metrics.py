"""Prometheus collectors shared by blueprints and services."""
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, REGISTRY
from prometheus_client import multiprocess
import os

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

# Use multiprocess registry in production with Gunicorn
if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_collector_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_collector_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_collector_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_collector_registry
)

# Sales engine metrics
sales_operations_total = Counter(
    'sales_operations_total',
    'Sales engine operations by outcome',
    ['operation', 'outcome'],
    registry=_collector_registry
)

stock_movements_total = Counter(
    'stock_movements_total',
    'Units moved through the stock ledger',
    ['direction'],
    registry=_collector_registry
)

sales_compensation_failures_total = Counter(
    'sales_compensation_failures_total',
    'Compensating writes that could not be applied (manual reconciliation required)',
    ['operation'],
    registry=_collector_registry
)
