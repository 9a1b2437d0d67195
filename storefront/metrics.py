"""Prometheus metrics for the storefront.

HTTP request metrics come from ``prometheus_flask_exporter``; this module adds
database timing, error responses and checkout/cart business counters.
"""
import time

from flask import request
from prometheus_client import Counter, Histogram
from sqlalchemy import event

from models import db

DB_QUERY_DURATION = Histogram(
    "storefront_db_query_duration_seconds",
    "Database query duration in seconds",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

HTTP_ERRORS = Counter(
    "storefront_http_errors_total",
    "HTTP responses with status >= 400",
    ["endpoint", "method", "code"],
)

CHECKOUT_STEPS = Counter(
    "checkout_steps_total",
    "Checkout step outcomes",
    ["step", "outcome"],
)

CART_MERGE_LINES = Counter(
    "cart_merge_lines_total",
    "Guest cart lines submitted to a server cart on login",
    ["outcome"],
)

ORDERS_PLACED = Counter(
    "orders_placed_total",
    "Orders persisted after a confirmed payment",
    ["currency"],
)


def _time_queries(engine):
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("_query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        starts = conn.info.get("_query_start_time")
        if starts:
            DB_QUERY_DURATION.observe(time.perf_counter() - starts.pop())


def init_app(app):
    """Attach query timing to the app's engine and count error responses."""
    with app.app_context():
        _time_queries(db.engine)

    @app.after_request
    def count_errors(resp):
        if resp.status_code >= 400:
            HTTP_ERRORS.labels(request.endpoint or "unknown", request.method, resp.status_code).inc()
        return resp
