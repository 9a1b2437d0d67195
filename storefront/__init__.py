from flask import Flask, request, g
from dotenv import load_dotenv
from storefront.config import get_config_class
from storefront.logging import configure_logging
from storefront.errors import errors_bp
from storefront.cli import register_cli
from storefront.api import register_api_v1
from storefront.services.payments import init_payments
from storefront.version import API_PREFIX
from storefront import metrics as storefront_metrics
from flask_cors import CORS
from flasgger import Swagger
from prometheus_client import CollectorRegistry
from prometheus_flask_exporter import PrometheusMetrics
from flask_migrate import Migrate
import extensions
import logging
import os
import uuid
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from storefront.telemetry import init_tracing
from models import db

EXPOSED_HEADERS = ("X-Request-ID", "traceparent")


def _init_docs(app):
    Swagger(
        app,
        config={
            "headers": [],
            "specs": [
                {
                    "endpoint": "apispec",
                    "route": "/apispec.json",
                    "rule_filter": lambda rule: rule.rule.startswith(f"{API_PREFIX}/"),
                    "model_filter": lambda tag: True,
                }
            ],
            "swagger_ui": True,
            "specs_route": "/docs/",
        },
        template={
            "info": {"title": "Storefront API", "version": "1.0.0"},
            "tags": [
                {"name": "Cart", "description": "Guest and customer carts"},
                {"name": "Checkout", "description": "Payment and order placement"},
                {"name": "Admin", "description": "Order management"},
            ],
        },
    )


def _init_metrics(app):
    if app.config.get("TESTING"):
        # one registry per test app, the default one rejects duplicate names
        PrometheusMetrics(app, path="/metrics", registry=CollectorRegistry())
    else:
        metrics = PrometheusMetrics(app, path="/metrics")
        if not os.environ.get("METRICS_APP_INFO_SET"):
            metrics.info("app_info", "Application info", version="1.0.0")
            os.environ["METRICS_APP_INFO_SET"] = "1"
    storefront_metrics.init_app(app)


def _init_cors(app):
    allowed = app.config.get("CORS_ALLOWED_ORIGINS", "*")
    if isinstance(allowed, str):
        allowed = allowed.strip()
        origins = "*" if allowed == "*" else [o.strip() for o in allowed.split(",") if o.strip()]
    else:
        origins = allowed or "*"
    # the session cookie carries the guest cart, so credentials must be allowed
    CORS(app, origins=origins, supports_credentials=True, expose_headers=list(EXPOSED_HEADERS))


def _register_request_hooks(app):
    @app.before_request
    def _set_request_id():
        incoming = request.headers.get("X-Request-ID")
        g.request_id = (incoming or uuid.uuid4().hex)[:100]
        app.logger.debug("request start %s %s", request.method, request.path)

    @app.after_request
    def _decorate_response(resp):
        rid = getattr(g, "request_id", None)
        if rid:
            resp.headers["X-Request-ID"] = rid

        carrier = {}
        TraceContextTextMapPropagator().inject(carrier)
        if carrier.get("traceparent"):
            resp.headers["traceparent"] = carrier["traceparent"]

        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        exposed = [h.strip() for h in resp.headers.get("Access-Control-Expose-Headers", "").split(",") if h.strip()]
        for name in EXPOSED_HEADERS:
            if name not in exposed:
                exposed.append(name)
        resp.headers["Access-Control-Expose-Headers"] = ",".join(exposed)
        return resp


def create_app(config_object=None):
    """Application factory."""
    load_dotenv()
    app = Flask(__name__)
    app.config.from_object(config_object if config_object is not None else get_config_class())

    configure_logging(app)
    register_cli(app)

    extensions.limiter.init_app(app)
    app.limiter = extensions.limiter
    db.init_app(app)
    Migrate(app, db, compare_type=True, render_as_batch=True)
    _init_docs(app)
    _init_metrics(app)
    _init_cors(app)

    app.register_blueprint(errors_bp)
    if app.config.get("TESTING"):
        from storefront.test_support import test_support_bp
        app.register_blueprint(test_support_bp)
        app.register_blueprint(test_support_bp, url_prefix=f"{API_PREFIX}/test_support", name="test_support_bp_v1")

    register_api_v1(app)
    init_payments(app)
    _register_request_hooks(app)

    if app.config.get("TRACING_ENABLED"):
        init_tracing(app)
    if app.config.get("DEBUG") or app.config.get("TESTING"):
        with app.app_context():
            db.create_all()
            logging.getLogger(__name__).info("Tables created")

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    return app
