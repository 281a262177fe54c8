import logging
import os
import time

from quart import Quart, jsonify, request
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from werkzeug.exceptions import HTTPException

from .common.config import settings
from .common.database import init_db
from .common.errors import StorefrontError
from .common.kafka_client import close_producer
from .common.metrics import REQUEST_COUNT, REQUEST_LATENCY
from .common.redis_client import close_redis
from .cart.controller import bp as cart_bp
from .inventory.controller import bp as inventory_bp
from .orders.controller import bp as orders_bp
from .payments.controller import bp as payments_bp
from .seed import seed_products


log = logging.getLogger(__name__)

# Get instance ID from environment
INSTANCE_ID = os.getenv("INSTANCE_ID", "unknown")


def _metrics_endpoint(path: str) -> str:
    # Group dynamic routes to keep label cardinality bounded
    if path.startswith("/products/") and path.endswith("/restock"):
        return "/products/<id>/restock"
    if path.startswith("/products/") and path.endswith("/reduce-stock"):
        return "/products/<id>/reduce-stock"
    if path.startswith("/products/") and path != "/products/search":
        return "/products/<id>"
    if path.startswith("/orders/"):
        return "/orders/<id>"
    if path.startswith("/cart/"):
        return "/cart/<user_id>"
    return path


def create_app() -> Quart:
    app = Quart(__name__)
    app.config["PAYMENT_RNG"] = None

    # Blueprints
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(cart_bp)

    @app.errorhandler(StorefrontError)
    async def handle_storefront_error(error: StorefrontError):
        log.warning("Request rejected | %s %s error=%s message=%s", request.method, request.path, error.code, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    async def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            body = {"success": False, "error": error.name.lower().replace(" ", "_"), "message": error.description}
            return jsonify(body), error.code
        log.exception("Unhandled error | %s %s", request.method, request.path)
        body = {"success": False, "error": "internal_error", "message": "Failed to process the request"}
        return jsonify(body), 500

    @app.before_request
    async def before_request():
        # Store start time
        request._start_time = time.time()
        log.debug("[Instance %s] %s %s", INSTANCE_ID, request.method, request.path)

    @app.after_request
    async def after_request(response):
        try:
            if hasattr(request, "_start_time"):
                duration = time.time() - request._start_time
                endpoint = _metrics_endpoint(request.path)
                REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status=str(response.status_code)
                ).inc()
                response.headers["X-Instance-ID"] = INSTANCE_ID
        except Exception as e:
            log.error("Error recording metrics: %s", e)
        return response

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL)
        log.info("Initializing database...")
        await init_db()
        if settings.SEED_ON_STARTUP:
            await seed_products()
        log.info("Database ready.")

    @app.after_serving
    async def shutdown():
        await close_producer()
        await close_redis()
        log.info("Shutdown complete.")

    return app
