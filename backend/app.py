"""
Flask Application Factory

Serves the admin API (job submission, run listing, queue depths). Workers
and the scheduler also call create_app() so pipelines run inside an app
context with the same database binding.
"""
import logging
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import Config
from models.database import db

logger = logging.getLogger(__name__)


def _error_response(code: str, message: str, status: int):
    response = jsonify({"error": {"code": code, "message": message}})
    response.status_code = status
    return response


def create_app(config_overrides=None, redis_client=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        """Preserve status codes of 404/405/... in the standard envelope."""
        return _error_response(error.name.upper().replace(" ", "_"), error.description, error.code)

    @app.errorhandler(Exception)
    def handle_exception(error):
        if isinstance(error, HTTPException):
            return handle_http_exception(error)
        logger.exception("unhandled error err=%s", error)
        return _error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)

    # Initialize SQLAlchemy
    db.init_app(app)

    # Celery and queue handles are built once per process; Redis connects lazily
    from jobs.celery_app import celery_init_app
    from jobs.queue import build_queues, redis_from_config
    celery_app = celery_init_app(app)
    if redis_client is None:
        redis_client = redis_from_config(app.config)
    app.extensions["redis"] = redis_client
    app.extensions["job_queues"] = build_queues(celery_app, redis_client)

    with app.app_context():
        # Import all models before create_all so every table is registered
        import models  # noqa: F401

        env = (os.environ.get("ENV") or os.environ.get("FLASK_ENV") or os.environ.get("APP_ENV") or "").lower()
        is_prod = env in {"prod", "production"}
        allow_create = app.config.get("TESTING") or not is_prod
        if allow_create:
            db.create_all()
            logger.info("database initialized")
        else:
            logger.info("database ready (schema creation disabled in production)")

    # Register routes
    from routes.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    return app


def run_app():
    """Main entry point for local development - starts Flask's dev server."""
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=app.config.get("DEBUG", False))


if __name__ == "__main__":
    run_app()
