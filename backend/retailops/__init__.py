# backend/retailops/__init__.py
import logging

from flask import Flask, jsonify, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.cache_service import init_cache
    init_cache(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.receipts import receipts_bp
    from .routes.distributions import distributions_bp
    from .routes.payments import payments_bp
    from .routes.invoices import invoices_bp, gift_cards_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(receipts_bp)
    app.register_blueprint(distributions_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(gift_cards_bp)

    @app.errorhandler(404)
    def not_found(_e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS", ()))
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
