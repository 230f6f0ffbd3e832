# backend/creditledger/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.buyers import buyers_bp
    from .routes.suppliers import suppliers_bp
    from .routes.inventory import inventory_bp
    from .routes.cheques import cheques_bp
    from .routes.expenses import expenses_bp
    from .routes.reports import reports_bp
    from .routes.audit import audit_bp
    from .routes.messaging import messaging_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(buyers_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(cheques_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(messaging_bp)

    from .services.fraud_service import install_predicate
    install_predicate(app)

    from .services.sync_service import get_sync_manager, init_sync, load_on_start
    if app.config.get("SYNC_ENABLED"):
        init_sync(app)
        if app.config.get("SYNC_LOAD_ON_START"):
            try:
                load_on_start(app)
            except Exception:
                # Mirror contents must never keep the node from starting.
                app.logger.exception("Loading mirrored snapshot failed; starting from local store")

    @app.after_request
    def schedule_sync(response):
        manager = get_sync_manager(app)
        if (
            manager is not None
            and request.method in MUTATING_METHODS
            and response.status_code < 400
            and not request.path.startswith("/api/sync")
        ):
            manager.schedule()
        return response

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", []):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-User-Id, X-User-Role, X-Branch"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
