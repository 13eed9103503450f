# backend/fabricstock/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config=None) -> Flask:
    """
    Application factory.

    `config` may be a config class (e.g. TestConfig) or a mapping of
    overrides applied on top of Config.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if isinstance(config, dict):
        app.config.update(config)
    elif config is not None:
        app.config.from_object(config)

    logging.getLogger("fabricstock").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.parcels import parcels_bp
    from .routes.cashflows import cashflows_bp
    from .routes.expenses import expenses_bp
    from .routes.cuts import cuts_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(parcels_bp)
    app.register_blueprint(cashflows_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(cuts_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                f"{app.config['AUTH_USER_HEADER']}, Content-Type"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    # Background auto-completion of Delivered orders
    if app.config.get("AUTO_COMPLETE_SWEEPER") and not app.testing:
        from .services.sweeper import AutoCompletionSweeper
        sweeper = AutoCompletionSweeper(app, app.config["SWEEP_INTERVAL_SECONDS"])
        app.extensions["fabricstock.sweeper"] = sweeper
        sweeper.start()

    return app
