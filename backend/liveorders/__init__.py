# Overview: Flask app factory wiring config, logging, extensions, blueprints and CLI.
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .services.delivery_queue import DeliveryQueue



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    # app.logger is the "liveorders" logger; service module loggers propagate to it
    if isinstance(level, int):
        app.logger.setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    DeliveryQueue().init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.whatsapp import whatsapp_bp
    from .routes.orders import orders_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(whatsapp_bp)
    app.register_blueprint(orders_bp)

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
            response.headers["Access-Control-Allow-Headers"] = "X-Tenant-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
