# backend/theaterpos/__init__.py
from __future__ import annotations

import logging

from flask import Flask, request

from .config import Config, ConfigurationError
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # The process never starts against an implicit datastore
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        raise ConfigurationError("DATABASE_URL is not set; refusing to start without a datastore")

    log_level = app.config.get("LOG_LEVEL")
    if log_level:
        app.logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.theaters import theaters_bp
    from .routes.products import products_bp
    from .routes.roles import roles_bp
    from .routes.page_access import page_access_bp
    from .routes.otp import otp_bp
    from .routes.settings import settings_bp
    from .routes.stock_history import stock_history_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(theaters_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(page_access_bp)
    app.register_blueprint(otp_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(stock_history_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    # Storage-owned TTL reaper for OTP rows
    if not app.config.get("TESTING") and app.config.get("OTP_REAPER_INTERVAL_SECONDS", 0) > 0:
        from .services import maintenance_service
        maintenance_service.start_otp_reaper(app)

    return app
