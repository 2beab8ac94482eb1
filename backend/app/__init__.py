# backend/app/__init__.py
import os

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.transfers import transfers_bp
    from .routes.stock import stock_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(sales_bp)

    allowed_origins = set(app.config.get("CORS_ORIGINS") or [])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Authorization, Content-Type, X-User-Id, X-User-Name, X-User-Email, X-Location-Id"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Schema is created once here, never on the request path
    if app.config.get("AUTO_MIGRATE") and not app.extensions.get("hypepos_migrated"):
        from flask_migrate import upgrade

        with app.app_context():
            upgrade(directory=MIGRATIONS_DIR)
        app.extensions["hypepos_migrated"] = True
        app.logger.info("Database schema upgraded to head")

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
