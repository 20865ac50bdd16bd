# backend/consignbook/__init__.py
import logging

from flask import Flask, jsonify

from .config import Config
from .errors import LedgerError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None, channel=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Flask-SQLAlchemy reads the URI during init_app, so overrides go first
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("consignbook").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.consignments import consignments_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(consignments_bp)
    app.register_blueprint(sales_bp)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error: LedgerError):
        return jsonify(error.to_dict()), error.http_status

    # Cache + sync channel for this instance
    from . import state
    state.init_app(app, channel)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
