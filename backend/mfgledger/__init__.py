# backend/mfgledger/__init__.py
from __future__ import annotations

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import LedgerError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before the extensions bind their engines
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.organizations import organizations_bp
    from .routes.items import items_bp
    from .routes.transactions import transactions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(organizations_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(transactions_bp)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(e: LedgerError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.kind, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        # Routing errors (404, 405, ...) keep their own responses
        if isinstance(e, HTTPException):
            return e
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error", "kind": "internal_error"}), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
