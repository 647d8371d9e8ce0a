# backend/filtertrack/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _engine_options(config) -> dict:
    """Bound every ledger call by STORE_TIMEOUT_SECONDS at the driver level."""
    options = dict(config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    uri = config.get("SQLALCHEMY_DATABASE_URI") or ""
    timeout = config["STORE_TIMEOUT_SECONDS"]

    connect_args = dict(options.get("connect_args") or {})
    if uri.startswith("sqlite"):
        # busy timeout: how long a writer waits on a locked database file
        connect_args.setdefault("timeout", timeout)
        connect_args.setdefault("check_same_thread", False)
    elif uri.startswith("postgresql"):
        connect_args.setdefault("connect_timeout", int(timeout))
        connect_args.setdefault("options", f"-c statement_timeout={int(timeout * 1000)}")
    else:
        options.setdefault("pool_pre_ping", True)

    options["connect_args"] = connect_args
    return options


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app.config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.scans import scans_bp
    from .routes.records import records_bp
    from .routes.projections import projections_bp
    from .routes.clients import clients_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(scans_bp)
    app.register_blueprint(records_bp)
    app.register_blueprint(projections_bp)
    app.register_blueprint(clients_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = app.config.get("CORS_ALLOWED_ORIGINS") or set()
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-Actor-Identity, X-Actor-Role, X-Actor-Client"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
