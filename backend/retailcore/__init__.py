# backend/retailcore/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config=None, *, store=None, catalog=None, policy=None, publisher=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Service modules log under "retailcore.*", i.e. below app.logger
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Wire the consistency core
    from .collaborators import StaticPolicyProvider
    from .core import build_core
    from .persistence import SqlAlchemyStore
    from .services.concurrency import RetryPolicy

    if store is None:
        store = SqlAlchemyStore.from_config(app.config)
    if policy is None:
        policy = StaticPolicyProvider.from_config(app.config)
    app.extensions["retailcore"] = build_core(
        store,
        catalog=catalog,
        policy=policy,
        publisher=publisher,
        retry=RetryPolicy.from_config(app.config),
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.transactions import transactions_bp
    from .routes.transfers import transfers_bp
    from .routes.returns import returns_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(returns_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
