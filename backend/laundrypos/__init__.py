# backend/laundrypos/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.notification_service import init_gateway
    init_gateway(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.customers import customers_bp
    from .routes.orders import orders_bp
    from .routes.cash import cash_bp
    from .routes.expenses import expenses_bp
    from .routes.ledger import ledger_bp
    from .routes.loyalty import loyalty_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cash_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(loyalty_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
