# backend/cardvault/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before extensions bind to the database URI
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.resources import cards_bp, vouchers_bp, gift_cards_bp
    from .routes.shares import card_shares_bp, voucher_shares_bp, gift_card_shares_bp, shared_users_bp
    from .routes.gift_card_transactions import gift_card_transactions_bp
    from .routes.merchants import merchants_bp
    from .routes.admin import admin_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(cards_bp)
    app.register_blueprint(vouchers_bp)
    app.register_blueprint(gift_cards_bp)
    app.register_blueprint(card_shares_bp)
    app.register_blueprint(voucher_shares_bp)
    app.register_blueprint(gift_card_shares_bp)
    app.register_blueprint(shared_users_bp)
    app.register_blueprint(gift_card_transactions_bp)
    app.register_blueprint(merchants_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
