# posledger/__init__.py
from flask import Flask, jsonify

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    """
    Build the ledger service.

    test_config is applied over Config before the extensions bind, so tests
    can point SQLALCHEMY_DATABASE_URI at an in-memory database.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes import ALL_BLUEPRINTS

    for blueprint in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint)

    # Unknown URLs and methods answer in the same JSON shape as the API
    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return jsonify({"error": "Method not allowed"}), 405

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
