"""Flask app factory."""

from __future__ import annotations

from flask import Flask

from menu_image import bootstrap
from menu_image.config import load_runtime_config
from menu_image.routes.api_routes import api_bp
from menu_image.routes.web_routes import web_bp
from menu_image.services import normalize_service


def create_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    runtime_config = load_runtime_config()
    app.config["MAX_CONTENT_LENGTH"] = runtime_config.max_content_length
    normalize_service.configure_app(app)

    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)
    normalize_service.register_error_handlers(app)

    bootstrap.bootstrap_runtime()
    return app
