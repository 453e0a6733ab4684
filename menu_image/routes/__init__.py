"""Route blueprints."""

from menu_image.routes.api_routes import api_bp
from menu_image.routes.web_routes import web_bp

__all__ = ["api_bp", "web_bp"]
