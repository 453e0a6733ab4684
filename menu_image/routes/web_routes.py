"""Health routes."""

from flask import Blueprint

from menu_image.services import normalize_service

web_bp = Blueprint("web", __name__)


@web_bp.get("/health")
def health():
    return normalize_service.health()
