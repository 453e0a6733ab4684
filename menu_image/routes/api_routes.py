"""API routes."""

from flask import Blueprint

from menu_image.services import normalize_service

api_bp = Blueprint("api", __name__)

api_bp.add_url_rule(
    "/normalize",
    endpoint="normalize",
    view_func=normalize_service.normalize_upload,
    methods=["POST"],
)
