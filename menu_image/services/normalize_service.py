"""Flask-facing service layer: upload parsing, auth, admission control and health."""

import base64
import binascii
import contextlib
import io
import logging
import os
import sys
import threading
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, jsonify, request, send_file
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge

from menu_image.core.exceptions import NormalizeError, ProcessingTimeoutError
from menu_image.core.settings import (
    describe_settings,
    get_pipeline_settings,
    get_service_settings,
)
from menu_image.engine.commands import CommandRunner, Deadline, SubprocessRunner, find_command
from menu_image.engine.encode import ENCODER_CANDIDATES
from menu_image.engine.pipeline import normalize_to_webp_with_report
from menu_image.engine.render import OFFICE_CANDIDATES, PDFTOPPM_CANDIDATES

# Config
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

# Multipart framing overhead allowed on top of the raw input ceiling.
MULTIPART_SLACK_BYTES = 1024 * 1024
UPLOAD_FIELDS = ("image", "file")
RUNNER_CONFIG_KEY = "COMMAND_RUNNER"

_slots_lock = threading.Lock()
_conversion_slots: Optional[threading.BoundedSemaphore] = None


def _get_conversion_slots() -> threading.BoundedSemaphore:
    global _conversion_slots
    with _slots_lock:
        if _conversion_slots is None:
            _conversion_slots = threading.BoundedSemaphore(
                get_service_settings().max_active_conversions
            )
        return _conversion_slots


@contextlib.contextmanager
def _conversion_slot():
    """Yield True when a slot was free, False when the server is saturated."""
    slots = _get_conversion_slots()
    acquired = slots.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            slots.release()


def _tool_status(runner: CommandRunner) -> Dict[str, Dict[str, Any]]:
    tools = {
        "pdf_rasterizer": PDFTOPPM_CANDIDATES,
        "document_converter": OFFICE_CANDIDATES,
        "image_encoder": ENCODER_CANDIDATES,
    }
    status = {}
    for label, candidates in tools.items():
        path = find_command(runner, candidates)
        status[label] = {"available": path is not None, "command": path or "missing"}
    return status


def log_effective_config() -> None:
    settings = get_pipeline_settings()
    service = get_service_settings()
    logger.info("=" * 60)
    logger.info("MENU IMAGE NORMALIZER - EFFECTIVE CONFIG")
    for key, value in describe_settings(settings).items():
        logger.info(f"  {key:<22}: {value}")
    logger.info(f"  {'max_active_conversions':<22}: {service.max_active_conversions}")
    logger.info(f"  {'auth':<22}: {'bearer token' if service.api_token else 'open'}")
    for label, info in _tool_status(SubprocessRunner()).items():
        if info["available"]:
            logger.info(f"  {label:<22}: {info['command']}")
        else:
            logger.warning(f"  {label:<22}: MISSING")
    logger.info("=" * 60)


def configure_app(app) -> None:
    """Apply Flask app config values required by this service layer."""
    app.config.setdefault(RUNNER_CONFIG_KEY, SubprocessRunner())


def register_error_handlers(app) -> None:
    """Register HTTP and framework error handlers."""
    app.register_error_handler(RequestEntityTooLarge, handle_large_file)
    app.register_error_handler(NormalizeError, handle_normalize_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_error)


def require_auth(f):
    """Decorator to require Bearer token authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        api_token = get_service_settings().api_token
        if not api_token:
            return f(*args, **kwargs)  # No token configured = open access

        auth_header = request.headers.get('Authorization')
        if not auth_header:
            logger.warning(f"Missing Authorization header on {request.path}")
            return jsonify({"success": False, "error": "Missing Authorization header"}), 401

        if not auth_header.startswith('Bearer '):
            logger.warning(f"Invalid Authorization format on {request.path}")
            return jsonify({"success": False, "error": "Authorization must use Bearer token format"}), 401

        if auth_header[7:] != api_token:
            logger.warning(f"Invalid token on {request.path}")
            return jsonify({"success": False, "error": "Invalid token"}), 403

        return f(*args, **kwargs)
    return decorated


def create_error_response(error: Exception, status_code: int = 500):
    """Create the standard JSON error envelope."""
    if isinstance(error, NormalizeError):
        return jsonify({
            "success": False,
            "error": error.message,
            "error_type": error.error_type,
            "error_message": error.message,
        }), status_code

    message = getattr(error, "description", None) or str(error)
    return jsonify({
        "success": False,
        "error": message,
        "error_type": "UnknownError",
        "error_message": message,
    }), status_code


def get_error_status_code(error: Exception) -> int:
    """Map exception type to appropriate HTTP status code."""
    if isinstance(error, NormalizeError):
        return error.status_code
    if isinstance(error, ValueError):
        return 400
    return 500


# Error handlers
def handle_large_file(e):
    max_mb = get_pipeline_settings().max_input_bytes // (1024 * 1024)
    message = f"File too large (max {max_mb}MB)"
    return jsonify({
        "success": False,
        "error": message,
        "error_type": "FileTooLarge",
        "error_message": message,
    }), 413


def handle_normalize_error(e):
    status = get_error_status_code(e)
    if status >= 500:
        logger.error(f"[normalize] {e.error_type}: {e.message}")
    else:
        logger.info(f"[normalize] {e.error_type}: {e.message}")
    return create_error_response(e, status)


def handle_http_exception(e):
    if isinstance(e, NotFound):
        logger.info("404 %s %s", request.method, request.path)
    else:
        logger.warning("HTTP %s on %s %s: %s", e.code, request.method, request.path, e.description)
    return create_error_response(e, e.code or 400)


def handle_error(e):
    logger.exception("Unhandled error")
    return create_error_response(e, get_error_status_code(e))


def _request_error(message: str, status: int = 400, error_type: str = "InvalidRequest"):
    return jsonify({
        "success": False,
        "error": message,
        "error_type": error_type,
        "error_message": message,
    }), status


def _read_upload():
    """Return ``(data, filename, content_type)`` from the request, or an error response."""
    if request.is_json:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict) or not payload:
            return None, _request_error("Invalid JSON body")
        encoded = payload.get("file_content_base64")
        if not isinstance(encoded, str):
            return None, _request_error("Missing file_content_base64")
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            return None, _request_error("Invalid base64")
        filename = payload.get("filename") if isinstance(payload.get("filename"), str) else ""
        content_type = payload.get("content_type") if isinstance(payload.get("content_type"), str) else ""
        return (data, filename, content_type), None

    for field in UPLOAD_FIELDS:
        upload = request.files.get(field)
        if upload is not None:
            return (upload.read(), upload.filename or "", upload.mimetype or ""), None
    return None, _request_error("No image file provided")


# Routes
def health():
    """Health check endpoint with tool discovery and limits."""
    return jsonify(build_health_snapshot())


def build_health_snapshot() -> Dict[str, Any]:
    runner = current_app.config.get(RUNNER_CONFIG_KEY) or SubprocessRunner()
    tools = _tool_status(runner)
    healthy = all(info["available"] for info in tools.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "instance_id": os.environ.get("WEBSITE_INSTANCE_ID", "local"),
        "tools": tools,
        "limits": describe_settings(get_pipeline_settings()),
        "max_active_conversions": get_service_settings().max_active_conversions,
    }


@require_auth
def normalize_upload():
    """
    Normalize one uploaded file into a WebP thumbnail.

    Accepts:
    - multipart/form-data with an 'image' or 'file' field
    - application/json with 'file_content_base64', 'filename', 'content_type'

    Returns the WebP bytes, or a JSON error envelope.
    """
    upload, error_response = _read_upload()
    if error_response is not None:
        return error_response
    data, filename, content_type = upload

    settings = get_pipeline_settings()
    runner = current_app.config.get(RUNNER_CONFIG_KEY) or SubprocessRunner()

    with _conversion_slot() as acquired:
        if not acquired:
            logger.warning(f"[normalize] Rejected '{filename}': all conversion slots busy")
            return _request_error(
                "Server is busy converting other files. Please retry shortly.",
                status=503,
                error_type="ServerBusy",
            )
        deadline = Deadline(settings.timeout_s)
        try:
            result = normalize_to_webp_with_report(
                deadline, data, filename, content_type, runner=runner, settings=settings
            )
        except ProcessingTimeoutError:
            logger.warning(f"[normalize] '{filename}' exceeded {settings.timeout_s}s deadline")
            raise

    stem = os.path.splitext(os.path.basename(filename or ""))[0] or "image"
    response = send_file(
        io.BytesIO(result.data),
        mimetype="image/webp",
        as_attachment=False,
        download_name=f"{stem}.webp",
    )
    response.headers["X-Output-Bytes"] = str(len(result.data))
    response.headers["X-Source-Kind"] = result.kind.value
    response.headers["X-Encode-Dimension"] = str(result.attempt.dimension)
    response.headers["X-Encode-Quality"] = str(result.attempt.quality)
    return response
