"""Application configuration loading."""

from __future__ import annotations

from dataclasses import dataclass

from menu_image.core.settings import get_pipeline_settings
from menu_image.services.normalize_service import MULTIPART_SLACK_BYTES


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime configuration values consumed by the Flask app."""

    max_content_length: int


def load_runtime_config() -> RuntimeConfig:
    """Load runtime configuration from the environment-backed settings."""
    pipeline = get_pipeline_settings()
    return RuntimeConfig(
        max_content_length=pipeline.max_input_bytes + MULTIPART_SLACK_BYTES,
    )
