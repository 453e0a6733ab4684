"""Centralized runtime settings with validation and effective-value reporting."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from menu_image.core.utils import (
    env_bool,
    env_float,
    get_effective_cpu_count,
    is_strictly_decreasing,
    parse_int_list,
)

logger = logging.getLogger(__name__)

MAX_INPUT_BYTES = 10 * 1024 * 1024
MAX_OUTPUT_BYTES = 150 * 1024
DEFAULT_DIMENSIONS = (1700, 1500, 1300, 1150, 1000, 900, 820, 740, 660, 580, 520, 460)
DEFAULT_QUALITIES = (88, 82, 76, 70, 64, 58, 52, 46, 40, 34, 28)
DEFAULT_WEBP_METHOD = 6
DEFAULT_CONVERSION_TIMEOUT_S = 120.0


def _validate_grid(name: str, values: tuple, upper: Optional[int] = None) -> None:
    if not values:
        raise ValueError(f"{name} must not be empty")
    if any(v <= 0 for v in values):
        raise ValueError(f"{name} values must be positive")
    if upper is not None and any(v > upper for v in values):
        raise ValueError(f"{name} values must be <= {upper}")
    if not is_strictly_decreasing(values):
        raise ValueError(f"{name} must be strictly decreasing")


@dataclass(frozen=True)
class PipelineSettings:
    """Limits and search grids for one normalization run.

    The encoder scans ``dimensions`` (outer) and ``qualities`` (inner) in
    order and keeps the first output at or under ``max_output_bytes``.
    """

    max_input_bytes: int = MAX_INPUT_BYTES
    max_output_bytes: int = MAX_OUTPUT_BYTES
    dimensions: tuple = DEFAULT_DIMENSIONS
    qualities: tuple = DEFAULT_QUALITIES
    webp_method: int = DEFAULT_WEBP_METHOD
    timeout_s: Optional[float] = DEFAULT_CONVERSION_TIMEOUT_S
    workspace_root: Optional[Path] = None
    pdf_precheck_enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "dimensions", tuple(self.dimensions))
        object.__setattr__(self, "qualities", tuple(self.qualities))
        _validate_grid("dimensions", self.dimensions)
        _validate_grid("qualities", self.qualities, upper=100)
        if self.max_input_bytes <= 0 or self.max_output_bytes <= 0:
            raise ValueError("byte limits must be positive")
        if not 0 <= self.webp_method <= 6:
            raise ValueError("webp_method must be between 0 and 6")

    @property
    def grid_size(self) -> int:
        return len(self.dimensions) * len(self.qualities)


@dataclass(frozen=True)
class ServiceSettings:
    api_token: Optional[str] = None
    max_active_conversions: int = 1


def _parse_positive_int(raw: Optional[str], *, name: str) -> Optional[int]:
    if raw is None:
        return None
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        logger.warning("[settings] Invalid %s=%s; using default", name, raw)
        return None
    if value <= 0:
        logger.warning("[settings] Non-positive %s=%s; using default", name, raw)
        return None
    return value


def _parse_grid(name: str, default: tuple, upper: Optional[int] = None) -> tuple:
    raw = os.environ.get(name)
    if raw is None:
        return default
    values = parse_int_list(raw)
    if values is None:
        logger.warning("[settings] Invalid %s=%s; using default", name, raw)
        return default
    try:
        _validate_grid(name, values, upper=upper)
    except ValueError as e:
        logger.warning("[settings] Rejected %s=%s (%s); using default", name, raw, e)
        return default
    return values


@lru_cache(maxsize=1)
def get_pipeline_settings() -> PipelineSettings:
    max_input = _parse_positive_int(os.environ.get("MAX_INPUT_BYTES"), name="MAX_INPUT_BYTES")
    max_output = _parse_positive_int(os.environ.get("MAX_OUTPUT_BYTES"), name="MAX_OUTPUT_BYTES")

    raw_method = os.environ.get("WEBP_METHOD")
    webp_method = DEFAULT_WEBP_METHOD
    if raw_method is not None:
        try:
            webp_method = max(0, min(6, int(raw_method)))
        except ValueError:
            logger.warning("[settings] Invalid WEBP_METHOD=%s; using %s", raw_method, DEFAULT_WEBP_METHOD)

    timeout_s: Optional[float] = env_float("CONVERSION_TIMEOUT_S", DEFAULT_CONVERSION_TIMEOUT_S)
    if timeout_s is not None and timeout_s <= 0:
        # Non-positive disables the default deadline.
        timeout_s = None

    raw_root = (os.environ.get("WORKSPACE_ROOT") or "").strip()
    workspace_root = Path(raw_root) if raw_root else None

    return PipelineSettings(
        max_input_bytes=max_input or MAX_INPUT_BYTES,
        max_output_bytes=max_output or MAX_OUTPUT_BYTES,
        dimensions=_parse_grid("ENCODE_DIMENSIONS", DEFAULT_DIMENSIONS),
        qualities=_parse_grid("ENCODE_QUALITIES", DEFAULT_QUALITIES, upper=100),
        webp_method=webp_method,
        timeout_s=timeout_s,
        workspace_root=workspace_root,
        pdf_precheck_enabled=env_bool("PDF_PRECHECK_ENABLED", True),
    )


@lru_cache(maxsize=1)
def get_service_settings() -> ServiceSettings:
    effective_cpu = get_effective_cpu_count()
    slots = _parse_positive_int(os.environ.get("MAX_ACTIVE_CONVERSIONS"), name="MAX_ACTIVE_CONVERSIONS")
    return ServiceSettings(
        api_token=os.environ.get("API_TOKEN") or None,
        max_active_conversions=slots or max(1, effective_cpu),
    )


def describe_settings(settings: PipelineSettings) -> Dict[str, Any]:
    """Effective values for logs and the health endpoint."""
    return {
        "max_input_bytes": settings.max_input_bytes,
        "max_output_bytes": settings.max_output_bytes,
        "dimensions": list(settings.dimensions),
        "qualities": list(settings.qualities),
        "grid_size": settings.grid_size,
        "webp_method": settings.webp_method,
        "timeout_s": settings.timeout_s,
        "workspace_root": str(settings.workspace_root) if settings.workspace_root else None,
        "pdf_precheck_enabled": settings.pdf_precheck_enabled,
    }
