"""Normalize an uploaded file into a size-bounded WebP thumbnail."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from menu_image.core.exceptions import EmptyInputError, InputTooLargeError
from menu_image.core.settings import PipelineSettings, get_pipeline_settings
from menu_image.engine.classify import SourceKind, classify
from menu_image.engine.commands import CommandRunner, Deadline, SubprocessRunner
from menu_image.engine.encode import EncodingAttempt, encode_webp_with_limit
from menu_image.engine.render import render_to_raster
from menu_image.engine.workspace import workspace, write_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizeResult:
    data: bytes
    kind: SourceKind
    extension: str
    attempt: EncodingAttempt
    attempts_made: int
    elapsed_s: float


def validate_input(data: bytes, settings: PipelineSettings) -> None:
    if not data:
        raise EmptyInputError.create()
    if len(data) > settings.max_input_bytes:
        raise InputTooLargeError.for_limit(settings.max_input_bytes)


def normalize_to_webp_with_report(
    ctx: Optional[Deadline],
    data: bytes,
    filename: str,
    content_type: str,
    *,
    runner: Optional[CommandRunner] = None,
    settings: Optional[PipelineSettings] = None,
) -> NormalizeResult:
    """Run validate, classify, render and encode for one upload.

    ``ctx`` bounds every external command; pass None for no deadline.
    The workspace is removed before this returns or raises.
    """
    settings = settings or get_pipeline_settings()
    runner = runner or SubprocessRunner()
    deadline = ctx or Deadline()
    start = time.monotonic()

    validate_input(data, settings)
    kind, ext = classify(data, filename, content_type)
    logger.info(f"[normalize] '{filename}' ({len(data)} bytes) classified as {kind.value} ({ext})")
    deadline.check("classify")

    with workspace(settings.workspace_root) as ws:
        input_path = write_file(ws / f"input{ext}", data)
        raster_path = render_to_raster(
            kind, input_path, ws, runner=runner, deadline=deadline, settings=settings
        )
        encoded = encode_webp_with_limit(
            raster_path, ws, runner=runner, deadline=deadline, settings=settings
        )

    elapsed = time.monotonic() - start
    logger.info(
        f"[normalize] '{filename}' -> {encoded.attempt.size_bytes} bytes WebP "
        f"in {elapsed:.2f}s ({encoded.attempts_made} encode attempts)"
    )
    return NormalizeResult(
        data=encoded.data,
        kind=kind,
        extension=ext,
        attempt=encoded.attempt,
        attempts_made=encoded.attempts_made,
        elapsed_s=elapsed,
    )


def normalize_to_webp(
    ctx: Optional[Deadline],
    data: bytes,
    filename: str,
    content_type: str,
    *,
    runner: Optional[CommandRunner] = None,
    settings: Optional[PipelineSettings] = None,
) -> bytes:
    """Return WebP bytes within the output budget, or raise a NormalizeError."""
    return normalize_to_webp_with_report(
        ctx, data, filename, content_type, runner=runner, settings=settings
    ).data
