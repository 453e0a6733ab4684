"""Size-bounded WebP encoding through ImageMagick.

The encoder walks a (dimension, quality) grid from the largest, best
setting toward the smallest, worst one and stops at the first output
that fits the byte budget.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from menu_image.core.exceptions import (
    BudgetExceededError,
    EncodeFailedError,
    ToolUnavailableError,
)
from menu_image.core.settings import PipelineSettings
from menu_image.core.utils import ceil_kib, compact_command_output
from menu_image.engine.commands import CommandRunner, Deadline, find_command
from menu_image.engine.workspace import read_file

logger = logging.getLogger(__name__)

ENCODER_CANDIDATES = ("magick", "convert")
OUTPUT_FILENAME = "normalized.webp"


@dataclass(frozen=True)
class EncodingAttempt:
    dimension: int
    quality: int
    size_bytes: int


@dataclass(frozen=True)
class EncodeResult:
    data: bytes
    attempt: EncodingAttempt
    attempts_made: int


def build_encode_args(
    encoder: str,
    source_path: Path,
    output_path: Path,
    dimension: int,
    quality: int,
    webp_method: int,
) -> list:
    """ImageMagick argv for one grid point; ``[0]`` selects the first frame."""
    return [
        encoder,
        f"{source_path}[0]",
        "-auto-orient",
        "-strip",
        "-thumbnail", f"{dimension}x{dimension}>",
        "-define", f"webp:method={webp_method}",
        "-quality", str(quality),
        str(output_path),
    ]


def encode_webp_with_limit(
    source_path: Path,
    ws: Path,
    *,
    runner: CommandRunner,
    deadline: Deadline,
    settings: PipelineSettings,
) -> EncodeResult:
    """Encode ``source_path`` to WebP no larger than ``settings.max_output_bytes``.

    An empty output skips to the next grid point; a failing encoder
    process aborts the whole search.

    Raises:
        ToolUnavailableError: neither ``magick`` nor ``convert`` is on PATH.
        EncodeFailedError: the encoder exited non-zero, or never produced bytes.
        BudgetExceededError: outputs were produced but none fit the budget.
    """
    encoder = find_command(runner, ENCODER_CANDIDATES)
    if not encoder:
        raise ToolUnavailableError.for_tool("Image encoder (ImageMagick)", ENCODER_CANDIDATES)

    output_path = ws / OUTPUT_FILENAME
    budget = settings.max_output_bytes
    best: Optional[Tuple[bytes, EncodingAttempt]] = None
    attempts = 0

    for dimension in settings.dimensions:
        for quality in settings.qualities:
            deadline.check("encode")
            output_path.unlink(missing_ok=True)
            args = build_encode_args(
                encoder, source_path, output_path, dimension, quality, settings.webp_method
            )
            result = runner.run(args, deadline=deadline, stage="encode")
            attempts += 1
            if not result.ok:
                logger.error(
                    f"[encode] {Path(encoder).name} failed at {dimension}px q{quality} "
                    f"(exit code {result.returncode}). Full output:\n"
                    f"{result.output.decode('utf-8', errors='replace')}"
                )
                raise EncodeFailedError(
                    f"Image encoding failed (exit code {result.returncode}): "
                    f"{compact_command_output(result.output)}"
                )

            raw = read_file(output_path)
            if not raw:
                logger.info(f"[encode] {dimension}px q{quality}: empty output, skipping")
                continue

            attempt = EncodingAttempt(dimension=dimension, quality=quality, size_bytes=len(raw))
            logger.debug(f"[encode] {dimension}px q{quality}: {len(raw)} bytes")
            if best is None or len(raw) < best[1].size_bytes:
                best = (raw, attempt)
            if len(raw) <= budget:
                logger.info(
                    f"[encode] Fit at {dimension}px q{quality}: {len(raw)} bytes "
                    f"(budget {budget}, attempt {attempts}/{settings.grid_size})"
                )
                return EncodeResult(data=raw, attempt=attempt, attempts_made=attempts)

    if best is None:
        raise EncodeFailedError("Failed to produce a WebP image.")

    smallest = best[1]
    logger.warning(
        f"[encode] Budget not met after {attempts} attempts; smallest was "
        f"{smallest.size_bytes} bytes at {smallest.dimension}px q{smallest.quality}"
    )
    raise BudgetExceededError.for_sizes(ceil_kib(smallest.size_bytes), ceil_kib(budget))
