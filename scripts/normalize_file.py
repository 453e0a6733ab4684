#!/usr/bin/env python3
"""Normalize local files into budget-bounded WebP thumbnails."""

from __future__ import annotations

import argparse
import mimetypes
import sys
from pathlib import Path
from typing import List

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from menu_image.core.exceptions import NormalizeError  # noqa: E402
from menu_image.core.settings import get_pipeline_settings  # noqa: E402
from menu_image.engine.commands import Deadline  # noqa: E402
from menu_image.engine.pipeline import normalize_to_webp_with_report  # noqa: E402

LINE_WIDTH = 78


def _human_kb(value: int) -> str:
    return f"{value / 1024:.1f}KB"


def _collect_inputs(inputs: List[str]) -> List[Path]:
    seen: set[Path] = set()
    files: List[Path] = []
    for raw in inputs:
        path = Path(raw).expanduser().resolve()
        candidates = sorted(p for p in path.iterdir() if p.is_file()) if path.is_dir() else [path]
        for candidate in candidates:
            if candidate.is_file() and candidate not in seen:
                seen.add(candidate)
                files.append(candidate)
    return files


def main() -> int:
    parser = argparse.ArgumentParser(description="Normalize files into WebP thumbnails.")
    parser.add_argument("inputs", nargs="+", help="File(s) or directories")
    parser.add_argument("--out-dir", default="./normalized", help="Directory for .webp outputs")
    parser.add_argument("--timeout", type=float, default=None, help="Per-file deadline in seconds")
    args = parser.parse_args()

    files = _collect_inputs(args.inputs)
    if not files:
        print("No input files found.")
        return 1

    settings = get_pipeline_settings()
    timeout_s = args.timeout if args.timeout is not None else settings.timeout_s
    out_dir = Path(args.out_dir).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)

    print("=" * LINE_WIDTH)
    print("MENU IMAGE NORMALIZER".center(LINE_WIDTH))
    print("=" * LINE_WIDTH)

    failures = 0
    for path in files:
        content_type = mimetypes.guess_type(path.name)[0] or ""
        try:
            result = normalize_to_webp_with_report(
                Deadline(timeout_s), path.read_bytes(), path.name, content_type, settings=settings
            )
        except NormalizeError as e:
            failures += 1
            print(f"FAIL {path.name:<40} {e.error_type}: {e.message}")
            continue
        except OSError as e:
            failures += 1
            print(f"FAIL {path.name:<40} IOError: {e}")
            continue

        target = out_dir / f"{path.stem}.webp"
        target.write_bytes(result.data)
        print(
            f"OK   {path.name:<40} {result.kind.value:<8} -> {_human_kb(len(result.data))} "
            f"@ {result.attempt.dimension}px q{result.attempt.quality} "
            f"({result.attempts_made} attempts, {result.elapsed_s:.2f}s)"
        )

    print("-" * LINE_WIDTH)
    print(f"{len(files) - failures}/{len(files)} converted into {out_dir}")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
