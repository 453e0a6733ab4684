"""Command-execution boundary for the external rasterizer, converter and encoder.

Every external program is reached through a ``CommandRunner`` so tests can
swap in a deterministic fake instead of needing the real binaries.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

from menu_image.core.exceptions import ProcessingTimeoutError, ToolUnavailableError

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.25


class Deadline:
    """Cancellation context shared by every stage of one conversion.

    ``timeout_s=None`` means no deadline; ``cancel()`` may be called from
    any thread.
    """

    def __init__(self, timeout_s: Optional[float] = None) -> None:
        self._expires_at = None if timeout_s is None else time.monotonic() + timeout_s
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def done(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, stage: str) -> None:
        """Raise ProcessingTimeoutError if the deadline passed or was cancelled."""
        if self.done():
            raise ProcessingTimeoutError.for_stage(stage, cancelled=self.cancelled)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    output: bytes  # stdout and stderr combined

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(ABC):
    """Locates and runs external programs."""

    @abstractmethod
    def which(self, name: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        *,
        deadline: Deadline,
        env: Optional[Mapping[str, str]] = None,
        stage: str = "command",
    ) -> CommandResult:
        """Run ``args`` to completion, killing the process if ``deadline`` fires."""
        raise NotImplementedError


class SubprocessRunner(CommandRunner):
    """Runs real programs from PATH with ``subprocess``."""

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def run(
        self,
        args: Sequence[str],
        *,
        deadline: Deadline,
        env: Optional[Mapping[str, str]] = None,
        stage: str = "command",
    ) -> CommandResult:
        deadline.check(stage)
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            proc = subprocess.Popen(
                list(args),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                env=full_env,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailableError(
                f"Could not start {Path(args[0]).name}: {e}", original_error=e
            ) from e

        while True:
            remaining = deadline.remaining()
            wait = POLL_INTERVAL_S if remaining is None else min(POLL_INTERVAL_S, remaining)
            try:
                output, _ = proc.communicate(timeout=wait)
                break
            except subprocess.TimeoutExpired:
                if deadline.done():
                    proc.kill()
                    proc.communicate()
                    logger.warning(
                        f"[{stage}] Killed {Path(args[0]).name} "
                        f"({'cancelled' if deadline.cancelled else 'deadline expired'})"
                    )
                    raise ProcessingTimeoutError.for_stage(stage, cancelled=deadline.cancelled)

        logger.debug(f"[{stage}] {Path(args[0]).name} exited with {proc.returncode}")
        return CommandResult(returncode=proc.returncode, output=output or b"")


def find_command(runner: CommandRunner, candidates: Sequence[str]) -> Optional[str]:
    """Return the first candidate found on PATH, or None."""
    for name in candidates:
        path = runner.which(name)
        if path and path.strip():
            return path
    return None
