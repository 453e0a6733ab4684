"""Per-conversion scratch directory."""

import contextlib
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Iterator, Optional

from menu_image.core.exceptions import WorkspaceError

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "menu-image-"


@contextlib.contextmanager
def workspace(root: Optional[Path] = None, prefix: str = WORKSPACE_PREFIX) -> Iterator[Path]:
    """Create a private directory and remove it, with all contents, on exit.

    Removal runs on every exit path, including exceptions raised inside
    the ``with`` block and ``KeyboardInterrupt``.
    """
    try:
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=str(root) if root else None))
    except OSError as e:
        raise WorkspaceError(f"Could not create workspace: {e}", original_error=e) from e

    logger.debug(f"[workspace] Created {path}")
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning(f"[workspace] Could not fully remove {path}")
        else:
            logger.debug(f"[workspace] Removed {path}")


def write_file(path: Path, data: bytes) -> Path:
    try:
        path.write_bytes(data)
        path.chmod(0o600)
    except OSError as e:
        raise WorkspaceError(f"Could not write {path.name}: {e}", original_error=e) from e
    return path


def read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise WorkspaceError(f"Could not read {path.name}: {e}", original_error=e) from e
