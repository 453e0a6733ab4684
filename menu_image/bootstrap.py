"""One-time runtime bootstrap: report effective configuration and tool discovery."""

from __future__ import annotations

import threading

from menu_image.services import normalize_service

_bootstrap_lock = threading.Lock()
_bootstrap_started = False


def bootstrap_runtime() -> None:
    """Log effective settings once per process."""
    global _bootstrap_started
    with _bootstrap_lock:
        if _bootstrap_started:
            return

        normalize_service.log_effective_config()
        _bootstrap_started = True


def is_bootstrapped() -> bool:
    """Expose runtime bootstrap state for diagnostics/tests."""
    return _bootstrap_started
