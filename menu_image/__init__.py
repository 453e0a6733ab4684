"""Menu image normalizer package."""

__all__ = ["create_app", "normalize_to_webp"]


def create_app():
    """Lazily import app factory to avoid import-time side effects."""
    from menu_image.factory import create_app as _create_app

    return _create_app()


def normalize_to_webp(ctx, data, filename, content_type, **kwargs):
    """Shortcut for :func:`menu_image.engine.pipeline.normalize_to_webp`."""
    from menu_image.engine.pipeline import normalize_to_webp as _normalize

    return _normalize(ctx, data, filename, content_type, **kwargs)
