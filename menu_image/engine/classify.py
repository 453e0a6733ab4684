"""Decide what kind of upload we were given and which suffix to store it under.

Three signals are consulted: the content type sniffed from the leading
bytes, the content type the client declared, and the filename extension.
Any one of them is enough to claim a kind; kinds are tried in a fixed
priority order (image, pdf, document, text).
"""

import logging
import os
from enum import Enum
from typing import Tuple

from menu_image.core.exceptions import UnsupportedTypeError

logger = logging.getLogger(__name__)

SNIFF_LEN = 512

IMAGE_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")
OFFICE_CONTENT_TYPES = (
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)
OFFICE_EXTENSIONS = (".doc", ".docx")

# Tags that mark a document as HTML when they open the (whitespace-trimmed) content.
_HTML_SIGNATURES = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1", b"<DIV",
    b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B", b"<BODY", b"<BR", b"<P",
    b"<!--",
)
_WHITESPACE = b"\t\n\x0c\r "
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)


class SourceKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    DOCUMENT = "document"
    TEXT = "text"


def _html_match(data: bytes) -> bool:
    upper = data.upper()
    for sig in _HTML_SIGNATURES:
        if upper.startswith(sig) and len(data) > len(sig):
            # The tag must be terminated by a space or '>'.
            if data[len(sig)] in b" >":
                return True
    return False


def sniff_content_type(data: bytes) -> str:
    """Guess a MIME type from the first 512 bytes.

    Recognizes the raster formats, PDF, zip containers, HTML/XML and
    plain text (UTF BOMs, or no control bytes at all). Anything else is
    ``application/octet-stream``.
    """
    head = data[:SNIFF_LEN]

    if head.startswith(b"\xef\xbb\xbf"):
        return "text/plain; charset=utf-8"
    if head.startswith(b"\xfe\xff"):
        return "text/plain; charset=utf-16be"
    if head.startswith(b"\xff\xfe"):
        return "text/plain; charset=utf-16le"

    if head.startswith(b"%PDF-"):
        return "application/pdf"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head.startswith(b"GIF87a") or head.startswith(b"GIF89a"):
        return "image/gif"
    if head[:4] == b"RIFF" and head[8:14] == b"WEBPVP":
        return "image/webp"
    if head.startswith(b"PK\x03\x04"):
        return "application/zip"
    if head.startswith(b"%!PS-Adobe-"):
        return "application/postscript"

    stripped = head.lstrip(_WHITESPACE)
    if _html_match(stripped):
        return "text/html; charset=utf-8"
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"

    if head and not any(b in _BINARY_BYTES for b in head):
        return "text/plain; charset=utf-8"
    return "application/octet-stream"


def _is_image_type(content_type: str) -> bool:
    return content_type.startswith(IMAGE_CONTENT_TYPES)


def _is_office_type(content_type: str) -> bool:
    return content_type.startswith(OFFICE_CONTENT_TYPES)


def _image_extension_for(sniffed: str) -> str:
    if "png" in sniffed:
        return ".png"
    if "gif" in sniffed:
        return ".gif"
    if "webp" in sniffed:
        return ".webp"
    return ".jpg"


def classify(data: bytes, filename: str, declared_content_type: str) -> Tuple[SourceKind, str]:
    """Return ``(kind, extension)`` for an upload.

    Raises:
        UnsupportedTypeError: if no signal matches a supported kind.
    """
    sniffed = sniff_content_type(data).strip().lower()
    declared = (declared_content_type or "").strip().lower()
    ext = os.path.splitext(filename or "")[1].strip().lower()

    if _is_image_type(sniffed) or _is_image_type(declared) or ext in IMAGE_EXTENSIONS:
        if ext not in IMAGE_EXTENSIONS:
            ext = _image_extension_for(sniffed)
        return SourceKind.IMAGE, ext

    if "pdf" in sniffed or "pdf" in declared or ext == ".pdf":
        return SourceKind.PDF, ".pdf"

    # .docx files sniff as application/zip; the extension alone decides.
    if _is_office_type(sniffed) or _is_office_type(declared) or ext in OFFICE_EXTENSIONS:
        if ext not in OFFICE_EXTENSIONS:
            ext = ".docx"
        return SourceKind.DOCUMENT, ext

    if sniffed.startswith("text/plain") or declared.startswith("text/plain") or ext == ".txt":
        return SourceKind.TEXT, ".txt"

    logger.info(f"[classify] Rejected '{filename}' (sniffed={sniffed}, declared={declared or '-'})")
    raise UnsupportedTypeError.for_file(filename)
