"""Tests for source classification and byte sniffing."""

import pytest

from menu_image.core.exceptions import UnsupportedTypeError
from menu_image.engine.classify import SourceKind, classify, sniff_content_type

from conftest import PNG_1X1, make_pdf_bytes

JPEG_HEAD = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 32
GIF_HEAD = b"GIF89a\x01\x00\x01\x00\x80\x00\x00" + b"\x00" * 16
WEBP_HEAD = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 24
ZIP_HEAD = b"PK\x03\x04\x14\x00\x06\x00" + b"\x00" * 32
OLE_HEAD = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 32
BINARY_JUNK = b"\x00\x01\x02\x03\x04garbage\x7f\x1b"


class TestSniffContentType:
    @pytest.mark.parametrize("data, expected", [
        (PNG_1X1, "image/png"),
        (JPEG_HEAD, "image/jpeg"),
        (GIF_HEAD, "image/gif"),
        (WEBP_HEAD, "image/webp"),
        (b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n", "application/pdf"),
        (ZIP_HEAD, "application/zip"),
        (b"Today's menu:\nsoup\n", "text/plain; charset=utf-8"),
        (b"\xef\xbb\xbfhola", "text/plain; charset=utf-8"),
        (b"  <html><body>hi</body></html>", "text/html; charset=utf-8"),
        (b"<?xml version='1.0'?><a/>", "text/xml; charset=utf-8"),
        (BINARY_JUNK, "application/octet-stream"),
        (OLE_HEAD, "application/octet-stream"),
    ])
    def test_signatures(self, data, expected):
        assert sniff_content_type(data) == expected

    def test_only_first_512_bytes_are_inspected(self):
        data = b"a" * 512 + b"\x00\x01"
        assert sniff_content_type(data).startswith("text/plain")


class TestClassifyImages:
    @pytest.mark.parametrize("data, ext", [
        (PNG_1X1, ".png"),
        (GIF_HEAD, ".gif"),
        (WEBP_HEAD, ".webp"),
        (JPEG_HEAD, ".jpg"),
    ])
    def test_magic_bytes_win_over_misleading_metadata(self, data, ext):
        kind, resolved = classify(data, "upload.pdf", "application/pdf")
        assert kind is SourceKind.IMAGE
        assert resolved == ext

    def test_keeps_supported_image_extension(self):
        assert classify(JPEG_HEAD, "Photo.JPEG", "") == (SourceKind.IMAGE, ".jpeg")

    def test_image_extension_alone_is_enough(self):
        assert classify(BINARY_JUNK, "menu.webp", "") == (SourceKind.IMAGE, ".webp")

    def test_declared_image_type_defaults_to_jpg(self):
        kind, ext = classify(BINARY_JUNK, "menu", "  IMAGE/PNG ")
        assert kind is SourceKind.IMAGE
        assert ext == ".jpg"

    def test_scenario_png_upload(self):
        assert classify(PNG_1X1, "menu.png", "image/png") == (SourceKind.IMAGE, ".png")


class TestClassifyDocuments:
    def test_pdf_by_magic(self):
        assert classify(make_pdf_bytes(), "scan.bin", "") == (SourceKind.PDF, ".pdf")

    def test_pdf_by_declared_type(self):
        assert classify(BINARY_JUNK, "scan", "application/pdf") == (SourceKind.PDF, ".pdf")

    def test_pdf_by_extension(self):
        assert classify(BINARY_JUNK, "scan.PDF ", "") == (SourceKind.PDF, ".pdf")

    def test_docx_zip_container(self):
        assert classify(ZIP_HEAD, "carta.docx", "application/zip") == (SourceKind.DOCUMENT, ".docx")

    def test_legacy_doc_extension_kept(self):
        assert classify(OLE_HEAD, "carta.doc", "") == (SourceKind.DOCUMENT, ".doc")

    def test_declared_office_type_defaults_to_docx(self):
        declared = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        assert classify(ZIP_HEAD, "carta", declared) == (SourceKind.DOCUMENT, ".docx")

    def test_plain_zip_is_rejected(self):
        with pytest.raises(UnsupportedTypeError):
            classify(ZIP_HEAD, "archive.zip", "application/zip")

    def test_text_by_sniffing(self):
        assert classify(b"Menu del dia\n", "notes", "") == (SourceKind.TEXT, ".txt")

    def test_text_by_declared_type(self):
        assert classify(BINARY_JUNK, "notes", "text/plain; charset=latin-1") == (SourceKind.TEXT, ".txt")

    def test_text_by_extension(self):
        assert classify(BINARY_JUNK, "notes.txt", "") == (SourceKind.TEXT, ".txt")

    def test_html_is_not_plain_text(self):
        with pytest.raises(UnsupportedTypeError):
            classify(b"<html><body>menu</body></html>", "page.html", "text/html")


class TestClassifyProperties:
    def test_unrecognized_upload_is_rejected(self):
        with pytest.raises(UnsupportedTypeError) as exc_info:
            classify(BINARY_JUNK, "file.xyz", "")
        assert exc_info.value.error_type == "UnsupportedType"
        assert "file.xyz" in exc_info.value.message

    @pytest.mark.parametrize("data, filename, declared", [
        (PNG_1X1, "menu.png", "image/png"),
        (JPEG_HEAD, "photo", ""),
        (make_pdf_bytes(), "doc.pdf", "application/pdf"),
        (ZIP_HEAD, "carta.docx", ""),
        (b"plain text", "readme", ""),
    ])
    def test_classification_is_pure_and_stable(self, data, filename, declared):
        first = classify(data, filename, declared)
        assert classify(data, filename, declared) == first

        kind, ext = first
        reclassified_kind, reclassified_ext = classify(data, f"input{ext}", declared)
        assert reclassified_kind is kind
        assert reclassified_ext == ext
