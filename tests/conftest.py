"""
Pytest fixtures for normalizer tests.
"""

import base64
import io
from pathlib import Path

import pytest
from PyPDF2 import PdfWriter

from menu_image.core import settings as settings_module
from menu_image.core.settings import PipelineSettings
from menu_image.engine.commands import CommandResult, CommandRunner

PNG_1X1 = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def make_pdf_bytes(pages: int = 1, password: str = None) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    if password:
        writer.encrypt(password)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class FakeRunner(CommandRunner):
    """Deterministic stand-in for pdftoppm, LibreOffice and ImageMagick.

    ``encode_size`` maps (dimension, quality) to the number of bytes the
    fake encoder writes. ``failures`` maps a tool name to
    (returncode, output) to simulate a failing process.
    """

    def __init__(
        self,
        available=("pdftoppm", "libreoffice", "magick"),
        encode_size=None,
        failures=None,
        pdf_name=None,
        write_outputs=True,
        on_run=None,
    ):
        self.available = set(available)
        self.encode_size = encode_size or (lambda dimension, quality: 1024)
        self.failures = dict(failures or {})
        self.pdf_name = pdf_name
        self.write_outputs = write_outputs
        self.on_run = on_run
        self.calls = []

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.available else None

    def tools_called(self):
        return [Path(call["args"][0]).name for call in self.calls]

    def encode_calls(self):
        return [c for c in self.calls if Path(c["args"][0]).name in ("magick", "convert")]

    def run(self, args, *, deadline, env=None, stage="command"):
        self.calls.append({"args": list(args), "env": dict(env or {}), "stage": stage})
        if self.on_run:
            self.on_run(self, list(args), deadline)
        tool = Path(args[0]).name
        if tool in self.failures:
            returncode, output = self.failures[tool]
            return CommandResult(returncode=returncode, output=output)
        if not self.write_outputs:
            return CommandResult(returncode=0, output=b"")

        if tool == "pdftoppm":
            Path(args[-1] + ".png").write_bytes(PNG_1X1)
        elif tool in ("libreoffice", "soffice"):
            outdir = Path(args[args.index("--outdir") + 1])
            source = Path(args[-1])
            name = self.pdf_name or f"{source.stem}.pdf"
            (outdir / name).write_bytes(make_pdf_bytes())
        elif tool in ("magick", "convert"):
            box = args[args.index("-thumbnail") + 1]
            dimension = int(box.split("x")[0])
            quality = int(args[args.index("-quality") + 1])
            Path(args[-1]).write_bytes(b"\x00" * self.encode_size(dimension, quality))
        return CommandResult(returncode=0, output=b"")


@pytest.fixture(autouse=True)
def clear_settings_cache():
    settings_module.get_pipeline_settings.cache_clear()
    settings_module.get_service_settings.cache_clear()
    yield
    settings_module.get_pipeline_settings.cache_clear()
    settings_module.get_service_settings.cache_clear()


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def pipeline_settings(workspace_root):
    return PipelineSettings(workspace_root=workspace_root, timeout_s=None)


@pytest.fixture
def png_bytes():
    return PNG_1X1


@pytest.fixture
def pdf_bytes():
    return make_pdf_bytes()
