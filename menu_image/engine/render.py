"""Turn PDFs and office/text documents into a single raster image.

PDF pages are rasterized with poppler's ``pdftoppm``; documents and text
are first exported to PDF by LibreOffice running headless with a profile
private to the workspace.
"""

import logging
from pathlib import Path

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from menu_image.core.exceptions import RenderFailedError, ToolUnavailableError
from menu_image.core.settings import PipelineSettings
from menu_image.core.utils import compact_command_output
from menu_image.engine.classify import SourceKind
from menu_image.engine.commands import CommandRunner, Deadline, find_command

logger = logging.getLogger(__name__)

PDFTOPPM_CANDIDATES = ("pdftoppm",)
OFFICE_CANDIDATES = ("libreoffice", "soffice")

FIRST_PAGE_BASENAME = "first-page"
OFFICE_PROFILE_DIRNAME = "libreoffice-profile"


def precheck_pdf(pdf_path: Path) -> int:
    """Open the PDF with PyPDF2 and return its page count.

    Raises:
        RenderFailedError: if the PDF is locked or has no pages. Structural
            damage only logs a warning and returns -1.
    """
    try:
        with open(pdf_path, "rb") as f:
            reader = PdfReader(f, strict=False)
            if reader.is_encrypted:
                try:
                    unlocked = reader.decrypt("")
                except Exception as de:
                    logger.warning(f"[render] {pdf_path.name} decrypt attempt failed: {de}")
                    unlocked = 0
                if not unlocked:
                    raise RenderFailedError(
                        "This PDF is password-protected. Please remove the password and try again."
                    )
            page_count = len(reader.pages)
    except RenderFailedError:
        raise
    except PdfReadError as e:
        # pdftoppm repairs many files PyPDF2 rejects (missing trailer, bad xref).
        logger.warning(f"[render] {pdf_path.name} failed structural check (will continue): {e}")
        return -1
    except Exception as e:
        logger.warning(f"[render] PDF pre-validation warning (will continue): {e}")
        return -1

    if page_count == 0:
        raise RenderFailedError("This PDF has no pages.")
    return page_count


def render_pdf_first_page(
    pdf_path: Path,
    ws: Path,
    *,
    runner: CommandRunner,
    deadline: Deadline,
    precheck: bool = True,
) -> Path:
    """Rasterize page one of ``pdf_path`` to ``<ws>/first-page.png``."""
    pdftoppm = find_command(runner, PDFTOPPM_CANDIDATES)
    if not pdftoppm:
        raise ToolUnavailableError.for_tool("PDF rasterizer", PDFTOPPM_CANDIDATES)

    if precheck:
        pages = precheck_pdf(pdf_path)
        if pages > 1:
            logger.info(f"[render] {pdf_path.name} has {pages} pages; using page 1 only")

    output_base = ws / FIRST_PAGE_BASENAME
    args = [pdftoppm, "-f", "1", "-singlefile", "-png", str(pdf_path), str(output_base)]
    result = runner.run(args, deadline=deadline, stage="render")
    if not result.ok:
        logger.error(
            f"[render] pdftoppm failed (exit code {result.returncode}). Full output:\n"
            f"{result.output.decode('utf-8', errors='replace')}"
        )
        raise RenderFailedError(
            f"pdftoppm failed (exit code {result.returncode}): {compact_command_output(result.output)}"
        )

    png_path = output_base.with_suffix(".png")
    if not png_path.is_file():
        raise RenderFailedError("Could not render the first page to an image.")
    logger.info(f"[render] Rasterized page 1 of {pdf_path.name} ({png_path.stat().st_size} bytes)")
    return png_path


def convert_document_to_pdf(
    input_path: Path,
    ws: Path,
    *,
    runner: CommandRunner,
    deadline: Deadline,
) -> Path:
    """Export a word-processor or text file to PDF inside ``ws``."""
    office = find_command(runner, OFFICE_CANDIDATES)
    if not office:
        raise ToolUnavailableError.for_tool("Document converter", OFFICE_CANDIDATES)

    profile_dir = ws / OFFICE_PROFILE_DIRNAME
    profile_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    profile_url = profile_dir.resolve().as_uri()

    args = [
        office,
        f"-env:UserInstallation={profile_url}",
        "--headless",
        "--nologo",
        "--nolockcheck",
        "--nodefault",
        "--nofirststartwizard",
        "--convert-to",
        "pdf:writer_pdf_Export",
        "--outdir",
        str(ws),
        str(input_path),
    ]
    env = {"HOME": str(ws), "UserInstallation": profile_url}
    result = runner.run(args, deadline=deadline, env=env, stage="render")
    if not result.ok:
        logger.error(
            f"[render] {Path(office).name} failed (exit code {result.returncode}). Full output:\n"
            f"{result.output.decode('utf-8', errors='replace')}"
        )
        raise RenderFailedError(
            f"Document conversion failed (exit code {result.returncode}): "
            f"{compact_command_output(result.output)}"
        )

    expected = ws / f"{input_path.stem}.pdf"
    if expected.is_file():
        return expected

    candidates = sorted(ws.glob("*.pdf"))
    if not candidates:
        raise RenderFailedError("Could not locate the converted PDF.")
    logger.info(f"[render] Expected {expected.name} missing; using {candidates[0].name}")
    return candidates[0]


def render_to_raster(
    kind: SourceKind,
    input_path: Path,
    ws: Path,
    *,
    runner: CommandRunner,
    deadline: Deadline,
    settings: PipelineSettings,
) -> Path:
    """Return a raster image path for ``input_path`` according to its kind."""
    if kind is SourceKind.IMAGE:
        return input_path

    if kind is SourceKind.PDF:
        return render_pdf_first_page(
            input_path, ws, runner=runner, deadline=deadline,
            precheck=settings.pdf_precheck_enabled,
        )

    pdf_path = convert_document_to_pdf(input_path, ws, runner=runner, deadline=deadline)
    deadline.check("render")
    return render_pdf_first_page(
        pdf_path, ws, runner=runner, deadline=deadline,
        precheck=settings.pdf_precheck_enabled,
    )
