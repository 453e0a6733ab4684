"""Exceptions raised by the file normalization pipeline.

Every failure kind carries an ``error_type`` label and an HTTP
``status_code`` so the web layer can build a response without knowing
which stage failed. Messages are plain English and safe to show users.
"""

from typing import Optional


class NormalizeError(Exception):
    """Base exception for all normalization failures."""

    error_type: str = "NormalizeError"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class EmptyInputError(NormalizeError):
    """The upload contained zero bytes."""

    error_type: str = "EmptyInput"

    @staticmethod
    def create() -> "EmptyInputError":
        return EmptyInputError("The uploaded file is empty.")


class InputTooLargeError(NormalizeError):
    """The upload exceeds the input ceiling."""

    error_type: str = "InputTooLarge"
    status_code: int = 413

    @staticmethod
    def for_limit(limit_bytes: int) -> "InputTooLargeError":
        return InputTooLargeError(
            f"File too large (max {limit_bytes // (1024 * 1024)}MB)."
        )


class UnsupportedTypeError(NormalizeError):
    """None of the classification signals matched a known source kind."""

    error_type: str = "UnsupportedType"
    status_code: int = 415

    @staticmethod
    def for_file(filename: str) -> "UnsupportedTypeError":
        label = f"'{filename}'" if filename else "This file"
        return UnsupportedTypeError(
            f"{label} is not an allowed file type. "
            f"Upload an image (JPEG, PNG, WebP, GIF), a PDF, a Word document or a text file."
        )


class ToolUnavailableError(NormalizeError):
    """A required external program is not installed on this server."""

    error_type: str = "ToolUnavailable"
    status_code: int = 503

    @staticmethod
    def for_tool(label: str, candidates: tuple) -> "ToolUnavailableError":
        names = "/".join(candidates)
        return ToolUnavailableError(f"{label} ({names}) not available in server runtime.")


class RenderFailedError(NormalizeError):
    """A rasterizer or document converter ran but produced nothing usable."""

    error_type: str = "RenderFailed"
    status_code: int = 422


class EncodeFailedError(NormalizeError):
    """The encoder failed or never produced a non-empty output."""

    error_type: str = "EncodeFailed"
    status_code: int = 422


class BudgetExceededError(NormalizeError):
    """Encoding worked, but no attempt fit under the byte budget."""

    error_type: str = "BudgetExceeded"
    status_code: int = 422

    def __init__(self, message: str, smallest_kib: int, budget_kib: int) -> None:
        super().__init__(message)
        self.smallest_kib = smallest_kib
        self.budget_kib = budget_kib

    @staticmethod
    def for_sizes(smallest_kib: int, budget_kib: int) -> "BudgetExceededError":
        return BudgetExceededError(
            f"Could not reduce the image below {budget_kib}KB "
            f"(smallest result: {smallest_kib}KB).",
            smallest_kib=smallest_kib,
            budget_kib=budget_kib,
        )


class WorkspaceError(NormalizeError):
    """Creating the workspace or reading/writing one of its files failed."""

    error_type: str = "IOError"
    status_code: int = 500


class ProcessingTimeoutError(NormalizeError):
    """The caller's deadline expired or the conversion was cancelled."""

    error_type: str = "ProcessingTimeout"
    status_code: int = 504

    @staticmethod
    def for_stage(stage: str, cancelled: bool = False) -> "ProcessingTimeoutError":
        if cancelled:
            return ProcessingTimeoutError(f"Conversion cancelled during {stage}.")
        return ProcessingTimeoutError(f"Conversion timed out during {stage}.")
