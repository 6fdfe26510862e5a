"""
Error taxonomy for multipart upload.

Every error names the phase that failed so callers can report it.
"""
from typing import Optional


class UploaderError(RuntimeError):
    """Base error for an upload run."""

    phase = "upload"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def describe(self) -> str:
        """One line summary: phase, message and underlying cause."""
        text = f"[{self.phase}] {self}"
        if self.cause is not None and str(self.cause) not in str(self):
            text += f" ({self.cause})"
        return text


class ConfigError(UploaderError):
    """Invalid or missing input, detected before a session exists."""

    phase = "config"


class SourceReadError(UploaderError, OSError):
    """Local file cannot be opened or read."""

    phase = "read"


class SessionError(UploaderError):
    """Storage service rejected session creation."""

    phase = "create"


class PartUploadError(UploaderError):
    """A part upload failed."""

    phase = "upload"

    def __init__(self, part_number: int, cause: Optional[BaseException] = None):
        message = f"part {part_number} upload failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message, cause)
        self.part_number = part_number


class CompletionError(UploaderError):
    """Completion call failed after every part was uploaded."""

    phase = "complete"


class AbortError(UploaderError):
    """Abort call failed. Reported as a warning, never replaces the original error."""

    phase = "abort"


class UploadCancelledError(UploaderError):
    """Upload was cancelled between two parts."""

    phase = "cancel"
