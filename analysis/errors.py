"""
Folio - Analysis Error Types
Exceptions that cross the pipeline boundary
"""

from typing import Optional


class AnalysisError(Exception):
    """Base class for analysis errors."""


class AnalysisStoppedError(AnalysisError):
    """
    The user stopped the run.

    Raised by the controller at a stage boundary and propagated untouched
    through the pipeline so callers can tell "stopped" apart from "failed".
    """

    def __init__(self, message: str = "Analysis stopped by user"):
        super().__init__(message)


class ConfigurationError(AnalysisError):
    """Caller error detected before any stage runs (no chapters, no checkpoint, bad range)."""


class CompletionError(AnalysisError):
    """A completion request failed. Carries the HTTP status and body when there was one."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None and f"HTTP {self.status_code}" not in base:
            return f"HTTP {self.status_code}: {base}"
        return base


class DocumentParseError(AnalysisError):
    """The document was empty or could not be read."""

    def __init__(self, message: str, format: str = "txt"):
        super().__init__(message)
        self.format = format
