"""
hexvis_lib/errors.py - Error taxonomy for the vision pipeline

Every failure the pipeline surfaces derives from VisionError so that entry
points can catch one type and still tell client-input faults apart from
upstream faults.
"""

from typing import Optional


class VisionError(Exception):
    """Base exception for the edge connection vision pipeline."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(VisionError):
    """Raised for malformed input, before any network activity."""


class TransportError(VisionError):
    """Raised for a non-success HTTP status or a failed connection."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


class TimeoutError(VisionError):
    """Raised when the inference request exceeds its wall-clock budget."""

    def __init__(self, timeout_seconds: float):
        message = f"Vision analysis timed out after {timeout_seconds:g}s"
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class ParseError(VisionError):
    """Raised when the model's answer cannot be reduced to a JSON object."""

    def __init__(self, message: str, excerpt: str = ""):
        super().__init__(message)
        self.excerpt = excerpt

    def __str__(self) -> str:
        if not self.excerpt:
            return self.message
        return f"{self.message}: {self.excerpt}"
