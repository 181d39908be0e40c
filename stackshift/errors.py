"""Error types for the StackShift spec pipeline.

Every failure raised by the parser, the spec generator, the template engine
and the state store derives from :class:`StackShiftError` and carries enough
structured context (line, phase, field, bound) to build a precise message.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class StackShiftError(Exception):
    """Base class for all StackShift errors."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"error_type": type(self).__name__, "message": str(self)}


class ParseError(StackShiftError):
    """Malformed block structure in a markdown document."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message if line_number is None else f"{message} (line {line_number})")
        self.line_number = line_number

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["line_number"] = self.line_number
        return data


class ExtractionError(StackShiftError):
    """A named extraction phase violated a structural or cardinality contract."""

    PHASES = ("constitution", "features", "plans")

    def __init__(self, message: str, phase: str, details: Optional[Dict[str, Any]] = None):
        if phase not in self.PHASES:
            raise ValueError(f"Unknown extraction phase: {phase}")
        super().__init__(message)
        self.phase = phase
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["phase"] = self.phase
        data["details"] = dict(self.details)
        return data


class TemplateError(StackShiftError):
    """Template could not be loaded, parsed or rendered."""

    def __init__(
        self,
        message: str,
        template_name: Optional[str] = None,
        missing_variables: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.template_name = template_name
        self.missing_variables = list(missing_variables or [])


class ValidationError(StackShiftError, ValueError):
    """Workflow state failed schema validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        if self.errors:
            message = message + ":\n" + "\n".join(f"- {error}" for error in self.errors)
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


class FileAccessError(StackShiftError):
    """A file could not be read or written."""

    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    TOO_LARGE = "too_large"
    INVALID = "invalid"

    def __init__(self, message: str, path: str, reason: str):
        super().__init__(message)
        self.path = str(path)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        data["reason"] = self.reason
        return data


class FileWriteError(FileAccessError):
    """Writing a generated artifact failed or was refused."""
