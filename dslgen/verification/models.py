"""Verification result data structures."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

ErrorKind = Literal["syntax", "semantic", "unknown"]


class ErrorClass(str, Enum):
    """Coarse classification of a failed verification."""

    MECHANICAL = "mechanical"
    SEMANTIC = "semantic"
    UNKNOWN = "unknown"

    @property
    def error_kind(self) -> ErrorKind:
        """Kind label used on StructuredCompilerError records."""
        return {
            ErrorClass.MECHANICAL: "syntax",
            ErrorClass.SEMANTIC: "semantic",
        }.get(self, "unknown")


@dataclass(frozen=True)
class StructuredCompilerError:
    """A single compiler diagnostic."""

    kind: ErrorKind
    message: str
    line: int | None = None
    column: int | None = None
    expected: str | None = None
    found: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the snake_case wire shape used by the spec compiler."""
        return {
            "type": self.kind,
            "message": self.message,
            "line": self.line,
            "column": self.column,
            "expected": self.expected,
            "found": self.found,
        }


@dataclass
class VerificationResult:
    """
    Normalized outcome of compiling one piece of code.

    ``raw`` keeps the normalized compiler payload for diagnosis.
    """

    status: Literal["success", "error"]
    task_id: str | None = None
    errors: list[StructuredCompilerError] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status,
            "task_id": self.task_id,
            "errors": [e.to_dict() for e in self.errors],
            "raw": self.raw,
        }
