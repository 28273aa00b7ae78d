"""Compile-based verification and compiler error classification."""

from dslgen.verification.models import ErrorClass, StructuredCompilerError, VerificationResult
from dslgen.verification.classifier import classify, format_errors, parse_structured_errors
from dslgen.verification.client import CompilerClient
from dslgen.verification.verifier import Verifier

__all__ = [
    "ErrorClass",
    "StructuredCompilerError",
    "VerificationResult",
    "classify",
    "format_errors",
    "parse_structured_errors",
    "CompilerClient",
    "Verifier",
]
