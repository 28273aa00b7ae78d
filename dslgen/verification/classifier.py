"""Rule-based classification of compiler errors."""

import json
import re
from typing import Any

from dslgen.config.defaults import DEFAULT_TERMINATOR
from dslgen.verification.models import ErrorClass, StructuredCompilerError, VerificationResult

Rule = tuple[re.Pattern, ErrorClass]


def build_rules(terminator: str = DEFAULT_TERMINATOR) -> list[Rule]:
    """
    Build the prioritized rule list.

    Mechanical rules come first, so an error text matching both kinds is
    classified as mechanical.

    Args:
        terminator: Dialect terminator used by the missing-terminator rule

    Returns:
        Ordered (pattern, class) pairs
    """
    mechanical = [
        r"unexpected token",
        r"expected.*found",
        r"missing.*" + re.escape(terminator),
        r"parse error",
        r"syntax error",
        r"unterminated string",
        r"unexpected end",
        r"unexpected.*at",
    ]
    semantic = [
        r"undefined.*identifier",
        r"type mismatch",
        r"unknown function",
        r"arity mismatch",
        r"not defined",
        r"unknown identifier",
        r"incompatible type",
        r"wrong number of arguments",
        r"cannot apply",
    ]

    rules: list[Rule] = [(re.compile(p, re.IGNORECASE | re.DOTALL), ErrorClass.MECHANICAL) for p in mechanical]
    rules += [(re.compile(p, re.IGNORECASE | re.DOTALL), ErrorClass.SEMANTIC) for p in semantic]
    return rules


DEFAULT_RULES = build_rules()


def classify_text(text: str, rules: list[Rule] | None = None) -> ErrorClass:
    """
    Classify an error message.

    Args:
        text: Error text
        rules: Rule list, DEFAULT_RULES when omitted

    Returns:
        Class of the first matching rule, UNKNOWN if none match
    """
    folded = text.casefold()
    for pattern, label in rules or DEFAULT_RULES:
        if pattern.search(folded):
            return label
    return ErrorClass.UNKNOWN


def _raw_errors(payload: dict[str, Any]) -> list[Any]:
    data = payload.get("data")
    if isinstance(data, dict) and data.get("errors"):
        errors = data["errors"]
    elif isinstance(payload.get("errors"), dict) and payload["errors"].get("details"):
        errors = payload["errors"]["details"]
    elif payload.get("error"):
        errors = payload["error"]
    else:
        return []

    return errors if isinstance(errors, list) else [errors]


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_structured_errors(
    payload: dict[str, Any],
    rules: list[Rule] | None = None,
) -> list[StructuredCompilerError]:
    """
    Flatten a compiler payload into structured error records.

    Errors may be a string, an object or an array of either. Objects may
    carry ``line``, ``col`` or ``column``, ``expected`` and ``found``.

    Args:
        payload: Normalized compiler response
        rules: Rule list used to label each error

    Returns:
        One record per error, each with its classification attached
    """
    errors = []

    for raw in _raw_errors(payload):
        if isinstance(raw, str):
            kind = classify_text(raw, rules).error_kind
            errors.append(StructuredCompilerError(kind=kind, message=raw))
        elif isinstance(raw, dict):
            message = raw.get("message") or json.dumps(raw, default=str)
            kind = classify_text(message, rules).error_kind
            column = raw.get("col") if raw.get("col") is not None else raw.get("column")
            errors.append(
                StructuredCompilerError(
                    kind=kind,
                    message=str(message),
                    line=_optional_int(raw.get("line")),
                    column=_optional_int(column),
                    expected=str(raw["expected"]) if raw.get("expected") is not None else None,
                    found=str(raw["found"]) if raw.get("found") is not None else None,
                )
            )

    return errors


def error_text(result: VerificationResult) -> str:
    """All error messages of a result joined by newlines."""
    messages = [e.message for e in result.errors]

    top = result.raw.get("error")
    if isinstance(top, dict) and top.get("message") and top["message"] not in messages:
        messages.insert(0, str(top["message"]))

    return "\n".join(messages)


def classify(result: VerificationResult | None, rules: list[Rule] | None = None) -> ErrorClass:
    """
    Classify a failed verification as mechanical, semantic or unknown.

    Args:
        result: Verification result
        rules: Rule list, DEFAULT_RULES when omitted

    Returns:
        ErrorClass
    """
    if result is None:
        return ErrorClass.UNKNOWN
    return classify_text(error_text(result), rules)


def format_errors(result: VerificationResult) -> str:
    """
    Human-readable error text for the legacy repair prompt.

    Args:
        result: Failed verification result

    Returns:
        One paragraph per error with location and expected/found details
    """
    if not result.errors:
        top = result.raw.get("error")
        if isinstance(top, dict) and top.get("message"):
            return str(top["message"])
        return json.dumps(result.raw, indent=2, default=str)

    parts = []
    for error in result.errors:
        text = error.message
        if error.line is not None:
            text += f" at line {error.line}"
        if error.column is not None:
            text += f", column {error.column}"
        if error.expected:
            text += f"\nExpected: {error.expected}"
        if error.found:
            text += f"\nFound: {error.found}"
        parts.append(text)

    return "\n\n".join(parts)
