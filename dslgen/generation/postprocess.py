"""Extraction and cleanup of code from model output."""

import logging
import re
from typing import Protocol

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```(?:\w*\n|\n)?([\s\S]*?)```")

# Applied in order; the double-backslash rule must run first
_ESCAPE_FIXES = (
    ("\\\\", "\\"),
    ("\\n", "\n"),
    ('\\"', '"'),
    ("\\'", "'"),
    ("\\`", "`"),
)


class Canonicalizer(Protocol):
    """A dialect's parser/printer pair."""

    def canonicalize(self, code: str, dialect: str) -> str:
        ...


def extract_code_blocks(content: str) -> list[str]:
    """
    Extract all fenced code blocks.

    Args:
        content: Model output

    Returns:
        Stripped block bodies, or ``[content]`` when there are no fences
    """
    blocks = [match.strip() for match in _CODE_BLOCK_RE.findall(content)]
    return blocks or [content]


def repair_escapes(code: str) -> str:
    """Undo escaping artifacts the model sometimes emits."""
    for old, new in _ESCAPE_FIXES:
        code = code.replace(old, new)
    return code


def process_generated_code(
    content: str,
    canonicalizer: Canonicalizer | None = None,
    dialect: str = "",
) -> str:
    """
    Turn raw model output into dialect source.

    Extracts the first fenced block (or keeps the whole text), repairs
    escaping artifacts and, when a canonicalizer is configured, replaces
    the code with its canonical form. A failing canonicalizer leaves the
    repaired text in place.

    Args:
        content: Model output
        canonicalizer: Optional parser/printer for the dialect
        dialect: Dialect identifier passed to the canonicalizer

    Returns:
        Processed code
    """
    if not content:
        return content

    match = _CODE_BLOCK_RE.search(content)
    code = match.group(1).strip() if match else content

    code = repair_escapes(code)

    if canonicalizer is not None:
        try:
            code = canonicalizer.canonicalize(code, dialect)
        except Exception as e:
            logger.warning(f"Canonicalization failed for L{dialect}, keeping repaired code: {e}")

    return code
