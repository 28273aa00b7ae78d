"""Static training-example corpus files and embedding-text construction."""

import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_PROMPT_RE = re.compile(r'###\s*Prompt\s*\n"([^"]+)"')
_CODE_RE = re.compile(r"###\s*Code\s*\n\s*```[^\n]*\n([\s\S]+?)\n\s*```")
_TASK_RE = re.compile(r'###\s*Task\s*\n"([^"]+)"')
_LEGACY_CODE_RE = re.compile(r"###\s*(?!Task\b)\w+\s*\n([\s\S]+?)(?=\n\n|$)")

_FEATURE_WORDS_RE = re.compile(
    r"\b(title|instructions|columns|cells|width|justify|border|format|assess|expected|method|text)\b",
    re.IGNORECASE,
)
_CELL_REF_RE = re.compile(r"\b[A-Z]{1,2}\d{1,3}\b")
_FORMAT_RE = re.compile(r'format\s*:\s*"([^"]+)"', re.IGNORECASE)

MAX_FEATURE_TAGS = 40
MAX_CELL_REFS = 25


def parse_training_examples(markdown: str) -> list[dict[str, Any]]:
    """
    Parse a training-examples markdown file.

    Sections are separated by ``---``. Each section holds a ``### Prompt``
    quoted line and a ``### Code`` fenced block. The older layout with a
    ``### Task`` line followed by an unfenced code section is also accepted.

    Args:
        markdown: File content

    Returns:
        List of dicts with ``id``, ``prompt`` and ``code`` keys
    """
    examples = []

    for index, section in enumerate(markdown.split("---")):
        if not section.strip():
            continue

        prompt_match = _PROMPT_RE.search(section)
        code_match = _CODE_RE.search(section)

        if prompt_match and code_match:
            prompt, code = prompt_match.group(1), code_match.group(1)
        else:
            task_match = _TASK_RE.search(section)
            legacy_match = _LEGACY_CODE_RE.search(section[task_match.end():]) if task_match else None
            if not (task_match and legacy_match):
                continue
            prompt, code = task_match.group(1), legacy_match.group(1)

        examples.append({"id": f"example-{index}", "prompt": prompt.strip(), "code": code.strip()})

    return examples


def load_training_examples(corpus_dir: str | Path, dialect: str) -> list[dict[str, Any]]:
    """
    Load the static example corpus for a dialect.

    Args:
        corpus_dir: Directory holding ``l<dialect>-training-examples.md`` files
        dialect: Dialect identifier

    Returns:
        Parsed examples, empty when the file does not exist
    """
    path = Path(corpus_dir) / f"l{dialect}-training-examples.md"

    if not path.exists():
        logger.warning(f"No training examples file found for L{dialect}")
        return []

    examples = parse_training_examples(path.read_text(encoding="utf-8"))
    logger.info(f"Loaded {len(examples)} examples from {path}")
    return examples


def extract_feature_tags(code: str) -> list[str]:
    """
    Extract short feature tags from dialect source.

    The tags describe the code without embedding it verbatim.

    Args:
        code: Dialect source text

    Returns:
        Up to 40 tags in first-seen order
    """
    if not code:
        return []

    tags: dict[str, None] = {}

    for match in _FEATURE_WORDS_RE.findall(code):
        tags[match.lower()] = None

    for ref in _CELL_REF_RE.findall(code)[:MAX_CELL_REFS]:
        tags[ref] = None

    if re.search(r'text\s*:\s*"?=', code) or re.search(r"=\s*[A-Z]{1,2}\d+", code):
        tags["formula"] = None
    if re.search(r'justify\s*:\s*"center"', code, re.IGNORECASE):
        tags["center"] = None
    if re.search(r'justify\s*:\s*"right"', code, re.IGNORECASE):
        tags["right"] = None
    if re.search(r'border\s*:\s*"?bottom', code, re.IGNORECASE):
        tags["border bottom"] = None

    format_match = _FORMAT_RE.search(code)
    if format_match:
        tags[f"format {format_match.group(1)}"] = None

    if re.search(r'\bv:\s*"[0-9.]+"', code):
        tags["version"] = None

    return list(tags)[:MAX_FEATURE_TAGS]


def create_embedding_text(example: dict[str, Any]) -> str:
    """
    Build the text representation of an example used for embedding and
    keyword matching.

    Args:
        example: Corpus record with ``lang``, ``prompt`` and ``code`` keys
            (``task``, ``src`` and ``messages`` are accepted as well)

    Returns:
        Text like ``L0002. Prompt: ... . Features: a, b``
    """
    lang = example.get("lang") or example.get("language") or ""
    prompt = example.get("prompt") or example.get("task") or ""
    code = example.get("code") or example.get("src") or ""

    user_turns = "\n".join(
        str(m["content"])
        for m in example.get("messages") or []
        if isinstance(m, dict) and m.get("role") == "user" and m.get("content")
    )
    tags = extract_feature_tags(code)

    parts = []
    if lang:
        parts.append(f"L{lang}")
    if prompt:
        parts.append(f"Prompt: {prompt}")
    if user_turns and user_turns != prompt:
        parts.append(f"User: {user_turns}")
    if tags:
        parts.append(f"Features: {', '.join(tags)}")

    if not parts:
        return example.get("description") or ""

    return ". ".join(parts)
