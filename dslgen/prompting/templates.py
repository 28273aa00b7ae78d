"""Jinja2 prompt templates for locally built prompts."""

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template

logger = logging.getLogger(__name__)


class PromptRenderer:
    """
    Renders prompt text from Jinja2 templates.

    Named templates resolve against ``template_dir`` first and then the
    built-in DEFAULT_TEMPLATES.
    """

    def __init__(self, template_dir: str | Path | None = None):
        """
        Initialize prompt renderer.

        Args:
            template_dir: Directory containing ``<name>.jinja`` overrides
        """
        self.template_dir = Path(template_dir) if template_dir else None

        if self.template_dir and self.template_dir.exists():
            loader = FileSystemLoader(str(self.template_dir))
            self._env = Environment(
                loader=loader, autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True
            )
        else:
            self._env = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)

        # Cache for compiled templates
        self._template_cache: dict[str, Template] = {}

    def _get_template(self, name: str) -> Template:
        if name in self._template_cache:
            return self._template_cache[name]

        override = self.template_dir / f"{name}.jinja" if self.template_dir else None
        if override is not None and override.exists():
            template = self._env.get_template(f"{name}.jinja")
        elif name in DEFAULT_TEMPLATES:
            template = self._env.from_string(DEFAULT_TEMPLATES[name])
        else:
            raise ValueError(f"No template named: {name}")

        self._template_cache[name] = template
        return template

    def render(self, name: str, **variables: Any) -> str:
        """
        Render a named template with variables.

        Args:
            name: Template name, e.g. "codegen_system"
            **variables: Variables to inject into template

        Returns:
            Rendered text, stripped
        """
        return self._get_template(name).render(**variables).strip()


# User template filled by render_user_template, not by Jinja
DEFAULT_USER_TEMPLATE = """<USER_REQUEST>
{user_request}

<CURRENT_CODE>
{current_code}

<CONVERSATION_SUMMARY>
{conversation_summary}

<RETRIEVED_CONTEXT>
{retrieved_context}

<OUTPUT_FORMAT>
Return ONLY L{dialect} code between triple backticks. The program must end with {terminator}"""


DEFAULT_TEMPLATES = {
    "codegen_system": """You are a programming assistant that translates natural language into code written in a small functional DSL, specifically dialect L{{ dialect }}.

The language is designed for end-user programming. Its syntax is simple, functional, and punctuation-light. Use only the language features below.

## Response Requirements
- When current code is provided, treat it as the starting point and make only the incremental changes requested. Preserve existing data, formatting, and structure unless asked to modify them.

## Core Syntax Rules
- Use `let name = value{{ terminator }}` for declarations
- All functions use prefix notation: `add 1 2` (no infix)
- Lambdas use angle brackets: `<x y: expr>`
- ONLY use `{{ terminator }}` to terminate `let` declarations and the program
- EVERY program has zero or more let declarations followed by exactly one expression ending with `{{ terminator }}`
- Use parentheses to pass functions or delay application: `map (double) [1 2 3]`
- Whitespace separates tokens; commas and parens are optional
- No mutation; all data is immutable
- Strings use double or single quotes; never escape quotes or backslashes, and never write a literal "\\n"
- Comments start with `|` and extend to the end of the line

Only return idiomatic, valid L{{ dialect }} code. Output only the code unless an explanation is requested.

Put generated code between ``` (triple backticks) to distinguish code from commentary.""",
    "repair_system": """You are an expert L{{ dialect }} programmer tasked with fixing code errors.
L{{ dialect }} is a minimal, prefix, expression-oriented language with these key features:
- `let` bindings with syntax: `let name = value{{ terminator }}`
- No infix operators; use prefix calls like `add 1 2`
- Use parentheses to control application order: `map (double) [1 2 3]`
- Anonymous lambdas use angle brackets: `<x y: expr>`
- Lists: `[1 2 3]`; records: `{ name: "Alice" age: 30 }`
- Conditionals use `if condition then x else y`
- Line comments start with the pipe character: `| comment`
- All let statements MUST end with `{{ terminator }}`
- Backslashes are never escaped and a literal "\\n" never appears in code
{% if instructions %}

{{ instructions }}
{% endif %}

Common errors and solutions:
1. Missing `{{ terminator }}` at the end of a let statement or the program
2. Missing parentheses around function references: use (functionName) not functionName
3. Infix application: use prefix notation like "add x y" not "x + y"
4. Improper lambda syntax: use angle brackets like <x: body>

When fixing code:
1. Carefully analyze the error messages
2. Make minimal changes to fix the issues
3. Return ONLY the corrected code between triple backticks
4. Ensure all code is syntactically valid""",
    "repair_user": """The following L{{ dialect }} code has compilation errors:

```
{failing_code}
```

Error details:
{compiler_errors}

Please fix the code and return only the corrected version.""",
    "describe": """Describe in one plain-English sentence what the following L{{ dialect }} program does. Do not mention the language name or syntax.

```
{{ code }}
```""",
}
