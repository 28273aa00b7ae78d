"""Rendering of PromptSpecs into provider messages."""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from dslgen.pipeline.request import ConversationSummary
from dslgen.prompting.spec import FewShotDemo, PromptSpec
from dslgen.retrieval.base import RetrievedExample

NO_CURRENT_CODE = "(no current code)"
FIRST_TURN = "(first turn of conversation)"
NO_EXAMPLES = "(no similar examples found)"
NO_FAILING_CODE = "(no code)"
NO_COMPILER_ERRORS = "(no errors reported)"

MAX_SUMMARY_REQUESTS = 3


@dataclass(frozen=True)
class RenderContext:
    """Values substituted into a user template."""

    user_request: str
    dialect: str
    current_code: str | None = None
    conversation_summary: ConversationSummary | None = None
    retrieved_chunks: tuple[RetrievedExample, ...] = ()
    failing_code: str | None = None
    compiler_errors: str | None = None


@dataclass
class RenderedPrompt:
    """System prompt plus alternating user/assistant messages."""

    system_prompt: str
    messages: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"system": self.system_prompt, "messages": self.messages}


_PLACEHOLDER_RE = re.compile(
    r"\{(user_request|current_code|conversation_summary|retrieved_context|dialect|failing_code|compiler_errors)\}",
    re.IGNORECASE,
)


def format_code_response(code: str) -> str:
    """Wrap code in a fence unless it already contains one."""
    if "```" not in code:
        return "```\n" + code.strip() + "\n```"
    return code


def format_conversation_summary(summary: ConversationSummary) -> str:
    """Turn count plus the last three previous requests."""
    text = f"Turn {summary.turn_count} of conversation."

    if summary.previous_requests:
        text += "\n\nPrevious requests:"
        for request in summary.previous_requests[-MAX_SUMMARY_REQUESTS:]:
            text += f"\n- {request}"

    return text


def format_retrieved_context(chunks: Iterable[RetrievedExample]) -> str:
    """Numbered examples with prompt, fenced code and similarity percentage."""
    parts = []

    for i, chunk in enumerate(chunks, start=1):
        part = f"Example {i}:"
        if chunk.prompt_text:
            part += f"\nPrompt: {chunk.prompt_text}"
        if chunk.code_text:
            part += f"\nCode:\n```\n{chunk.code_text}\n```"
        part += f"\n(similarity: {chunk.similarity * 100:.1f}%)"
        parts.append(part)

    return "\n\n".join(parts) if parts else NO_EXAMPLES


def render_user_template(template: str, context: RenderContext) -> str:
    """
    Fill the named placeholders of a user template.

    Placeholders are matched case-insensitively: ``{user_request}``,
    ``{current_code}``, ``{conversation_summary}``, ``{retrieved_context}``,
    ``{dialect}``, and for repair prompts ``{failing_code}`` and
    ``{compiler_errors}``. All of them are replaced in one pass, so
    placeholder-like text inside a substituted value stays as written.
    Missing context values render as fixed fallback text, so rendering
    always completes.

    Args:
        template: Template text
        context: Values to substitute

    Returns:
        Rendered user message
    """
    current_code = (
        "```\n" + context.current_code + "\n```" if context.current_code else NO_CURRENT_CODE
    )
    summary = (
        format_conversation_summary(context.conversation_summary)
        if context.conversation_summary
        else FIRST_TURN
    )
    retrieved = (
        format_retrieved_context(context.retrieved_chunks) if context.retrieved_chunks else NO_EXAMPLES
    )

    values = {
        "user_request": context.user_request,
        "current_code": current_code,
        "conversation_summary": summary,
        "retrieved_context": retrieved,
        "dialect": context.dialect,
        "failing_code": context.failing_code if context.failing_code is not None else NO_FAILING_CODE,
        "compiler_errors": context.compiler_errors or NO_COMPILER_ERRORS,
    }

    # A function replacement keeps backslashes in values literal
    return _PLACEHOLDER_RE.sub(lambda match: values[match.group(1).lower()], template)


def render(spec: PromptSpec, context: RenderContext) -> RenderedPrompt:
    """
    Render a spec into a system prompt and message list.

    Few-shot demos become user/assistant turn pairs; the rendered user
    template is the final user turn.

    Args:
        spec: Prompt specification
        context: Values for the user template

    Returns:
        RenderedPrompt
    """
    system_prompt = spec.system_instructions
    if spec.developer_instructions:
        system_prompt += "\n\n" + spec.developer_instructions

    messages = []
    for demo in spec.few_shot_demos:
        messages.append({"role": "user", "content": demo.prompt})
        messages.append({"role": "assistant", "content": format_code_response(demo.code)})

    messages.append({"role": "user", "content": render_user_template(spec.user_template, context)})

    return RenderedPrompt(system_prompt=system_prompt, messages=messages)


def merge_examples(spec: PromptSpec, examples: Iterable[RetrievedExample]) -> PromptSpec:
    """
    Append retrieved examples to a spec's demos, skipping known prompts.

    Args:
        spec: Source spec, left unchanged
        examples: Retrieved examples

    Returns:
        New PromptSpec with the merged demos
    """
    seen = {demo.prompt for demo in spec.few_shot_demos}
    additional = []

    for example in examples:
        if not example.code_text or not example.prompt_text or example.prompt_text in seen:
            continue
        seen.add(example.prompt_text)
        additional.append(FewShotDemo(prompt=example.prompt_text, code=example.code_text))

    return spec.model_copy(update={"few_shot_demos": spec.few_shot_demos + tuple(additional)})


def describe_spec(spec: PromptSpec) -> dict[str, Any]:
    """Redacted summary of a spec for trace records."""
    return {
        "version": spec.version,
        "spec_id": spec.spec_id,
        "task_type": spec.task_type.value,
        "system_instructions_length": len(spec.system_instructions),
        "developer_instructions_length": len(spec.developer_instructions),
        "few_shot_demos_count": len(spec.few_shot_demos),
        "user_template_length": len(spec.user_template),
        "output_contract": spec.output_contract.model_dump(),
        "validator_hints": spec.validator_hints.model_dump(),
    }
