"""Prompt compilation and rendering."""

from dslgen.prompting.spec import ContextPack, Constraints, FewShotDemo, PromptSpec, TaskType
from dslgen.prompting.render import RenderContext, RenderedPrompt, render, render_user_template, merge_examples
from dslgen.prompting.instructions import DialectInstructions
from dslgen.prompting.templates import PromptRenderer
from dslgen.prompting.compiler import PromptCompiler

__all__ = [
    "ContextPack",
    "Constraints",
    "FewShotDemo",
    "PromptSpec",
    "TaskType",
    "RenderContext",
    "RenderedPrompt",
    "render",
    "render_user_template",
    "merge_examples",
    "DialectInstructions",
    "PromptRenderer",
    "PromptCompiler",
]
