"""
dslgen: retrieval-augmented code generation for small DSL dialects

Turns a natural-language request into verified dialect source:
- Hybrid vector/keyword retrieval of few-shot examples
- Prompt-spec compilation with a local template fallback
- Streaming generation with automatic continuation
- Compile-verify-repair loop with model-tier escalation
- Per-account usage accounting
"""

__version__ = "0.1.0"
__author__ = "dslgen Team"

from dslgen.config.schemas import PipelineConfig
from dslgen.pipeline.request import GenerationRequest, GenerationOptions, ConversationSummary
from dslgen.pipeline.runner import CodeGenerationPipeline, CodeGenerationResponse

__all__ = [
    "__version__",
    "PipelineConfig",
    "GenerationRequest",
    "GenerationOptions",
    "ConversationSummary",
    "CodeGenerationPipeline",
    "CodeGenerationResponse",
]
