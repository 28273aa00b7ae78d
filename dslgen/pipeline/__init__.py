"""Pipeline orchestration for code generation."""

from dslgen.pipeline.request import ConversationSummary, GenerationOptions, GenerationRequest
from dslgen.pipeline.trace import TraceLogger
from dslgen.pipeline.repair import RepairLoop, RepairOutcome
from dslgen.pipeline.runner import CodeGenerationPipeline, CodeGenerationResponse, PipelineComponents

__all__ = [
    "ConversationSummary",
    "GenerationOptions",
    "GenerationRequest",
    "TraceLogger",
    "RepairLoop",
    "RepairOutcome",
    "CodeGenerationPipeline",
    "CodeGenerationResponse",
    "PipelineComponents",
]
