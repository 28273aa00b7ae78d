"""PromptSpec and ContextPack models exchanged with the spec compiler."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dslgen.config.defaults import DEFAULT_TERMINATOR
from dslgen.pipeline.request import ConversationSummary
from dslgen.retrieval.base import RetrievedExample
from dslgen.verification.models import StructuredCompilerError


class TaskType(str, Enum):
    """Kind of prompt being compiled."""

    CODEGEN = "codegen"
    REPAIR = "repair"


class FewShotDemo(BaseModel):
    """A (prompt, code) demonstration placed in model context."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    code: str


class OutputContract(BaseModel):
    """Expected shape of the model output."""

    model_config = ConfigDict(frozen=True)

    format: str = Field(default="code_block")
    required_markers: tuple[str, ...] = Field(default=("```", DEFAULT_TERMINATOR))


class ValidatorHints(BaseModel):
    """Checks the output is expected to pass."""

    model_config = ConfigDict(frozen=True)

    must_compile: bool = True
    must_end_with_terminator: bool = True


class PromptSpec(BaseModel):
    """
    Structured, versioned definition of one provider request.

    Produced once per attempt and never mutated; ``merge_examples`` and
    similar helpers return new instances.
    """

    model_config = ConfigDict(frozen=True)

    version: str
    spec_id: str
    system_instructions: str
    developer_instructions: str = ""
    few_shot_demos: tuple[FewShotDemo, ...] = ()
    user_template: str
    output_contract: OutputContract = Field(default_factory=OutputContract)
    validator_hints: ValidatorHints = Field(default_factory=ValidatorHints)
    task_type: TaskType = TaskType.CODEGEN

    @classmethod
    def from_service(cls, data: dict[str, Any], task_type: TaskType) -> "PromptSpec":
        """
        Build a spec from a spec-compiler ``data`` payload.

        Args:
            data: snake_case payload
            task_type: Task the spec was compiled for

        Returns:
            PromptSpec

        Raises:
            pydantic.ValidationError: If required fields are missing
        """
        contract = data.get("output_contract") or {}
        hints = data.get("validator_hints") or {}

        must_end = hints.get("must_end_with_terminator", hints.get("must_end_with_double_dot", True))

        return cls(
            version=data.get("version"),
            spec_id=data.get("spec_id"),
            system_instructions=data.get("system_instructions"),
            developer_instructions=data.get("developer_instructions") or "",
            few_shot_demos=tuple(
                FewShotDemo(prompt=d["prompt"], code=d["code"]) for d in data.get("few_shot_demos") or []
            ),
            user_template=data.get("user_template"),
            output_contract=OutputContract(
                format=contract.get("format") or "code_block",
                required_markers=tuple(contract.get("required_markers") or ("```", DEFAULT_TERMINATOR)),
            ),
            validator_hints=ValidatorHints(
                must_compile=hints.get("must_compile", True),
                must_end_with_terminator=must_end,
            ),
            task_type=task_type,
        )


@dataclass(frozen=True)
class Constraints:
    """Generation constraints passed to the spec compiler."""

    dialect: str
    allowed_builtins: tuple[str, ...] | None = None
    max_output_tokens: int | None = None


@dataclass(frozen=True)
class ContextPack:
    """Everything needed to compile one prompt."""

    latest_ask: str
    constraints: Constraints
    current_code: str | None = None
    conversation_summary: ConversationSummary | None = None
    retrieved_chunks: tuple[RetrievedExample, ...] = ()
    task_type: TaskType = TaskType.CODEGEN
    last_model_output: str | None = None
    structured_compiler_errors: tuple[StructuredCompilerError, ...] = field(default=())

    @property
    def dialect(self) -> str:
        return self.constraints.dialect

    def to_payload(self) -> dict[str, Any]:
        """
        Serialize to the snake_case request body of the spec compiler.

        Returns:
            JSON-serializable dictionary
        """
        payload: dict[str, Any] = {
            "latest_ask": self.latest_ask,
            "current_code": self.current_code,
            "conversation_summary": (
                self.conversation_summary.to_dict() if self.conversation_summary else None
            ),
            "retrieved_chunks": [
                {
                    "id": chunk.id,
                    "prompt": chunk.prompt_text,
                    "code": chunk.code_text,
                    "similarity": chunk.similarity,
                    "keyword_score": chunk.keyword_score,
                    "combined_score": chunk.combined_score,
                }
                for chunk in self.retrieved_chunks
            ],
            "constraints": {
                "dialect": self.constraints.dialect,
                "allowed_builtins": (
                    list(self.constraints.allowed_builtins)
                    if self.constraints.allowed_builtins is not None
                    else None
                ),
                "max_output_tokens": self.constraints.max_output_tokens,
            },
            "task_type": self.task_type.value,
        }

        if self.task_type == TaskType.REPAIR:
            payload["last_model_output"] = self.last_model_output
            payload["structured_compiler_errors"] = [
                e.to_dict() for e in self.structured_compiler_errors
            ]

        return payload
