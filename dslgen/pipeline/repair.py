"""Compile-verify-repair loop with model-tier escalation."""

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any

from dslgen.config.schemas import GenerationConfig
from dslgen.generation.base import CallOptions
from dslgen.generation.postprocess import Canonicalizer, process_generated_code
from dslgen.generation.result import GenerationResult, TokenUsage
from dslgen.generation.streaming import StreamingGenerator
from dslgen.pipeline.trace import TraceLogger
from dslgen.prompting.compiler import PromptCompiler
from dslgen.prompting.render import RenderContext, render
from dslgen.prompting.spec import ContextPack, PromptSpec, TaskType
from dslgen.verification.classifier import Rule, classify, format_errors
from dslgen.verification.models import ErrorClass, VerificationResult
from dslgen.verification.verifier import Verifier

logger = logging.getLogger(__name__)


@dataclass
class AttemptRecord:
    """Summary of one generate-and-verify attempt."""

    attempt: int
    model: str
    status: str
    classification: str | None = None
    latency_ms: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "model": self.model,
            "status": self.status,
            "classification": self.classification,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


@dataclass
class RepairOutcome:
    """
    Final state of the repair loop.

    ``code`` and ``verification`` belong to the last attempt that produced
    usable output. ``usage`` and ``models_used`` cover every attempt. A
    repair call that fails in transport still counts: it raises
    ``fix_attempts``, its model is appended to ``models_used`` and its
    AttemptRecord has status ``transport_error``, although it produced no
    code. ``error`` is the transport error of the attempt behind the final
    state, or None.
    """

    code: str | None
    generation: GenerationResult | None
    verification: VerificationResult | None
    fix_attempts: int
    usage: TokenUsage = field(default_factory=TokenUsage)
    models_used: list[str] = field(default_factory=list)
    attempts: list[AttemptRecord] = field(default_factory=list)
    error: str | None = None

    @property
    def has_output(self) -> bool:
        return bool(self.code and self.code.strip())


class RepairLoop:
    """
    Generates code, verifies it and repairs it until it compiles.

    States: ATTEMPT(n) -> VERIFY -> DONE on success, otherwise CLASSIFY ->
    REPAIR_PROMPT -> ATTEMPT(n+1) while ``n < max_fix_attempts``. A failed
    non-premium attempt escalates to the premium tier for every later
    attempt. Semantic errors ask the spec compiler for a repair prompt;
    everything else, and any spec-compiler failure, uses the fixed local
    repair prompt.

    A first attempt whose stream fails after some output is verified and
    repaired like any other output, with the stream error kept on the
    outcome. A repair attempt that fails in transport ends the loop with
    the previous code.
    """

    def __init__(
        self,
        generator: StreamingGenerator,
        compiler: PromptCompiler,
        verifier: Verifier | None,
        config: GenerationConfig,
        canonicalizer: Canonicalizer | None = None,
        rules: list[Rule] | None = None,
        trace: TraceLogger | None = None,
    ):
        """
        Initialize repair loop.

        Args:
            generator: Streaming generator wrapping the provider
            compiler: Prompt compiler for repair prompts
            verifier: Compile verifier, None skips verification
            config: Generation settings (tiers, bounds, temperatures)
            canonicalizer: Optional dialect canonicalizer for post-processing
            rules: Error classification rules
            trace: Trace logger for per-attempt records
        """
        self.generator = generator
        self.compiler = compiler
        self.verifier = verifier
        self.config = config
        self.canonicalizer = canonicalizer
        self.rules = rules
        self.trace = trace or TraceLogger()

    def next_model(self, model: str) -> str:
        """Model for the attempt after a failure on ``model``."""
        tiers = self.config.tiers
        if not tiers.is_premium(model):
            return tiers.premium
        return model

    async def run(
        self,
        spec: PromptSpec,
        context: RenderContext,
        context_pack: ContextPack,
        options: CallOptions,
        auth_token: str | None = None,
        request_id: str | None = None,
    ) -> RepairOutcome:
        """
        Run the loop to success, exhaustion or a transport failure.

        Args:
            spec: Codegen spec of the first attempt
            context: Values for rendering user templates
            context_pack: Request context, reused for repair specs
            options: Call options of the first attempt
            auth_token: Caller's token; without it verification is skipped
            request_id: Correlation key for trace records

        Returns:
            RepairOutcome
        """
        dialect = context.dialect
        outcome = RepairOutcome(code=None, generation=None, verification=None, fix_attempts=0)
        prompt = render(spec, context)
        attempt = 0

        while True:
            start_time = time.time()
            result = await self.generator.generate_long_code(prompt.system_prompt, prompt.messages, options)
            outcome.usage = outcome.usage + result.usage
            outcome.models_used.append(options.model)
            outcome.fix_attempts = attempt
            outcome.error = result.error

            if result.is_error and (attempt > 0 or not result.has_output):
                return self._transport_failed(outcome, result, attempt, options, start_time, request_id)

            if result.is_error:
                logger.warning(f"Stream failed after partial output, verifying what was received: {result.error}")
                self.trace.log(
                    request_id,
                    "generation.partial",
                    attempt=attempt,
                    error=result.error,
                    length=len(result.content),
                )

            code = process_generated_code(result.content, self.canonicalizer, dialect)
            outcome.code = code
            outcome.generation = result

            if self.verifier is None or not auth_token:
                outcome.verification = None
                self._record_attempt(
                    outcome, attempt, options.model, "unverified", None, start_time, request_id, result.error
                )
                logger.info("No auth token available; skipping verification")
                return outcome

            verification = await self.verifier.verify(code, dialect, auth_token, request_id)
            outcome.verification = verification

            if verification.is_success:
                self._record_attempt(
                    outcome, attempt, options.model, "success", None, start_time, request_id, result.error
                )
                return outcome

            classification = classify(verification, self.rules)
            self._record_attempt(
                outcome, attempt, options.model, "error", classification, start_time, request_id, result.error
            )

            if attempt >= self.config.max_fix_attempts:
                logger.warning(
                    f"Code still failing after {attempt} fix attempt(s); returning last generated code"
                )
                self.trace.log(request_id, "repair.exhausted", fix_attempts=attempt, model=options.model)
                return outcome

            attempt += 1
            options = CallOptions(
                model=self.next_model(options.model),
                temperature=self.config.repair_temperature,
                max_tokens=options.max_tokens,
            )
            logger.info(
                f"Fix attempt {attempt}/{self.config.max_fix_attempts} with {options.model} "
                f"({classification.value} errors)"
            )

            repair_pack = replace(
                context_pack,
                task_type=TaskType.REPAIR,
                last_model_output=code,
                structured_compiler_errors=tuple(verification.errors),
            )
            repair_spec = await self._repair_spec(repair_pack, classification, request_id)
            repair_context = replace(context, failing_code=code, compiler_errors=format_errors(verification))
            prompt = render(repair_spec, repair_context)

    async def _repair_spec(
        self,
        repair_pack: ContextPack,
        classification: ErrorClass,
        request_id: str | None,
    ) -> PromptSpec:
        spec = None
        if classification == ErrorClass.SEMANTIC:
            spec = await self.compiler.compile(repair_pack, request_id)

        if spec is None:
            spec = await self.compiler.build_repair_spec(repair_pack)
            self.trace.log(
                request_id,
                "prompt.build",
                source="local",
                task_type=TaskType.REPAIR.value,
                classification=classification.value,
            )

        return spec

    def _transport_failed(
        self,
        outcome: RepairOutcome,
        result: GenerationResult,
        attempt: int,
        options: CallOptions,
        start_time: float,
        request_id: str | None,
    ) -> RepairOutcome:
        logger.error(f"Generation failed on attempt {attempt} with {options.model}: {result.error}")
        self._record_attempt(
            outcome, attempt, options.model, "transport_error", None, start_time, request_id, result.error
        )
        return outcome

    def _record_attempt(
        self,
        outcome: RepairOutcome,
        attempt: int,
        model: str,
        status: str,
        classification: ErrorClass | None,
        start_time: float,
        request_id: str | None,
        error: str | None = None,
    ) -> None:
        record = AttemptRecord(
            attempt=attempt,
            model=model,
            status=status,
            classification=classification.value if classification else None,
            latency_ms=(time.time() - start_time) * 1000,
            error=error,
        )
        outcome.attempts.append(record)
        self.trace.log(request_id, "repair.attempt", **record.to_dict())
