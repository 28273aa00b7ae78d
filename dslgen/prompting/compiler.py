"""Prompt compilation via the external spec compiler with a local fallback."""

import asyncio
import hashlib
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from dslgen.config.defaults import get_terminator
from dslgen.config.schemas import FeatureFlags, SpecCompilerConfig
from dslgen.exceptions import SpecCompilerError
from dslgen.pipeline.trace import TraceLogger
from dslgen.prompting.instructions import DialectInstructions
from dslgen.prompting.render import describe_spec
from dslgen.prompting.spec import ContextPack, FewShotDemo, PromptSpec, TaskType
from dslgen.prompting.templates import DEFAULT_USER_TEMPLATE, PromptRenderer

logger = logging.getLogger(__name__)

LOCAL_SPEC_VERSION = "local-1"

_ENDPOINTS = {
    TaskType.CODEGEN: "/compile-prompt-spec",
    TaskType.REPAIR: "/compile-repair-prompt-spec",
}


class PromptCompiler:
    """
    Produces a PromptSpec for each generation attempt.

    ``compile`` asks the spec-compiler service and returns None on any
    failure; ``build_local_spec`` and ``build_repair_spec`` assemble specs
    from the built-in templates.
    """

    def __init__(
        self,
        config: SpecCompilerConfig,
        features: FeatureFlags,
        instructions: DialectInstructions,
        renderer: PromptRenderer | None = None,
        trace: TraceLogger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize prompt compiler.

        Args:
            config: Spec-compiler endpoint settings
            features: Feature flags (enable_spec_compiler, fallback)
            instructions: Dialect instruction lookup
            renderer: Jinja2 renderer for the local templates
            trace: Trace logger for stage records
            transport: Optional httpx transport, used by tests
        """
        self.config = config
        self.features = features
        self.instructions = instructions
        self.renderer = renderer or PromptRenderer()
        self.trace = trace or TraceLogger()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.features.enable_spec_compiler

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["X-API-Key"] = self.config.api_key
        return headers

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.config.url,
            headers=self._headers(),
            timeout=self.config.timeout_s,
            transport=self._transport,
        ) as client:
            response = await client.post(path, json=payload)
            response.raise_for_status()
            body = response.json()

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise SpecCompilerError(error or "Unknown spec compiler error")

        data = body.get("data")
        if not isinstance(data, dict):
            raise SpecCompilerError("Spec compiler returned no data")

        return data

    async def compile(self, context_pack: ContextPack, request_id: str | None = None) -> PromptSpec | None:
        """
        Compile a spec with the external service.

        Args:
            context_pack: Request context
            request_id: Correlation key for trace records

        Returns:
            PromptSpec, or None when disabled or on any failure
        """
        task = context_pack.task_type

        if not self.enabled:
            self.trace.log(request_id, f"spec_compiler.{task.value}.skipped", reason="disabled")
            return None

        self.trace.log(
            request_id,
            f"spec_compiler.{task.value}.start",
            dialect=context_pack.dialect,
            chunk_count=len(context_pack.retrieved_chunks),
            has_current_code=context_pack.current_code is not None,
            error_count=len(context_pack.structured_compiler_errors),
        )

        start_time = time.time()

        try:
            # Bound the whole exchange, not only each socket operation
            data = await asyncio.wait_for(
                self._post(_ENDPOINTS[task], context_pack.to_payload()),
                timeout=self.config.timeout_s,
            )
            spec = PromptSpec.from_service(data, task)
        except (httpx.HTTPError, SpecCompilerError, ValidationError, ValueError, KeyError, TypeError) as e:
            return self._compile_failed(request_id, task, start_time, str(e) or e.__class__.__name__)
        except asyncio.TimeoutError:
            return self._compile_failed(
                request_id, task, start_time, f"timed out after {self.config.timeout_s}s", is_timeout=True
            )

        latency_ms = (time.time() - start_time) * 1000
        self.trace.log(
            request_id,
            f"spec_compiler.{task.value}.success",
            latency_ms=latency_ms,
            **describe_spec(spec),
        )
        return spec

    def _compile_failed(
        self,
        request_id: str | None,
        task: TaskType,
        start_time: float,
        error: str,
        is_timeout: bool = False,
    ) -> None:
        latency_ms = (time.time() - start_time) * 1000
        logger.warning(f"Spec compiler error ({latency_ms:.0f}ms): {error}")
        self.trace.log(
            request_id,
            f"spec_compiler.{task.value}.error",
            error=error,
            latency_ms=latency_ms,
            is_timeout=is_timeout,
        )
        return None

    async def build_local_spec(self, context_pack: ContextPack) -> PromptSpec:
        """
        Assemble a codegen spec from the built-in templates.

        The dialect instructions become developer instructions and the
        retrieved examples become few-shot demos.

        Args:
            context_pack: Request context

        Returns:
            PromptSpec
        """
        dialect = context_pack.dialect
        terminator = get_terminator(dialect)
        instructions = await self.instructions.get_instructions(dialect)

        system = self.renderer.render("codegen_system", dialect=dialect, terminator=terminator)
        demos = tuple(
            FewShotDemo(prompt=chunk.prompt_text, code=chunk.code_text)
            for chunk in context_pack.retrieved_chunks
            if chunk.prompt_text and chunk.code_text
        )

        return PromptSpec(
            version=LOCAL_SPEC_VERSION,
            spec_id=_spec_id("codegen", dialect, system),
            system_instructions=system,
            developer_instructions=instructions,
            few_shot_demos=demos,
            user_template=DEFAULT_USER_TEMPLATE.replace("{terminator}", terminator),
            task_type=TaskType.CODEGEN,
        )

    async def build_repair_spec(self, context_pack: ContextPack) -> PromptSpec:
        """
        Assemble the fixed repair spec that restates the dialect grammar.

        The user template refers to the failing code and the compiler errors
        through the ``{failing_code}`` and ``{compiler_errors}`` placeholders,
        filled at render time.

        Args:
            context_pack: Repair context

        Returns:
            PromptSpec
        """
        dialect = context_pack.dialect
        terminator = get_terminator(dialect)
        instructions = await self.instructions.get_instructions(dialect)

        system = self.renderer.render(
            "repair_system", dialect=dialect, terminator=terminator, instructions=instructions
        )
        user = self.renderer.render("repair_user", dialect=dialect)

        return PromptSpec(
            version=LOCAL_SPEC_VERSION,
            spec_id=_spec_id("repair", dialect, system),
            system_instructions=system,
            user_template=user,
            task_type=TaskType.REPAIR,
        )

    async def compile_codegen(self, context_pack: ContextPack, request_id: str | None = None) -> PromptSpec:
        """
        Get the codegen spec for an attempt, falling back to the local spec.

        Args:
            context_pack: Request context
            request_id: Correlation key for trace records

        Returns:
            PromptSpec, never None
        """
        spec = await self.compile(context_pack, request_id)
        if spec is not None:
            return spec

        if self.enabled and not self.features.spec_compiler_fallback_to_legacy:
            # A prompt is required, so the local spec is used regardless
            logger.warning("Spec compiler failed with legacy fallback disabled; using local spec")
            self.trace.log(request_id, "prompt.fallback_forced", reason="fallback disabled")

        spec = await self.build_local_spec(context_pack)
        self.trace.log(request_id, "prompt.build", source="local", **describe_spec(spec))
        return spec

    async def check_health(self) -> bool:
        """
        Check if the spec-compiler service is reachable.

        Returns:
            True if ``/health`` answers 200
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.config.url, timeout=self.config.timeout_s, transport=self._transport
            ) as client:
                response = await client.get("/health")
                return response.status_code == 200
        except httpx.HTTPError:
            return False


def _spec_id(kind: str, dialect: str, system: str) -> str:
    digest = hashlib.sha256(system.encode("utf-8")).hexdigest()[:12]
    return f"{kind}-L{dialect}-{digest}"
