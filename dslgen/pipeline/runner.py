"""Pipeline entry point: retrieve, compile, generate, verify, repair, account."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from dslgen.accounting.accountant import UsageAccountant, UsageRecord
from dslgen.accounting.pricing import PricingTable
from dslgen.config.defaults import STARTER_TEMPLATE_PROMPT, get_terminator
from dslgen.config.schemas import PipelineConfig, ProviderType
from dslgen.exceptions import GenerationError
from dslgen.generation.base import CallOptions, LLMProvider, create_provider
from dslgen.generation.postprocess import Canonicalizer
from dslgen.generation.result import TokenUsage
from dslgen.generation.streaming import StreamingGenerator
from dslgen.pipeline.repair import RepairLoop, RepairOutcome
from dslgen.pipeline.request import GenerationRequest
from dslgen.pipeline.trace import TraceLogger
from dslgen.prompting.compiler import PromptCompiler
from dslgen.prompting.instructions import DialectInstructions
from dslgen.prompting.render import RenderContext, merge_examples
from dslgen.prompting.spec import Constraints, ContextPack
from dslgen.prompting.templates import PromptRenderer
from dslgen.retrieval.base import BaseRetriever
from dslgen.retrieval.embedding import EmbeddingProvider, create_embedding_provider
from dslgen.retrieval.hybrid import HybridRetriever
from dslgen.retrieval.keyword import KeywordRetriever
from dslgen.retrieval.vector_store import InMemoryVectorStore, VectorStore
from dslgen.storage.artifacts import ArtifactStore
from dslgen.storage.database import create_session_factory, session_scope
from dslgen.storage.models import Generation
from dslgen.verification.client import CompilerClient
from dslgen.verification.models import VerificationResult
from dslgen.verification.verifier import Verifier

logger = logging.getLogger(__name__)

DESCRIBE_SYSTEM_PROMPT = "You describe programs in one short, plain-English sentence."
DESCRIBE_MAX_TOKENS = 200


@dataclass
class CodeGenerationResponse:
    """
    Result of one pipeline execution.

    ``code`` is post-processed but not guaranteed to compile; check
    ``verification.status``. ``verification`` is None when no auth token
    was available or the code came from the starter template. ``error``
    is set when the stream behind the returned code failed part way, or a
    later repair call failed in transport.
    """

    code: str
    model: str
    usage: TokenUsage
    verification: VerificationResult | None
    fix_attempts: int
    request_id: str
    description: str | None = None
    models_used: list[str] = field(default_factory=list)
    usage_record: UsageRecord | None = None
    latency_ms: float = 0.0
    from_template: bool = False
    error: str | None = None

    @property
    def status(self) -> str:
        """One of success, error, unverified, template."""
        if self.from_template:
            return "template"
        if self.verification is None:
            return "unverified"
        return self.verification.status

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_id": self.request_id,
            "status": self.status,
            "code": self.code,
            "model": self.model,
            "usage": self.usage.to_dict(),
            "verification": self.verification.to_dict() if self.verification else None,
            "fix_attempts": self.fix_attempts,
            "description": self.description,
            "models_used": list(self.models_used),
            "usage_record": self.usage_record.to_dict() if self.usage_record else None,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


class PipelineComponents:
    """
    Service objects shared by pipeline executions.

    Every component is created on first use from the configuration unless
    one was passed in. Holds the per-dialect instruction cache.
    """

    def __init__(
        self,
        config: PipelineConfig,
        provider: LLMProvider | None = None,
        embedder: EmbeddingProvider | None = None,
        vector_store: VectorStore | None = None,
        session_factory: sessionmaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        canonicalizer: Canonicalizer | None = None,
        trace: TraceLogger | None = None,
    ):
        """
        Initialize pipeline components.

        Args:
            config: Pipeline configuration
            provider: LLM provider, created from ``config.generation`` when omitted
            embedder: Query embedder, created when a vector store path is configured
            vector_store: Example vector store
            session_factory: Database session factory for usage and generation rows
            transport: Optional httpx transport for the spec compiler, the
                language server and the verifier, used by tests
            canonicalizer: Optional dialect canonicalizer
            trace: Trace logger, created from ``config.logging`` when omitted
        """
        self.config = config
        self.canonicalizer = canonicalizer
        self.transport = transport

        self._provider = provider
        self._embedder = embedder
        self._vector_store = vector_store
        self._session_factory = session_factory
        self._trace = trace

        self._instructions: DialectInstructions | None = None
        self._retriever: BaseRetriever | None = None
        self._compiler: PromptCompiler | None = None
        self._verifier: Verifier | None = None
        self._accountant: UsageAccountant | None = None

    @property
    def trace(self) -> TraceLogger:
        if self._trace is None:
            artifacts = None
            if self.config.features.enable_analytics:
                artifacts = ArtifactStore(self.config.logging.output_dir)
            self._trace = TraceLogger(artifacts=artifacts)
        return self._trace

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            gen_config = self.config.generation
            kwargs: dict[str, Any] = {}

            if gen_config.api_base:
                if gen_config.provider == ProviderType.OPENAI:
                    kwargs["base_url"] = gen_config.api_base
                else:
                    kwargs["api_base"] = gen_config.api_base

            self._provider = create_provider(gen_config.provider.value, gen_config.model, **kwargs)
        return self._provider

    @property
    def instructions(self) -> DialectInstructions:
        if self._instructions is None:
            self._instructions = DialectInstructions(
                corpus_dir=self.config.retrieval.corpus_dir,
                language_server_url=self.config.verifier.language_server_url,
                transport=self.transport,
            )
        return self._instructions

    @property
    def retriever(self) -> BaseRetriever:
        if self._retriever is None:
            ret_config = self.config.retrieval
            features = self.config.features

            vector_store = self._vector_store
            if vector_store is None and ret_config.vector_store_path:
                vector_store = InMemoryVectorStore.from_jsonl(ret_config.vector_store_path)

            embedder = self._embedder
            if embedder is None and vector_store is not None and features.enable_vector_search:
                embedder = create_embedding_provider(
                    ret_config.embedding_provider.value, ret_config.embedding_model
                )

            self._retriever = HybridRetriever(
                embedder=embedder,
                vector_store=vector_store,
                keyword_retriever=KeywordRetriever(ret_config.corpus_dir),
                vector_weight=ret_config.vector_weight,
                timeout_s=ret_config.timeout_s,
                enable_vector_search=features.enable_vector_search,
                enable_hybrid_search=features.enable_hybrid_search,
                trace=self.trace,
            )
        return self._retriever

    @property
    def compiler(self) -> PromptCompiler:
        if self._compiler is None:
            self._compiler = PromptCompiler(
                config=self.config.spec_compiler,
                features=self.config.features,
                instructions=self.instructions,
                renderer=PromptRenderer(),
                trace=self.trace,
                transport=self.transport,
            )
        return self._compiler

    @property
    def verifier(self) -> Verifier:
        if self._verifier is None:
            client = CompilerClient(
                api_url=self.config.verifier.api_url,
                timeout=self.config.verifier.timeout_s,
                transport=self.transport,
            )
            self._verifier = Verifier(client, trace=self.trace)
        return self._verifier

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = create_session_factory(self.config.logging.database_url)
        return self._session_factory

    @property
    def accountant(self) -> UsageAccountant:
        if self._accountant is None:
            billing = self.config.billing
            self._accountant = UsageAccountant(
                session_factory=self.session_factory,
                billing=billing,
                pricing=PricingTable(billing.pricing),
                trace=self.trace,
            )
        return self._accountant


class CodeGenerationPipeline:
    """
    Turns a natural-language request into dialect code.

    Orchestrates:
    1. Starter template fast path
    2. Example retrieval
    3. Prompt compilation
    4. Streaming generation with the verify-repair loop
    5. Optional code description
    6. Usage accounting and the generation record
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        components: PipelineComponents | None = None,
    ):
        """
        Initialize pipeline.

        Args:
            config: Pipeline configuration, read from the environment when omitted
            components: Shared service objects, created from config when omitted
        """
        self.config = config or (components.config if components else PipelineConfig.from_env())
        self.components = components or PipelineComponents(self.config)

    @property
    def trace(self) -> TraceLogger:
        return self.components.trace

    async def generate_code(self, request: GenerationRequest) -> CodeGenerationResponse:
        """
        Generate code for a request.

        Args:
            request: Generation request

        Returns:
            CodeGenerationResponse; an exhausted repair loop still returns
            normally with a failing verification

        Raises:
            GenerationError: If generation failed without any usable output
        """
        start_time = time.time()
        request_id = request.request_id
        request_fields = {k: v for k, v in request.to_dict().items() if k != "request_id"}
        self.trace.log(request_id, "pipeline.start", **request_fields)

        if request.user_prompt.strip() == STARTER_TEMPLATE_PROMPT:
            response = await self._starter_template(request, start_time)
            if response is not None:
                return response

        gen_config = self.config.generation
        examples = await self.components.retriever.retrieve(
            request.user_prompt, request.dialect, self.config.retrieval.top_k, request_id
        )

        context_pack = ContextPack(
            latest_ask=request.user_prompt,
            constraints=Constraints(
                dialect=request.dialect,
                max_output_tokens=request.options.max_tokens or gen_config.max_tokens,
            ),
            current_code=request.current_code,
            conversation_summary=request.conversation_summary,
            retrieved_chunks=tuple(examples),
        )
        spec = await self.components.compiler.compile_codegen(context_pack, request_id)
        spec = merge_examples(spec, examples)

        context = RenderContext(
            user_request=request.user_prompt,
            dialect=request.dialect,
            current_code=request.current_code,
            conversation_summary=request.conversation_summary,
            retrieved_chunks=tuple(examples),
        )
        options = CallOptions(
            model=request.options.model or gen_config.model,
            temperature=(
                request.options.temperature
                if request.options.temperature is not None
                else gen_config.temperature
            ),
            max_tokens=request.options.max_tokens or gen_config.max_tokens,
        )

        generator = StreamingGenerator(
            self.components.provider,
            max_continuations=gen_config.max_continuations,
            terminator=get_terminator(request.dialect),
        )
        loop = RepairLoop(
            generator=generator,
            compiler=self.components.compiler,
            verifier=self.components.verifier,
            config=gen_config,
            canonicalizer=self.components.canonicalizer,
            trace=self.trace,
        )
        outcome = await loop.run(spec, context, context_pack, options, request.auth_token, request_id)

        if not outcome.has_output:
            latency_ms = (time.time() - start_time) * 1000
            message = outcome.error or "No code was generated"
            self.trace.log(request_id, "pipeline.error", error=message, latency_ms=latency_ms)
            await self._save_generation(request, outcome, "error", latency_ms, message)
            raise GenerationError(f"Code generation failed: {message}", request_id=request_id)

        usage = outcome.usage
        description = None
        if self.config.features.describe_code:
            description = await self._describe(outcome.code, request.dialect, usage, request_id)

        usage_record = await self.components.accountant.account(
            request_id,
            usage,
            outcome.models_used,
            account_id=request.account_id,
            fix_attempts=outcome.fix_attempts,
            plan=request.plan,
        )

        final_model = outcome.generation.model if outcome.generation else options.model
        response = CodeGenerationResponse(
            code=outcome.code,
            model=final_model or options.model,
            usage=usage,
            verification=outcome.verification,
            fix_attempts=outcome.fix_attempts,
            request_id=request_id,
            description=description,
            models_used=list(outcome.models_used),
            usage_record=usage_record,
            latency_ms=(time.time() - start_time) * 1000,
            error=outcome.error,
        )

        await self._save_generation(request, outcome, response.status, response.latency_ms, outcome.error)
        self.trace.log(
            request_id,
            "pipeline.complete",
            status=response.status,
            error=response.error,
            fix_attempts=response.fix_attempts,
            models_used=response.models_used,
            code_length=len(response.code),
            usage=usage.to_dict(),
            latency_ms=response.latency_ms,
        )
        logger.info(
            f"Request {request_id} finished: {response.status} after "
            f"{response.fix_attempts} fix attempt(s) ({response.latency_ms:.0f}ms)"
        )
        return response

    async def _starter_template(
        self, request: GenerationRequest, start_time: float
    ) -> CodeGenerationResponse | None:
        template = await self.components.instructions.get_template(request.dialect)
        if not template:
            logger.info(f"No starter template for L{request.dialect}; generating instead")
            return None

        response = CodeGenerationResponse(
            code=template,
            model="template",
            usage=TokenUsage(),
            verification=None,
            fix_attempts=0,
            request_id=request.request_id,
            latency_ms=(time.time() - start_time) * 1000,
            from_template=True,
        )
        self.trace.log(
            request.request_id,
            "pipeline.complete",
            status=response.status,
            code_length=len(template),
            latency_ms=response.latency_ms,
        )
        return response

    async def _describe(
        self, code: str, dialect: str, usage: TokenUsage, request_id: str
    ) -> str | None:
        """Describe code in one sentence with the fast tier; tokens are added to ``usage``."""
        prompt = self.components.compiler.renderer.render("describe", dialect=dialect, code=code)
        generator = StreamingGenerator(self.components.provider, max_continuations=0)
        options = CallOptions(
            model=self.config.generation.tiers.fast, temperature=0.2, max_tokens=DESCRIBE_MAX_TOKENS
        )

        result = await generator.generate_long_code(
            DESCRIBE_SYSTEM_PROMPT, [{"role": "user", "content": prompt}], options
        )
        usage.add(result.usage.input_tokens, result.usage.output_tokens)

        if result.is_error or not result.has_output:
            logger.warning(f"Code description failed: {result.error or 'empty response'}")
            self.trace.log(request_id, "describe.error", error=result.error)
            return None

        description = result.content.strip()
        self.trace.log(request_id, "describe.complete", length=len(description))
        return description

    async def _save_generation(
        self,
        request: GenerationRequest,
        outcome: RepairOutcome,
        status: str,
        latency_ms: float,
        error_message: str | None = None,
    ) -> None:
        if not self.config.features.enable_analytics:
            return

        row = Generation(
            request_id=request.request_id,
            account_id=request.account_id,
            dialect=request.dialect,
            status=status,
            fix_attempts=outcome.fix_attempts,
            model=outcome.models_used[-1] if outcome.models_used else None,
            models_used=list(outcome.models_used),
            code_length=len(outcome.code or ""),
            input_tokens=outcome.usage.input_tokens,
            output_tokens=outcome.usage.output_tokens,
            latency_ms=latency_ms,
            errors_json=[e.to_dict() for e in outcome.verification.errors] if outcome.verification else [],
            error_message=error_message,
        )

        def _write() -> None:
            with session_scope(self.components.session_factory) as session:
                session.add(row)

        try:
            await asyncio.to_thread(_write)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save generation record for {request.request_id}: {e}")

    async def check_health(self) -> dict[str, Any]:
        """
        Check reachability of optional external services.

        Returns:
            Dict with ``spec_compiler`` True/False, or None when disabled
        """
        compiler = self.components.compiler
        return {"spec_compiler": await compiler.check_health() if compiler.enabled else None}
