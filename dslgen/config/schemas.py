"""Pydantic schemas for pipeline configuration."""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from dslgen.config.defaults import (
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_MAX_CONTINUATIONS,
    DEFAULT_TOKENS_PER_UNIT,
    FAST_MODEL,
    MAX_FIX_ATTEMPTS,
    PLAN_UNIT_PRICES,
    PREMIUM_MODEL,
    STANDARD_MODEL,
)


class ProviderType(str, Enum):
    """Supported LLM providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    LOCAL = "local"


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() == "true"


class FeatureFlags(BaseModel):
    """Independently togglable pipeline features."""

    enable_vector_search: bool = Field(default=True, description="Use the vector store for retrieval")
    enable_hybrid_search: bool = Field(
        default=True, description="Blend keyword overlap into vector similarity"
    )
    enable_spec_compiler: bool = Field(
        default=False, description="Delegate prompt construction to the spec-compiler service"
    )
    spec_compiler_fallback_to_legacy: bool = Field(
        default=True, description="Build prompts locally when the spec compiler fails"
    )
    enable_analytics: bool = Field(
        default=True, description="Persist trace records and generation rows"
    )
    describe_code: bool = Field(
        default=False, description="Generate a one-sentence description of the final code"
    )


class RetrievalConfig(BaseModel):
    """Configuration for the similarity retriever."""

    top_k: int = Field(default=3, ge=1, le=50, description="Number of examples to retrieve")
    vector_weight: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Weight of vector similarity in the combined score"
    )
    timeout_s: float = Field(default=5.0, gt=0.0, description="Bound on embed + vector search")
    embedding_provider: EmbeddingProviderType = Field(default=EmbeddingProviderType.OPENAI)
    embedding_model: str = Field(default=DEFAULT_EMBEDDING_MODEL)
    vector_store_path: str | None = Field(
        default=None, description="Path to a pre-embedded corpus JSONL file"
    )
    corpus_dir: str = Field(
        default="training", description="Directory holding per-dialect example and instruction files"
    )


class ModelTiers(BaseModel):
    """Model identifiers per cost tier."""

    premium: str = Field(default=PREMIUM_MODEL)
    standard: str = Field(default=STANDARD_MODEL)
    fast: str = Field(default=FAST_MODEL)

    def is_premium(self, model: str) -> bool:
        """Check whether a model belongs to the premium tier."""
        return model == self.premium


class GenerationConfig(BaseModel):
    """Configuration for LLM generation."""

    provider: ProviderType = Field(default=ProviderType.ANTHROPIC, description="LLM provider")
    model: str = Field(default=STANDARD_MODEL, description="Model for the first attempt")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Sampling temperature")
    repair_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, ge=1, le=64000, description="Maximum output tokens per call")
    max_continuations: int = Field(default=DEFAULT_MAX_CONTINUATIONS, ge=0, le=50)
    max_fix_attempts: int = Field(default=MAX_FIX_ATTEMPTS, ge=0, le=10)
    api_base: str | None = Field(default=None, description="Custom API base URL")
    tiers: ModelTiers = Field(default_factory=ModelTiers)


class SpecCompilerConfig(BaseModel):
    """Configuration for the external prompt-spec compiler."""

    url: str = Field(default="http://localhost:8080")
    timeout_s: float = Field(default=5.0, gt=0.0)
    api_key: str | None = Field(default=None, description="Sent as X-API-Key")


class VerifierConfig(BaseModel):
    """Configuration for the external compiler/verifier and language server."""

    api_url: str = Field(default="https://api.graffiticode.org")
    language_server_url: str = Field(default="https://api.graffiticode.org")
    timeout_s: float = Field(default=30.0, gt=0.0)


class BillingConfig(BaseModel):
    """Configuration for usage accounting."""

    unit_prices: dict[str, float] = Field(default_factory=lambda: dict(PLAN_UNIT_PRICES))
    tokens_per_unit: int = Field(default=DEFAULT_TOKENS_PER_UNIT, ge=1)
    default_plan: str = Field(default="demo", description="Plan assumed when an account has no known plan")
    pricing: dict[str, dict[str, float]] | None = Field(
        default=None, description="Per-million-token prices, defaults to the built-in table"
    )

    @field_validator("unit_prices")
    @classmethod
    def prices_positive(cls, v: dict[str, float]) -> dict[str, float]:
        """Ensure every unit price is positive."""
        for plan, price in v.items():
            if price <= 0:
                raise ValueError(f"unit price for plan {plan!r} must be positive")
        return v


class LoggingConfig(BaseModel):
    """Configuration for logging and trace storage."""

    output_dir: str = Field(default="traces/", description="Directory for per-request trace files")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    database_url: str | None = Field(default=None, description="SQLAlchemy URL for usage storage")


class PipelineConfig(BaseModel):
    """Complete pipeline configuration."""

    features: FeatureFlags = Field(default_factory=FeatureFlags)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    spec_compiler: SpecCompilerConfig = Field(default_factory=SpecCompilerConfig)
    verifier: VerifierConfig = Field(default_factory=VerifierConfig)
    billing: BillingConfig = Field(default_factory=BillingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def model_not_unpriced_tier(self) -> "PipelineConfig":
        """Ensure the first-attempt model is set."""
        if not self.generation.model:
            raise ValueError("generation.model must not be empty")
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PipelineConfig":
        """Load configuration from a YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        import yaml

        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        """
        Build configuration from environment variables.

        Args:
            **overrides: Top-level sections that replace the environment-derived ones

        Returns:
            PipelineConfig
        """
        features = FeatureFlags(
            enable_vector_search=not _env_flag("DISABLE_VECTOR_SEARCH", False),
            enable_hybrid_search=not _env_flag("DISABLE_HYBRID_SEARCH", False),
            enable_analytics=not _env_flag("DISABLE_RAG_ANALYTICS", False),
            enable_spec_compiler=_env_flag("ENABLE_SPEC_COMPILER", False),
            spec_compiler_fallback_to_legacy=os.environ.get(
                "SPEC_COMPILER_FALLBACK_TO_LEGACY", "true"
            ).lower()
            != "false",
        )

        spec_compiler = SpecCompilerConfig(
            url=os.environ.get("SPEC_COMPILER_URL", "http://localhost:8080"),
            timeout_s=int(os.environ.get("SPEC_COMPILER_TIMEOUT_MS", "5000")) / 1000,
            api_key=os.environ.get("INTERNAL_API_KEY") or None,
        )

        verifier_kwargs: dict[str, Any] = {}
        if os.environ.get("COMPILER_API_URL"):
            verifier_kwargs["api_url"] = os.environ["COMPILER_API_URL"]
        if os.environ.get("LANGUAGE_SERVER_URL"):
            verifier_kwargs["language_server_url"] = os.environ["LANGUAGE_SERVER_URL"]

        data: dict[str, Any] = {
            "features": features,
            "spec_compiler": spec_compiler,
            "verifier": VerifierConfig(**verifier_kwargs),
        }
        data.update(overrides)
        return cls(**data)
