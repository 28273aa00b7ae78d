"""Configuration schemas and defaults for dslgen."""

from dslgen.config.schemas import (
    PipelineConfig,
    FeatureFlags,
    RetrievalConfig,
    GenerationConfig,
    ModelTiers,
    SpecCompilerConfig,
    VerifierConfig,
    BillingConfig,
    LoggingConfig,
    ProviderType,
    EmbeddingProviderType,
)
from dslgen.config.defaults import DEFAULT_PRICING, DEFAULT_EMBEDDING_MODEL, get_terminator

__all__ = [
    "PipelineConfig",
    "FeatureFlags",
    "RetrievalConfig",
    "GenerationConfig",
    "ModelTiers",
    "SpecCompilerConfig",
    "VerifierConfig",
    "BillingConfig",
    "LoggingConfig",
    "ProviderType",
    "EmbeddingProviderType",
    "DEFAULT_PRICING",
    "DEFAULT_EMBEDDING_MODEL",
    "get_terminator",
]
