"""Tests for configuration schemas."""

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from dslgen.config.defaults import PREMIUM_MODEL, STANDARD_MODEL, get_terminator
from dslgen.config.schemas import (
    BillingConfig,
    FeatureFlags,
    GenerationConfig,
    PipelineConfig,
    ProviderType,
    RetrievalConfig,
)


class TestFeatureFlags:
    """Tests for FeatureFlags."""

    def test_defaults(self):
        flags = FeatureFlags()
        assert flags.enable_vector_search is True
        assert flags.enable_hybrid_search is True
        assert flags.enable_spec_compiler is False
        assert flags.spec_compiler_fallback_to_legacy is True
        assert flags.enable_analytics is True
        assert flags.describe_code is False


class TestGenerationConfig:
    """Tests for GenerationConfig."""

    def test_defaults(self):
        config = GenerationConfig()
        assert config.provider == ProviderType.ANTHROPIC
        assert config.model == STANDARD_MODEL
        assert config.max_fix_attempts == 2
        assert config.max_continuations == 10
        assert config.tiers.is_premium(PREMIUM_MODEL)
        assert not config.tiers.is_premium(STANDARD_MODEL)

    def test_invalid_temperature(self):
        with pytest.raises(ValidationError):
            GenerationConfig(temperature=3.0)  # Max is 2.0

    def test_negative_fix_attempts(self):
        with pytest.raises(ValidationError):
            GenerationConfig(max_fix_attempts=-1)


class TestRetrievalConfig:
    """Tests for RetrievalConfig."""

    def test_defaults(self):
        config = RetrievalConfig()
        assert config.top_k == 3
        assert config.vector_weight == 0.7
        assert config.timeout_s == 5.0

    def test_weight_bounds(self):
        with pytest.raises(ValidationError):
            RetrievalConfig(vector_weight=1.5)


class TestBillingConfig:
    """Tests for BillingConfig."""

    def test_default_prices(self):
        config = BillingConfig()
        assert config.unit_prices["starter"] == 0.005
        assert "demo" not in config.unit_prices
        assert config.default_plan == "demo"

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValidationError):
            BillingConfig(unit_prices={"free": 0.0})


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_nested_dicts(self):
        config = PipelineConfig(
            features={"describe_code": True},
            generation={"model": "gpt-4o-mini", "provider": "openai"},
        )
        assert config.features.describe_code is True
        assert config.generation.provider == ProviderType.OPENAI

    def test_empty_model_rejected(self):
        with pytest.raises(ValidationError):
            PipelineConfig(generation={"model": ""})

    def test_yaml_round_trip(self):
        config = PipelineConfig(
            retrieval={"top_k": 5, "corpus_dir": "examples"},
            billing={"unit_prices": {"pro": 0.002}},
        )

        with tempfile.NamedTemporaryFile(suffix=".yaml", delete=False) as f:
            path = Path(f.name)

        try:
            config.to_yaml(path)
            loaded = PipelineConfig.from_yaml(path)

            assert loaded.retrieval.top_k == 5
            assert loaded.retrieval.corpus_dir == "examples"
            assert loaded.billing.unit_prices == {"pro": 0.002}
            assert loaded == config
        finally:
            path.unlink()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DISABLE_VECTOR_SEARCH", "true")
        monkeypatch.setenv("DISABLE_HYBRID_SEARCH", "TRUE")
        monkeypatch.setenv("ENABLE_SPEC_COMPILER", "true")
        monkeypatch.setenv("SPEC_COMPILER_FALLBACK_TO_LEGACY", "false")
        monkeypatch.setenv("SPEC_COMPILER_URL", "http://specs:9000")
        monkeypatch.setenv("SPEC_COMPILER_TIMEOUT_MS", "2500")
        monkeypatch.setenv("INTERNAL_API_KEY", "internal")
        monkeypatch.setenv("COMPILER_API_URL", "http://compiler:3000")
        monkeypatch.delenv("DISABLE_RAG_ANALYTICS", raising=False)
        monkeypatch.delenv("LANGUAGE_SERVER_URL", raising=False)

        config = PipelineConfig.from_env()

        assert config.features.enable_vector_search is False
        assert config.features.enable_hybrid_search is False
        assert config.features.enable_spec_compiler is True
        assert config.features.spec_compiler_fallback_to_legacy is False
        assert config.features.enable_analytics is True
        assert config.spec_compiler.url == "http://specs:9000"
        assert config.spec_compiler.timeout_s == 2.5
        assert config.spec_compiler.api_key == "internal"
        assert config.verifier.api_url == "http://compiler:3000"
        assert config.verifier.language_server_url == "https://api.graffiticode.org"

    def test_from_env_flags_need_literal_true(self, monkeypatch):
        monkeypatch.setenv("DISABLE_VECTOR_SEARCH", "1")
        monkeypatch.delenv("ENABLE_SPEC_COMPILER", raising=False)
        monkeypatch.delenv("SPEC_COMPILER_FALLBACK_TO_LEGACY", raising=False)

        config = PipelineConfig.from_env()

        assert config.features.enable_vector_search is True
        assert config.features.enable_spec_compiler is False
        assert config.features.spec_compiler_fallback_to_legacy is True

    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.delenv("DISABLE_VECTOR_SEARCH", raising=False)

        config = PipelineConfig.from_env(features=FeatureFlags(enable_vector_search=False))

        assert config.features.enable_vector_search is False


def test_default_terminator():
    assert get_terminator("0002") == ".."
