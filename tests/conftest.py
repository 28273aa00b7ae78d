"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path
from typing import Any, Callable

import pytest

from dslgen.config.schemas import (
    FeatureFlags,
    LoggingConfig,
    PipelineConfig,
    RetrievalConfig,
    VerifierConfig,
)
from dslgen.storage.database import create_session_factory
from fakes import COMPILER_URL, DIALECT, LANGUAGE_SERVER_URL, SPEC_COMPILER_URL, TRAINING_EXAMPLES


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def corpus_dir(temp_dir):
    """Directory holding the L0002 training-example corpus."""
    directory = temp_dir / "training"
    directory.mkdir()
    (directory / f"l{DIALECT}-training-examples.md").write_text(TRAINING_EXAMPLES)
    return directory


@pytest.fixture
def vector_records():
    """Pre-embedded examples for the in-memory vector store."""
    return [
        {"id": "v1", "lang": DIALECT, "prompt": "Add two numbers", "code": "add 1 2..", "embedding": [1.0, 0.0, 0.0]},
        {"id": "v2", "lang": DIALECT, "prompt": "Subtract two numbers", "code": "sub 3 1..", "embedding": [0.8, 0.6, 0.0]},
        {"id": "v3", "lang": DIALECT, "prompt": "Show a table", "code": "title \"T\" {}..", "embedding": [0.0, 1.0, 0.0]},
        {"id": "v4", "lang": "0001", "prompt": "Add two numbers", "code": "add 1 2..", "embedding": [1.0, 0.0, 0.0]},
    ]


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    return create_session_factory("sqlite://")


@pytest.fixture
def make_config(temp_dir, corpus_dir) -> Callable[..., PipelineConfig]:
    """Build a PipelineConfig pointing at the test services and corpus."""

    def _make(**features: Any) -> PipelineConfig:
        flags = {"enable_vector_search": False, "enable_analytics": True}
        flags.update(features)
        return PipelineConfig(
            features=FeatureFlags(**flags),
            retrieval=RetrievalConfig(corpus_dir=str(corpus_dir)),
            spec_compiler={"url": SPEC_COMPILER_URL},
            verifier=VerifierConfig(api_url=COMPILER_URL, language_server_url=LANGUAGE_SERVER_URL),
            logging=LoggingConfig(output_dir=str(temp_dir / "traces")),
        )

    return _make


@pytest.fixture
def pipeline_config(make_config):
    """Default test configuration: keyword retrieval, no spec compiler."""
    return make_config()

