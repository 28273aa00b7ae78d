"""Shared route dependencies."""

from fastapi import Request

from dslgen.pipeline.runner import CodeGenerationPipeline


def get_pipeline(request: Request) -> CodeGenerationPipeline:
    """Get the pipeline attached to the application."""
    return request.app.state.pipeline
