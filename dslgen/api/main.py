"""FastAPI application for dslgen."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dslgen import __version__
from dslgen.api.routes import generate_router, usage_router
from dslgen.api.schemas import HealthResponse
from dslgen.pipeline.runner import CodeGenerationPipeline


def create_app(pipeline: CodeGenerationPipeline | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        pipeline: Pipeline serving the routes, configured from the environment when omitted
    """

    app = FastAPI(
        title="dslgen API",
        description="Retrieval-augmented code generation for DSL dialects",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.pipeline = pipeline or CodeGenerationPipeline()

    # Include routers
    app.include_router(generate_router)
    app.include_router(usage_router)

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check() -> HealthResponse:
        """Check API health and the reachability of the spec compiler."""
        services = await app.state.pipeline.check_health()
        spec_compiler = services.get("spec_compiler")
        return HealthResponse(
            status="degraded" if spec_compiler is False else "healthy",
            version=__version__,
            spec_compiler=spec_compiler,
            details=services,
        )

    # Root endpoint
    @app.get("/", tags=["health"])
    async def root() -> dict:
        """Root endpoint with API info."""
        return {
            "name": "dslgen API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app
