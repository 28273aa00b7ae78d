"""API route modules."""

from dslgen.api.routes.generate import router as generate_router
from dslgen.api.routes.usage import router as usage_router

__all__ = ["generate_router", "usage_router"]
