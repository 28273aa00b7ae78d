"""Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Generation schemas
# ============================================================================


class ConversationSummaryBody(BaseModel):
    """Earlier turns of the conversation."""

    turn_count: int = Field(default=0, ge=0)
    previous_requests: list[str] = Field(default_factory=list)
    previous_outputs: list[str] = Field(default_factory=list)


class GenerationOptionsBody(BaseModel):
    """Per-request overrides for the first attempt."""

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)


class GenerateRequest(BaseModel):
    """Request to generate dialect code."""

    prompt: str = Field(..., min_length=1, description="Natural-language request")
    dialect: str = Field(..., min_length=1, description="Dialect identifier, e.g. 0002")
    current_code: str | None = Field(default=None, description="Code to change incrementally")
    conversation_summary: ConversationSummaryBody | None = None
    options: GenerationOptionsBody = Field(default_factory=GenerationOptionsBody)
    account_id: str | None = Field(default=None, description="Account billed for the run")
    plan: str | None = Field(default=None, description="Plan tier of the account")


class CompilerErrorResponse(BaseModel):
    """A single compiler diagnostic."""

    type: str
    message: str
    line: int | None = None
    column: int | None = None
    expected: str | None = None
    found: str | None = None


class VerificationResponse(BaseModel):
    """Outcome of compiling the returned code."""

    status: str
    task_id: str | None = None
    errors: list[CompilerErrorResponse] = Field(default_factory=list)


class GenerateResponse(BaseModel):
    """Response with generated code."""

    request_id: str
    status: str
    code: str
    model: str
    usage: dict[str, int]
    verification: VerificationResponse | None = None
    fix_attempts: int
    description: str | None = None
    models_used: list[str] = Field(default_factory=list)
    billed_units: int | None = None
    cost_usd: float | None = None
    latency_ms: float
    error: str | None = Field(default=None, description="Stream or repair failure behind the returned code")


# ============================================================================
# Usage schemas
# ============================================================================


class UsageEventResponse(BaseModel):
    """One recorded pipeline run."""

    request_id: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    billed_units: int
    models_used: list[str] = Field(default_factory=list)
    fix_attempts: int
    timestamp: datetime


class UsageResponse(BaseModel):
    """Current-period usage of an account."""

    account_id: str
    period: str
    total_units: int
    recent: list[UsageEventResponse] = Field(default_factory=list)


# ============================================================================
# Health schemas
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    spec_compiler: bool | None = None
    details: dict[str, Any] = Field(default_factory=dict)
