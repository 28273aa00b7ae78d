"""API routes for code generation."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException

from dslgen.api.routes.deps import get_pipeline
from dslgen.api.schemas import (
    CompilerErrorResponse,
    GenerateRequest,
    GenerateResponse,
    VerificationResponse,
)
from dslgen.exceptions import GenerationError
from dslgen.pipeline.request import ConversationSummary, GenerationOptions, GenerationRequest
from dslgen.pipeline.runner import CodeGenerationPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generate", tags=["generate"])


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return authorization.strip()


@router.post("", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    authorization: str | None = Header(default=None),
    pipeline: CodeGenerationPipeline = Depends(get_pipeline),
) -> GenerateResponse:
    """
    Generate dialect code for a natural-language request.

    The Authorization token is forwarded to the compiler for verification;
    without one the code is returned unverified.
    """
    summary = None
    if body.conversation_summary is not None:
        summary = ConversationSummary(
            turn_count=body.conversation_summary.turn_count,
            previous_requests=tuple(body.conversation_summary.previous_requests),
            previous_outputs=tuple(body.conversation_summary.previous_outputs),
        )

    try:
        request = GenerationRequest(
            user_prompt=body.prompt,
            dialect=body.dialect,
            current_code=body.current_code,
            conversation_summary=summary,
            options=GenerationOptions(
                model=body.options.model,
                temperature=body.options.temperature,
                max_tokens=body.options.max_tokens,
            ),
            account_id=body.account_id,
            auth_token=_bearer_token(authorization),
            plan=body.plan,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        response = await pipeline.generate_code(request)
    except GenerationError as e:
        logger.error(f"Generation failed for {e.request_id}: {e}")
        raise HTTPException(status_code=502, detail={"message": str(e), "request_id": e.request_id})

    verification = None
    if response.verification is not None:
        verification = VerificationResponse(
            status=response.verification.status,
            task_id=response.verification.task_id,
            errors=[CompilerErrorResponse(**err.to_dict()) for err in response.verification.errors],
        )

    record = response.usage_record
    return GenerateResponse(
        request_id=response.request_id,
        status=response.status,
        code=response.code,
        model=response.model,
        usage=response.usage.to_dict(),
        verification=verification,
        fix_attempts=response.fix_attempts,
        description=response.description,
        models_used=response.models_used,
        billed_units=record.billed_units if record else None,
        cost_usd=record.cost_usd if record else None,
        latency_ms=response.latency_ms,
        error=response.error,
    )
