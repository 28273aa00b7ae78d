"""API routes for account usage."""

from fastapi import APIRouter, Depends, Query

from dslgen.accounting.accountant import current_period
from dslgen.api.routes.deps import get_pipeline
from dslgen.api.schemas import UsageEventResponse, UsageResponse
from dslgen.pipeline.runner import CodeGenerationPipeline

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/{account_id}", response_model=UsageResponse)
async def get_usage(
    account_id: str,
    limit: int = Query(10, ge=0, le=100, description="Number of recent runs to include"),
    pipeline: CodeGenerationPipeline = Depends(get_pipeline),
) -> UsageResponse:
    """Get the billed units of the current period and the most recent runs."""
    accountant = pipeline.components.accountant

    total = await accountant.get_current_usage(account_id)
    recent = await accountant.recent_usage(account_id, limit) if limit else []

    return UsageResponse(
        account_id=account_id,
        period=current_period(),
        total_units=total,
        recent=[
            UsageEventResponse(
                request_id=r.request_id,
                input_tokens=r.input_tokens,
                output_tokens=r.output_tokens,
                cost_usd=r.cost_usd,
                billed_units=r.billed_units,
                models_used=r.models_used,
                fix_attempts=r.fix_attempts,
                timestamp=r.timestamp,
            )
            for r in recent
        ],
    )
