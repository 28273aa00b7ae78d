"""Token pricing and conversion of cost into billed units."""

import math

from dslgen.config.defaults import DEFAULT_PRICING, DEFAULT_TOKENS_PER_UNIT, ESCALATION_SPLIT


class PricingTable:
    """
    Per-model token prices (USD per 1M tokens).

    Lookup tries an exact match, then the longest matching prefix
    (e.g. "claude-sonnet-4-20250514" -> "claude-sonnet-4"), then "default".
    """

    def __init__(self, pricing: dict[str, dict[str, float]] | None = None):
        """
        Initialize pricing table.

        Args:
            pricing: Dict of model -> {input: price, output: price} per 1M tokens
        """
        self.pricing = pricing or DEFAULT_PRICING

    def get_model_pricing(self, model: str | None) -> dict[str, float]:
        """
        Get pricing for a model.

        Args:
            model: Model name

        Returns:
            Dict with input and output prices per 1M tokens
        """
        if model:
            if model in self.pricing:
                return self.pricing[model]

            prefixes = [key for key in self.pricing if key != "default" and model.startswith(key)]
            if prefixes:
                return self.pricing[max(prefixes, key=len)]

        return self.pricing.get("default", DEFAULT_PRICING["default"])

    def estimate_cost(self, input_tokens: float, output_tokens: float, model: str | None) -> float:
        """
        Estimate cost for token usage on one model.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens
            model: Model name

        Returns:
            Estimated cost in USD
        """
        pricing = self.get_model_pricing(model)
        return (input_tokens / 1_000_000) * pricing["input"] + (output_tokens / 1_000_000) * pricing["output"]

    def estimate_run_cost(self, input_tokens: int, output_tokens: int, models_used: list[str]) -> float:
        """
        Estimate the cost of a whole pipeline run.

        With more than one distinct model, tokens are apportioned 70% to the
        first model and 30% to the last one. The split is an approximation;
        per-attempt token counts are not used.

        Args:
            input_tokens: Summed input tokens
            output_tokens: Summed output tokens
            models_used: Models in the order they were used

        Returns:
            Estimated cost in USD
        """
        distinct = list(dict.fromkeys(models_used))

        if len(distinct) <= 1:
            return self.estimate_cost(input_tokens, output_tokens, distinct[0] if distinct else None)

        first_share, escalated_share = ESCALATION_SPLIT
        return self.estimate_cost(
            input_tokens * first_share, output_tokens * first_share, distinct[0]
        ) + self.estimate_cost(input_tokens * escalated_share, output_tokens * escalated_share, distinct[-1])


def compute_billed_units(
    cost_usd: float,
    total_tokens: int,
    unit_price: float | None,
    tokens_per_unit: int = DEFAULT_TOKENS_PER_UNIT,
) -> int:
    """
    Convert a run's cost into billed units.

    Priced plans bill ``ceil(cost / unit_price)``; unpriced plans bill by
    token volume. Every run bills at least one unit.

    Args:
        cost_usd: Estimated run cost
        total_tokens: Input plus output tokens
        unit_price: Dollar price of one unit, None for unpriced plans
        tokens_per_unit: Token volume of one unit on unpriced plans

    Returns:
        Units to bill
    """
    if unit_price:
        # Rounding first keeps float noise like 21.000000000000004 from adding a unit
        return max(1, math.ceil(round(cost_usd / unit_price, 9)))
    return max(1, math.ceil(total_tokens / tokens_per_unit))


def format_cost(cost_usd: float) -> str:
    """Format cost as human-readable string."""
    if cost_usd < 0.01:
        return f"${cost_usd:.4f}"
    elif cost_usd < 1.0:
        return f"${cost_usd:.3f}"
    else:
        return f"${cost_usd:.2f}"
