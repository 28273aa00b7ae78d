"""Default configuration values, pricing tables and model tiers."""

# Default embedding model for the OpenAI embedding provider
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

# Default sentence transformer for the local embedding provider
DEFAULT_LOCAL_EMBEDDING_MODEL = "all-MiniLM-L6-v2"

# Embedding input is truncated to this many characters
MAX_EMBEDDING_CHARS = 8000

# Model tiers used for escalation
PREMIUM_MODEL = "claude-opus-4-20250514"
STANDARD_MODEL = "claude-sonnet-4-20250514"
FAST_MODEL = "claude-3-5-haiku-20241022"

# Maximum number of repair cycles after the first attempt
MAX_FIX_ATTEMPTS = 2

# Maximum number of continuation calls per streamed generation
DEFAULT_MAX_CONTINUATIONS = 10

# Share of tokens attributed to the first tier when a run escalated.
# Approximation only; per-attempt counts are not measured.
ESCALATION_SPLIT = (0.7, 0.3)

# Pricing table for cost estimation (per 1M tokens)
DEFAULT_PRICING: dict[str, dict[str, float]] = {
    # Anthropic models
    "claude-opus-4": {"input": 15.00, "output": 75.00},
    "claude-sonnet-4": {"input": 3.00, "output": 15.00},
    "claude-3-5-sonnet": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku": {"input": 0.80, "output": 4.00},
    # OpenAI models
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    # Default fallback for unknown models (conservative estimate)
    "default": {"input": 3.00, "output": 15.00},
}

# Dollar price of one compile unit per plan. Plans not listed are unpriced
# and bill by token volume instead.
PLAN_UNIT_PRICES: dict[str, float] = {
    "starter": 0.005,
    "pro": 0.001,
    "max": 0.0005,
    "teams": 0.0005,
}

# Monthly unit allocation per plan
PLAN_ALLOCATIONS: dict[str, int] = {
    "demo": 100,
    "starter": 2000,
    "pro": 100000,
    "teams": 2000000,
}

# Flat conversion for unpriced plans
DEFAULT_TOKENS_PER_UNIT = 1000

# Statement terminator per dialect
DEFAULT_TERMINATOR = ".."
DIALECT_TERMINATORS: dict[str, str] = {}

# Prompt that loads the dialect's starter template instead of generating
STARTER_TEMPLATE_PROMPT = "Create a minimal starting template"


def get_terminator(dialect: str) -> str:
    """Get the statement terminator for a dialect."""
    return DIALECT_TERMINATORS.get(dialect, DEFAULT_TERMINATOR)
