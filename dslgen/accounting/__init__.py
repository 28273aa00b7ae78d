"""Usage accounting: token pricing, billed units and persisted totals."""

from dslgen.accounting.pricing import PricingTable, compute_billed_units, format_cost
from dslgen.accounting.accountant import UsageAccountant, UsageRecord, current_period

__all__ = [
    "PricingTable",
    "compute_billed_units",
    "format_cost",
    "UsageAccountant",
    "UsageRecord",
    "current_period",
]
