"""Per-run usage accounting backed by SQLAlchemy."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dslgen.accounting.pricing import PricingTable, compute_billed_units
from dslgen.config.schemas import BillingConfig
from dslgen.generation.result import TokenUsage
from dslgen.pipeline.trace import TraceLogger
from dslgen.storage.database import session_scope
from dslgen.storage.models import UsageEvent, UsageTotal

logger = logging.getLogger(__name__)

# Attempts at the insert-or-update of a usage total before giving up
MAX_TOTAL_RETRIES = 3


def current_period(now: datetime | None = None) -> str:
    """Billing period (YYYY-MM) for a timestamp, defaulting to now (UTC)."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m")


@dataclass
class UsageRecord:
    """Aggregated usage of one completed pipeline run."""

    request_id: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    billed_units: int
    models_used: list[str] = field(default_factory=list)
    fix_attempts: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    account_id: str | None = None
    plan: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "account_id": self.account_id,
            "plan": self.plan,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cost_usd": self.cost_usd,
            "billed_units": self.billed_units,
            "models_used": list(self.models_used),
            "fix_attempts": self.fix_attempts,
            "timestamp": self.timestamp.isoformat(),
        }


class UsageAccountant:
    """
    Converts a run's token usage into cost and billed units and persists it.

    Each run writes one immutable ``usage_events`` row and adds its units to
    the account's ``usage_totals`` row in the same transaction. Persistence
    failures are logged and swallowed; the caller always gets the record.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        billing: BillingConfig | None = None,
        pricing: PricingTable | None = None,
        trace: TraceLogger | None = None,
    ):
        """
        Initialize usage accountant.

        Args:
            session_factory: SQLAlchemy session factory, None disables persistence
            billing: Plan unit prices and token conversion
            pricing: Per-model token prices
            trace: Trace logger for accounting records
        """
        self.session_factory = session_factory
        self.billing = billing or BillingConfig()
        self.pricing = pricing or PricingTable(self.billing.pricing)
        self.trace = trace or TraceLogger()

    def build_record(
        self,
        request_id: str,
        usage: TokenUsage,
        models_used: list[str],
        account_id: str | None = None,
        fix_attempts: int = 0,
        plan: str | None = None,
    ) -> UsageRecord:
        """
        Price a run without persisting it.

        Args:
            request_id: Correlation key of the run
            usage: Tokens summed over every generation call of the run
            models_used: Models in the order they were used
            account_id: Account to bill
            fix_attempts: Repair cycles the run took
            plan: Plan tier of the account, the configured default when None

        Returns:
            UsageRecord
        """
        plan = plan or self.billing.default_plan
        cost = self.pricing.estimate_run_cost(usage.input_tokens, usage.output_tokens, models_used)
        units = compute_billed_units(
            cost,
            usage.total_tokens,
            self.billing.unit_prices.get(plan),
            self.billing.tokens_per_unit,
        )

        return UsageRecord(
            request_id=request_id,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cost_usd=cost,
            billed_units=units,
            models_used=list(models_used),
            fix_attempts=fix_attempts,
            account_id=account_id,
            plan=plan,
        )

    async def account(
        self,
        request_id: str,
        usage: TokenUsage,
        models_used: list[str],
        account_id: str | None = None,
        fix_attempts: int = 0,
        plan: str | None = None,
    ) -> UsageRecord:
        """
        Price and persist a completed run.

        Args:
            request_id: Correlation key of the run
            usage: Tokens summed over every generation call of the run
            models_used: Models in the order they were used
            account_id: Account to bill, nothing is persisted when None
            fix_attempts: Repair cycles the run took
            plan: Plan tier of the account

        Returns:
            UsageRecord, whether or not it was persisted
        """
        record = self.build_record(request_id, usage, models_used, account_id, fix_attempts, plan)

        if self.session_factory is None or not account_id:
            logger.debug(f"Usage for {request_id} not persisted (no account or database)")
            return record

        try:
            await asyncio.to_thread(self._persist, record)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record usage for {request_id}: {e}")
            self.trace.log(request_id, "usage.error", error=str(e))
            return record

        logger.info(
            f"Recorded {record.billed_units} units (${record.cost_usd:.6f}) "
            f"for account {account_id}"
        )
        self.trace.log(
            request_id,
            "usage.recorded",
            account_id=account_id,
            billed_units=record.billed_units,
            cost_usd=record.cost_usd,
            models_used=record.models_used,
        )
        return record

    def _persist(self, record: UsageRecord) -> None:
        period = current_period(record.timestamp)

        for attempt in range(1, MAX_TOTAL_RETRIES + 1):
            try:
                with session_scope(self.session_factory) as session:
                    session.add(
                        UsageEvent(
                            request_id=record.request_id,
                            account_id=record.account_id,
                            input_tokens=record.input_tokens,
                            output_tokens=record.output_tokens,
                            cost_usd=record.cost_usd,
                            billed_units=record.billed_units,
                            models_used=record.models_used,
                            fix_attempts=record.fix_attempts,
                            period=period,
                        )
                    )
                    self._add_to_total(session, record.account_id, period, record.billed_units)
                return
            except IntegrityError:
                # Another writer created the total row first
                if attempt == MAX_TOTAL_RETRIES:
                    raise
                logger.debug(f"Retrying usage total for {record.account_id} (attempt {attempt})")

    @staticmethod
    def _add_to_total(session: Session, account_id: str, period: str, units: int) -> None:
        result = session.execute(
            update(UsageTotal)
            .where(UsageTotal.account_id == account_id, UsageTotal.period == period)
            .values(total=UsageTotal.total + units)
        )
        if result.rowcount:
            return

        # Month rollover
        result = session.execute(
            update(UsageTotal)
            .where(UsageTotal.account_id == account_id, UsageTotal.period != period)
            .values(period=period, total=units)
        )
        if result.rowcount:
            return

        session.add(UsageTotal(account_id=account_id, period=period, total=units))
        session.flush()

    async def get_current_usage(self, account_id: str) -> int:
        """
        Get the billed units of the current period.

        Args:
            account_id: Account to look up

        Returns:
            Units billed this month, 0 when the stored total is from an earlier period
        """
        if self.session_factory is None:
            return 0
        return await asyncio.to_thread(self._read_total, account_id, current_period())

    def _read_total(self, account_id: str, period: str) -> int:
        with session_scope(self.session_factory) as session:
            row = session.get(UsageTotal, account_id)
            if row is None or row.period != period:
                return 0
            return row.total

    async def recent_usage(self, account_id: str, limit: int = 10) -> list[UsageRecord]:
        """
        Get the most recent usage events of an account.

        Args:
            account_id: Account to look up
            limit: Maximum number of events

        Returns:
            Records, newest first
        """
        if self.session_factory is None:
            return []
        return await asyncio.to_thread(self._read_events, account_id, limit)

    def _read_events(self, account_id: str, limit: int) -> list[UsageRecord]:
        with session_scope(self.session_factory) as session:
            rows = session.scalars(
                select(UsageEvent)
                .where(UsageEvent.account_id == account_id)
                .order_by(UsageEvent.created_at.desc(), UsageEvent.id.desc())
                .limit(limit)
            ).all()
            return [
                UsageRecord(
                    request_id=row.request_id,
                    input_tokens=row.input_tokens,
                    output_tokens=row.output_tokens,
                    cost_usd=row.cost_usd,
                    billed_units=row.billed_units,
                    models_used=list(row.models_used or []),
                    fix_attempts=row.fix_attempts,
                    timestamp=row.created_at,
                    account_id=row.account_id,
                )
                for row in rows
            ]
