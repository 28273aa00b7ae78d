"""Tests for pricing and usage accounting."""

import asyncio
from datetime import datetime, timezone

import pytest

from dslgen.accounting.accountant import UsageAccountant, current_period
from dslgen.accounting.pricing import PricingTable, compute_billed_units, format_cost
from dslgen.config.defaults import FAST_MODEL, PREMIUM_MODEL, STANDARD_MODEL
from dslgen.config.schemas import BillingConfig
from dslgen.generation.result import TokenUsage
from dslgen.pipeline.trace import TraceLogger
from dslgen.storage.database import session_scope
from dslgen.storage.models import UsageEvent, UsageTotal

USAGE = TokenUsage(input_tokens=1000, output_tokens=500)


class TestPricingTable:
    """Tests for per-model pricing."""

    def test_prefix_match(self):
        table = PricingTable()

        assert table.get_model_pricing(STANDARD_MODEL) == {"input": 3.00, "output": 15.00}
        assert table.get_model_pricing(FAST_MODEL) == {"input": 0.80, "output": 4.00}

    def test_longest_prefix_wins(self):
        table = PricingTable()

        assert table.get_model_pricing("gpt-4o-mini-2024-07-18") == {"input": 0.15, "output": 0.60}

    def test_unknown_model_uses_default(self):
        assert PricingTable().get_model_pricing("mystery-model") == {"input": 3.00, "output": 15.00}
        assert PricingTable().get_model_pricing(None) == {"input": 3.00, "output": 15.00}

    def test_estimate_cost(self):
        assert PricingTable().estimate_cost(1000, 500, STANDARD_MODEL) == pytest.approx(0.0105)

    def test_single_model_run(self):
        table = PricingTable()

        cost = table.estimate_run_cost(1000, 500, [STANDARD_MODEL, STANDARD_MODEL])

        assert cost == pytest.approx(0.0105)

    def test_escalated_run_split(self):
        table = PricingTable()

        cost = table.estimate_run_cost(1000, 500, [STANDARD_MODEL, PREMIUM_MODEL, PREMIUM_MODEL])

        expected = table.estimate_cost(700, 350, STANDARD_MODEL) + table.estimate_cost(300, 150, PREMIUM_MODEL)
        assert cost == pytest.approx(expected)

    def test_no_models(self):
        assert PricingTable().estimate_run_cost(1000, 500, []) == pytest.approx(0.0105)


class TestBilledUnits:
    """Tests for cost to unit conversion."""

    @pytest.mark.parametrize("unit_price,expected", [(0.005, 3), (0.001, 11), (0.0005, 21)])
    def test_priced_plans(self, unit_price, expected):
        assert compute_billed_units(0.0105, 1500, unit_price) == expected

    def test_minimum_one_unit(self):
        assert compute_billed_units(0.0, 0, 0.005) == 1
        assert compute_billed_units(0.0, 0, None) == 1

    def test_unpriced_plan_uses_tokens(self):
        assert compute_billed_units(0.0105, 1500, None) == 2
        assert compute_billed_units(0.0105, 1500, None, tokens_per_unit=500) == 3

    def test_format_cost(self):
        assert format_cost(0.25) == "$0.250"
        assert format_cost(0.001) == "$0.0010"
        assert format_cost(12.5) == "$12.50"


class TestUsageAccountant:
    """Tests for usage records and their persistence."""

    def test_build_record(self):
        accountant = UsageAccountant()

        record = accountant.build_record("r1", USAGE, [STANDARD_MODEL], account_id="acct", plan="pro")

        assert record.cost_usd == pytest.approx(0.0105)
        assert record.billed_units == 11
        assert record.total_tokens == 1500
        assert record.plan == "pro"

    def test_default_plan_is_unpriced(self):
        record = UsageAccountant().build_record("r1", USAGE, [STANDARD_MODEL])

        assert record.plan == "demo"
        assert record.billed_units == 2

    def test_configured_prices(self):
        billing = BillingConfig(unit_prices={"gold": 0.01}, default_plan="gold")

        record = UsageAccountant(billing=billing).build_record("r1", USAGE, [STANDARD_MODEL])

        assert record.billed_units == 2

    def test_no_account_not_persisted(self, session_factory):
        accountant = UsageAccountant(session_factory=session_factory)

        record = asyncio.run(accountant.account("r1", USAGE, [STANDARD_MODEL]))

        assert record.billed_units == 2
        with session_scope(session_factory) as session:
            assert session.query(UsageEvent).count() == 0

    def test_account_accumulates(self, session_factory):
        trace = TraceLogger(keep_records=True)
        accountant = UsageAccountant(session_factory=session_factory, trace=trace)

        asyncio.run(accountant.account("r1", USAGE, [STANDARD_MODEL], account_id="acct", plan="pro"))
        asyncio.run(accountant.account("r2", USAGE, [STANDARD_MODEL], account_id="acct", plan="starter"))

        assert asyncio.run(accountant.get_current_usage("acct")) == 14
        assert asyncio.run(accountant.get_current_usage("other")) == 0
        assert trace.stages("r1") == ["usage.recorded"]

        with session_scope(session_factory) as session:
            events = session.query(UsageEvent).filter_by(account_id="acct").all()
            assert sorted(e.billed_units for e in events) == [3, 11]
            assert all(e.period == current_period() for e in events)

    def test_month_rollover_resets_total(self, session_factory):
        with session_scope(session_factory) as session:
            session.add(UsageTotal(account_id="acct", period="2000-01", total=500))

        accountant = UsageAccountant(session_factory=session_factory)

        assert asyncio.run(accountant.get_current_usage("acct")) == 0

        asyncio.run(accountant.account("r1", USAGE, [STANDARD_MODEL], account_id="acct", plan="pro"))

        assert asyncio.run(accountant.get_current_usage("acct")) == 11
        with session_scope(session_factory) as session:
            total = session.get(UsageTotal, "acct")
            assert total.period == current_period()

    def test_recent_usage_newest_first(self, session_factory):
        accountant = UsageAccountant(session_factory=session_factory)

        for request_id in ("r1", "r2", "r3"):
            asyncio.run(
                accountant.account(request_id, USAGE, [STANDARD_MODEL, PREMIUM_MODEL], account_id="acct", fix_attempts=1)
            )

        records = asyncio.run(accountant.recent_usage("acct", limit=2))

        assert [r.request_id for r in records] == ["r3", "r2"]
        assert records[0].models_used == [STANDARD_MODEL, PREMIUM_MODEL]
        assert records[0].fix_attempts == 1

    def test_without_database(self):
        accountant = UsageAccountant()

        assert asyncio.run(accountant.get_current_usage("acct")) == 0
        assert asyncio.run(accountant.recent_usage("acct")) == []

    def test_database_failure_is_swallowed(self, session_factory):
        trace = TraceLogger(keep_records=True)
        accountant = UsageAccountant(session_factory=session_factory, trace=trace)
        with session_factory.kw["bind"].begin() as connection:
            UsageEvent.__table__.drop(connection)

        record = asyncio.run(accountant.account("r1", USAGE, [STANDARD_MODEL], account_id="acct"))

        assert record.billed_units == 2
        assert trace.stages("r1") == ["usage.error"]


def test_current_period():
    assert current_period(datetime(2026, 3, 9, tzinfo=timezone.utc)) == "2026-03"
