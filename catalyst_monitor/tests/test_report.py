"""Global rollup, table assembly and the Markdown summary."""
from __future__ import annotations

from datetime import date

import httpx
import pytest

from catalyst_monitor.config import Collaborator, OrganizationConfig
from catalyst_monitor.ledger import KoiosClient
from catalyst_monitor.report import build_tables, progress_percentage, render_summary
from catalyst_monitor.rollup import PLACEHOLDER_ORGANIZATION, compute_global, runway_months
from catalyst_monitor.utils import round_half_up

from catalyst_monitor.tests.conftest import FakeLedger, FakePrices, make_result


@pytest.mark.parametrize("completed, total, expected", [
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (4, 4, 100),
    (0, 0, 0),
])
def test_progress_percentage(completed, total, expected):
    assert progress_percentage(completed, total) == expected


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2


def test_runway_months():
    assert runway_months(100.0, 40.0) == 3
    assert runway_months(100.0, 0.0) == 0
    assert runway_months(100.0, -5.0) == 0


class TestComputeGlobal:
    @pytest.mark.asyncio
    async def test_totals_and_runway(self):
        results = [
            make_result("1", budget=120_000.0, received=20_000.0,
                        collaborators=(Collaborator(name="Alice", amount=24_000),)),
            make_result("2", budget=60_000.0, received=0.0),
        ]
        ledger = FakeLedger(balances={"addr_org": 90_000.0})
        gf = await compute_global(results, [OrganizationConfig(name="Org", wallet="addr_org")], ledger, FakePrices(0.5))

        assert gf.total_budget == pytest.approx(180_000.0)
        assert gf.total_received == pytest.approx(20_000.0)
        assert gf.remaining_funds == pytest.approx(160_000.0)
        # org residual per month: 8 000 + 5 000; full monthly budgets: 10 000 + 5 000
        assert gf.real_monthly_budget == pytest.approx(13_000.0)
        assert gf.max_monthly_budget == pytest.approx(15_000.0)
        (org,) = gf.organizations
        assert org.balance_converted == pytest.approx(45_000.0)
        assert org.months_real == 7
        assert org.months_max == 6

        (row,) = gf.rows()
        assert (row.projects, row.organization, row.months_real) == ("ALL", "Org", 7)

    @pytest.mark.asyncio
    async def test_rate_and_balance_failures_degrade_to_zero(self):
        gf = await compute_global(
            [make_result()], [OrganizationConfig(name="Org", wallet="addr_org")],
            FakeLedger(fail=True), FakePrices(fail=True),
        )
        assert gf.exchange_rate == 0.0
        (org,) = gf.organizations
        assert (org.balance_native, org.balance_converted, org.months_real) == (0.0, 0.0, 0)

    @pytest.mark.asyncio
    async def test_malformed_address_record_degrades_balance_to_zero(self):
        ledger = KoiosClient(
            "https://koios.example", transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[None])),
        )
        gf = await compute_global(
            [make_result()], [OrganizationConfig(name="Org", wallet="addr_org")], ledger, FakePrices(0.5),
        )
        (org,) = gf.organizations
        assert (org.balance_native, org.balance_converted) == (0.0, 0.0)
        assert gf.exchange_rate == 0.5

    @pytest.mark.asyncio
    async def test_no_organizations_yields_placeholder_row(self):
        gf = await compute_global([make_result()], [], FakeLedger(), FakePrices())
        (row,) = gf.rows()
        assert row.organization == PLACEHOLDER_ORGANIZATION
        assert row.total_budget == pytest.approx(120_000.0)


@pytest.mark.asyncio
async def test_build_tables_flattens_every_project():
    results = [make_result("1", completed=(True, False)), make_result("2", received=5.0)]
    gf = await compute_global(results, [], FakeLedger(), FakePrices())
    tables = build_tables(results, gf)

    assert [p.project_id for p in tables.proposals] == ["1", "2"]
    assert len(tables.milestones) == 5
    assert [t.project_id for t in tables.transactions] == ["2"]
    assert tables.collaborators == []
    assert len(tables.global_financials) == 1
    assert [(f.project_id, f.total_received) for f in tables.financials] == [("1", 0.0), ("2", 5.0)]
    assert [rt.TABLE for rt, _ in tables.items()] == [
        "proposals", "milestones", "transactions", "collaborators", "financials", "global_financials",
    ]


@pytest.mark.asyncio
async def test_render_summary():
    results = [
        make_result("1100271", title="Wallet | Tools", completed=(True, False, False), received=20_000.0,
                    collaborators=(Collaborator(name="Alice", allocation=0.25),)),
    ]
    gf = await compute_global(results, [OrganizationConfig(name="Org", wallet="w")],
                              FakeLedger(balances={"w": 1_000.0}), FakePrices())
    text = render_summary(results, gf, generated_on=date(2024, 6, 1))

    assert text.startswith("# Cardano Catalyst Monitoring Dashboard\n")
    assert "Last updated: 2024-06-01" in text
    assert "| 1100271 | Wallet \\| Tools | 120,000.00 | 20,000.00 | 100,000.00 | 1/3 | 33% |" in text
    assert "## Global Financials" in text
    assert "| Org | 1,000.00 | 500.00 |" in text
    assert "| 1 | Milestone 1 | 1 | 40,000.00 | 100 | 1 | 1 | ✅ Completed |" in text
    assert "| 2 | Milestone 2 | 2 | 40,000.00 | 0 | 1 | 0 | ⏳ Pending |" in text
    assert "- **Project Duration**: 12 months (2024-01-01 to 2025-01-01)" in text
    assert "| Alice | 25.0% | 2,500 ADA | 30,000 ADA |" in text
    assert text.endswith("\n")
