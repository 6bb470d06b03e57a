from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from catalyst_monitor.config import OrganizationConfig
from catalyst_monitor.errors import UpstreamFetchError
from catalyst_monitor.ledger import KoiosClient, PriceClient
from catalyst_monitor.pipeline import ProjectResult
from catalyst_monitor.schemas import GlobalFinancialRow
from catalyst_monitor.utils import round_half_up

log = logging.getLogger(__name__)

PLACEHOLDER_ORGANIZATION = "N/A"


@dataclass(frozen=True)
class OrganizationRollup:
    name: str
    wallet: str
    balance_native: float
    balance_converted: float
    months_real: int
    months_max: int


@dataclass(frozen=True)
class GlobalFinancials:
    project_count: int
    total_budget: float
    total_received: float
    real_monthly_budget: float
    max_monthly_budget: float
    exchange_rate: float
    organizations: tuple[OrganizationRollup, ...]

    @property
    def remaining_funds(self) -> float:
        return self.total_budget - self.total_received

    def rows(self) -> list[GlobalFinancialRow]:
        orgs = self.organizations or (
            OrganizationRollup(PLACEHOLDER_ORGANIZATION, "", 0.0, 0.0, 0, 0),
        )
        return [
            GlobalFinancialRow(
                projects="ALL",
                organization=org.name,
                total_budget=self.total_budget,
                real_monthly_budget=self.real_monthly_budget,
                months_real=org.months_real,
                max_monthly_budget=self.max_monthly_budget,
                months_max=org.months_max,
                total_received=self.total_received,
                remaining_funds=self.remaining_funds,
                wallet_balance_native=org.balance_native,
                wallet_balance_converted=org.balance_converted,
            )
            for org in orgs
        ]


def runway_months(balance: float, monthly_rate: float) -> int:
    """Months a balance lasts at a monthly spend; a non-positive rate yields 0."""
    if monthly_rate <= 0:
        return 0
    return round_half_up(balance / monthly_rate)


async def _balance(ledger: KoiosClient, org: OrganizationConfig) -> float:
    if not org.wallet:
        return 0.0
    try:
        return await ledger.get_balance(org.wallet)
    except UpstreamFetchError as exc:
        log.warning("Balance lookup failed for organization %s: %s", org.name, exc)
        return 0.0


async def compute_global(
    results: Sequence[ProjectResult],
    organizations: Sequence[OrganizationConfig],
    ledger: KoiosClient,
    prices: PriceClient,
) -> GlobalFinancials:
    """Cross-project totals plus per-organization balance and runway.

    The "real" scenario spends only the organization residual of each
    project per month; the "maximum" scenario spends every project's full
    monthly budget.
    """
    total_budget = math.fsum(r.financials.total_budget for r in results)
    total_received = math.fsum(r.total_received for r in results)
    real_monthly = math.fsum(r.financials.organization_monthly for r in results)
    max_monthly = math.fsum(r.financials.monthly_budget for r in results)

    try:
        rate = await prices.get_rate()
    except UpstreamFetchError as exc:
        log.warning("Exchange rate lookup failed, using 0: %s", exc)
        rate = 0.0

    orgs: list[OrganizationRollup] = []
    for org in organizations:
        balance = await _balance(ledger, org)
        orgs.append(OrganizationRollup(
            name=org.name,
            wallet=org.wallet,
            balance_native=balance,
            balance_converted=balance * rate,
            months_real=runway_months(balance, real_monthly),
            months_max=runway_months(balance, max_monthly),
        ))

    return GlobalFinancials(
        project_count=len(results),
        total_budget=total_budget,
        total_received=total_received,
        real_monthly_budget=real_monthly,
        max_monthly_budget=max_monthly,
        exchange_rate=rate,
        organizations=tuple(orgs),
    )
