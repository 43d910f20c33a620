"""Portfolio valuation and aggregation.

Derived fields (valuations, totals, allocation) are always recomputed from the
holding collections; nothing here carries a stale value forward.
"""

from decimal import Decimal
from typing import Dict

from finsim.domain import calculators
from finsim.domain.game_rules import to_ratio
from finsim.domain.market_data import MarketDataProvider
from finsim.models.dc_models import AllocationModel, PortfolioModel
from finsim.models.response_models import PortfolioSnapshotModel, PortfolioSummaryModel


def refresh_valuations(portfolio: PortfolioModel, market: MarketDataProvider, round_number: int) -> None:
    """Re-value every holding at the given round's market data.

    Args:
        portfolio (PortfolioModel): Portfolio to update in place
        market (MarketDataProvider): Market view of the session
        round_number (int): Round whose prices and base rate apply
    """
    for stock in portfolio.stocks:
        stock.current_price = market.stock_price(stock.stock_id, round_number)
        stock.evaluation_amount = stock.current_price * stock.quantity
        stock.profit_loss = calculators.profit_loss(stock.avg_price, stock.current_price, stock.quantity)
        stock.return_rate = calculators.return_rate(stock.avg_price, stock.current_price)

    for fund in portfolio.funds:
        fund.current_nav = market.fund_nav(fund.fund_id, round_number)
        fund.evaluation_amount = fund.current_nav * fund.shares
        fund.profit_loss = calculators.profit_loss(fund.avg_nav, fund.current_nav, fund.shares)
        fund.return_rate = calculators.return_rate(fund.avg_nav, fund.current_nav)

    for deposit in portfolio.deposits:
        deposit.elapsed_months = max(round_number - deposit.subscription_round, 0)
        deposit.balance = deposit.principal

    for saving in portfolio.savings:
        saving.balance = saving.monthly_amount * saving.payment_count

    base_rate = market.base_rate(round_number)
    for bond in portfolio.bonds:
        bond.elapsed_months = max(round_number - bond.subscription_round, 0)
        remaining = max(bond.maturity_round - round_number, 0)
        bond.evaluation_amount = calculators.bond_early_withdrawal(
            bond.face_value,
            bond.interest_rate,
            base_rate,
            bond.elapsed_months,
            remaining,
            0,
            bond.pays_coupon,
        )

    for pension in portfolio.pensions:
        pension.total_contribution = pension.monthly_amount * pension.payment_count
        pension.evaluation_amount = calculators.pension_payout(
            pension.monthly_amount, pension.payment_count, pension.interest_rate
        )

    for loan in portfolio.loans:
        loan.elapsed_months = max(round_number - loan.execution_round, 0)


def category_totals(portfolio: PortfolioModel) -> Dict[str, int]:
    return {
        "cash": portfolio.cash,
        "deposit": sum(deposit.balance for deposit in portfolio.deposits),
        "saving": sum(saving.balance for saving in portfolio.savings),
        "bond": sum(bond.evaluation_amount for bond in portfolio.bonds),
        "stock": sum(stock.evaluation_amount for stock in portfolio.stocks),
        "fund": sum(fund.evaluation_amount for fund in portfolio.funds),
        "pension": sum(pension.evaluation_amount for pension in portfolio.pensions),
    }


def update_summary(portfolio: PortfolioModel) -> PortfolioModel:
    """Recompute total assets, liabilities, net worth and allocation."""
    totals = category_totals(portfolio)
    total_assets = sum(totals.values())
    portfolio.total_assets = total_assets
    portfolio.total_liabilities = sum(loan.remaining_balance for loan in portfolio.loans)
    portfolio.net_worth = portfolio.total_assets - portfolio.total_liabilities

    def ratio(amount: int) -> Decimal:
        if total_assets <= 0:
            return Decimal("0.0000")
        return to_ratio(Decimal(amount) / Decimal(total_assets))

    portfolio.allocation = AllocationModel(
        cash_ratio=ratio(totals["cash"]),
        deposit_ratio=ratio(totals["deposit"]),
        saving_ratio=ratio(totals["saving"]),
        bond_ratio=ratio(totals["bond"]),
        stock_ratio=ratio(totals["stock"]),
        fund_ratio=ratio(totals["fund"]),
        pension_ratio=ratio(totals["pension"]),
    )
    return portfolio


def summarize(portfolio: PortfolioModel) -> PortfolioSummaryModel:
    totals = category_totals(portfolio)
    return PortfolioSummaryModel(
        cash=portfolio.cash,
        total_assets=portfolio.total_assets,
        total_liabilities=portfolio.total_liabilities,
        net_worth=portfolio.net_worth,
        cash_like_total=totals["cash"] + totals["deposit"] + totals["saving"],
        investment_total=totals["bond"] + totals["stock"] + totals["fund"] + totals["pension"],
    )


def snapshot(portfolio: PortfolioModel) -> PortfolioSnapshotModel:
    update_summary(portfolio)
    return PortfolioSnapshotModel(
        summary=summarize(portfolio),
        allocation=portfolio.allocation,
        holdings=portfolio.model_copy(deep=True),
    )
