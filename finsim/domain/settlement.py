"""Start-of-round, end-of-round and final settlement.

Start-of-round debits are attempted one by one. A debit the portfolio cannot
afford is skipped and reported as an auto-payment failure; the rest still
apply and the round always proceeds.
"""

import logging
from typing import List, Tuple

from finsim.domain import calculators
from finsim.domain.game_rules import COUPON_PERIOD_MONTHS, INSURANCE_NAME, LOAN_TERM_MONTHS
from finsim.domain.market_data import MarketDataProvider
from finsim.domain.portfolio_rules import refresh_valuations, update_summary
from finsim.models.dc_models import (
    AutoPaymentFailureModel,
    PassiveIncomeModel,
    PortfolioModel,
    SessionModel,
    SettlementModel,
)
from finsim.models.response_models import ResultCode

AVAILABLE_ACTIONS = ["CANCEL_PRODUCT", "CANCEL_OTHER"]


def _debit(
    portfolio: PortfolioModel,
    failures: List[AutoPaymentFailureModel],
    *,
    payment_type: str,
    product_key: str,
    name: str,
    amount: int,
) -> bool:
    """Debit one scheduled payment, or record why it could not be paid."""
    if amount <= 0:
        return True
    if portfolio.cash < amount:
        logging.warning(
            f"Auto payment failed: type={payment_type} product={product_key} amount={amount} cash={portfolio.cash}"
        )
        failures.append(
            AutoPaymentFailureModel(
                type=payment_type,
                product_key=product_key,
                name=name,
                amount=amount,
                reason=ResultCode.insufficient_cash.value,
                available_actions=list(AVAILABLE_ACTIONS),
            )
        )
        return False
    portfolio.cash -= amount
    return True


def run_start_settlement(
    session: SessionModel, market: MarketDataProvider
) -> Tuple[SettlementModel, List[AutoPaymentFailureModel]]:
    """Settle the opening of `session.current_round`.

    Order: salary, living expense, loan interest, pension contributions,
    insurance premium, saving contributions, then market refresh, dividends,
    coupons and loan maturity. Round 1 only refreshes the market.

    Args:
        session (SessionModel): Session at the round being opened
        market (MarketDataProvider): Market view of the session

    Returns:
        Tuple[SettlementModel, List[AutoPaymentFailureModel]]: Breakdown and skipped debits
    """
    round_number = session.current_round
    portfolio = session.portfolio
    settlement = SettlementModel(round_number=round_number)
    failures: List[AutoPaymentFailureModel] = []

    if round_number > 1:
        portfolio.cash += session.monthly_salary
        settlement.base_income.salary = session.monthly_salary
        settlement.base_income.total = session.monthly_salary

        _pay_living_expense(session, settlement, failures)
        _pay_loan_interest(session, settlement, failures)

        for pension in portfolio.pensions:
            if pension.subscription_round >= round_number:
                continue
            if _debit(
                portfolio, failures,
                payment_type="PENSION", product_key=pension.product_key,
                name=pension.name, amount=pension.monthly_amount,
            ):
                pension.payment_count += 1
                settlement.base_expenses.other_expenses += pension.monthly_amount

        if session.insurance_subscribed and _debit(
            portfolio, failures,
            payment_type="INSURANCE", product_key="INSURANCE",
            name=INSURANCE_NAME, amount=session.monthly_insurance_premium,
        ):
            settlement.base_expenses.other_expenses += session.monthly_insurance_premium

        for saving in portfolio.savings:
            if not saving.subscription_round < round_number < saving.maturity_round:
                continue
            if _debit(
                portfolio, failures,
                payment_type="SAVING", product_key=saving.product_key,
                name=saving.name, amount=saving.monthly_amount,
            ):
                saving.payment_count += 1
                settlement.base_expenses.other_expenses += saving.monthly_amount

    settlement.base_expenses.total = settlement.base_expenses.living + settlement.base_expenses.other_expenses

    refresh_valuations(portfolio, market, round_number)
    _pay_dividends(portfolio, market, round_number, settlement.passive_income)
    _pay_coupons(portfolio, round_number, settlement.passive_income)
    _repay_matured_loan(session, failures)
    update_summary(portfolio)

    income = settlement.passive_income
    income.total = (
        income.deposit_interest + income.saving_interest + income.bond_interest + income.stock_dividend + income.fund_dividend
    )
    logging.info(
        f"Start settlement: uid={session.uid} round={round_number} cash={portfolio.cash} failures={len(failures)}"
    )
    return settlement, failures


def _pay_living_expense(
    session: SessionModel, settlement: SettlementModel, failures: List[AutoPaymentFailureModel]
) -> None:
    """Living expense is mandatory: whatever cash exists is taken, the rest is reported."""
    portfolio = session.portfolio
    living = session.monthly_living
    paid = min(living, portfolio.cash)
    portfolio.cash -= paid
    settlement.base_expenses.living = paid
    if paid < living:
        logging.warning(f"Living expense short: uid={session.uid} shortfall={living - paid}")
        failures.append(
            AutoPaymentFailureModel(
                type="LIVING_EXPENSE",
                product_key="LIVING",
                name="Living expense",
                amount=living - paid,
                reason=ResultCode.insufficient_cash.value,
                available_actions=list(AVAILABLE_ACTIONS),
            )
        )


def _pay_loan_interest(
    session: SessionModel, settlement: SettlementModel, failures: List[AutoPaymentFailureModel]
) -> None:
    loan = session.loan_info
    if loan is None or loan.execution_round >= session.current_round:
        return
    total_interest = calculators.loan_total_interest(loan.monthly_interest, LOAN_TERM_MONTHS)
    if loan.total_interest_paid >= total_interest:
        return
    if _debit(
        session.portfolio, failures,
        payment_type="LOAN_INTEREST", product_key=loan.product_key,
        name=loan.name, amount=loan.monthly_interest,
    ):
        loan.total_interest_paid += loan.monthly_interest
        settlement.base_expenses.other_expenses += loan.monthly_interest


def _repay_matured_loan(session: SessionModel, failures: List[AutoPaymentFailureModel]) -> None:
    loan = session.loan_info
    if loan is None or loan.maturity_round > session.current_round:
        return
    repayment = calculators.loan_maturity_repayment(loan.remaining_balance)
    if _debit(
        session.portfolio, failures,
        payment_type="LOAN_REPAYMENT", product_key=loan.product_key,
        name=loan.name, amount=repayment,
    ):
        session.portfolio.loans.remove(loan)
        logging.info(f"Loan repaid at maturity: uid={session.uid} amount={repayment}")


def _pay_dividends(
    portfolio: PortfolioModel, market: MarketDataProvider, round_number: int, income: PassiveIncomeModel
) -> None:
    """Dividends go to cash and never touch cost basis."""
    for stock in portfolio.stocks:
        rate = market.stock_dividend_rate(stock.stock_id, round_number)
        amount = calculators.dividend(stock.current_price, stock.quantity, rate)
        portfolio.cash += amount
        income.stock_dividend += amount
    for fund in portfolio.funds:
        rate = market.fund_dividend_rate(fund.fund_id, round_number)
        amount = calculators.dividend(fund.current_nav, fund.shares, rate)
        portfolio.cash += amount
        income.fund_dividend += amount


def _pay_coupons(portfolio: PortfolioModel, round_number: int, income: PassiveIncomeModel) -> None:
    for bond in portfolio.bonds:
        elapsed = round_number - bond.subscription_round
        if not bond.pays_coupon or elapsed <= 0 or elapsed % COUPON_PERIOD_MONTHS != 0:
            continue
        if round_number > bond.maturity_round:
            continue
        coupon = calculators.bond_coupon(bond.face_value, bond.interest_rate)
        bond.received_interest += coupon
        portfolio.cash += coupon
        income.bond_interest += coupon


def run_end_settlement(session: SessionModel) -> PassiveIncomeModel:
    """Pay out every deposit, saving and bond maturing in the round that ends.

    Returns:
        PassiveIncomeModel: Interest earned on the matured products
    """
    round_number = session.current_round
    portfolio = session.portfolio
    income = PassiveIncomeModel()

    for deposit in [d for d in portfolio.deposits if d.maturity_round <= round_number]:
        months = deposit.maturity_round - deposit.subscription_round
        payout = calculators.deposit_maturity(deposit.principal, deposit.interest_rate, months)
        portfolio.cash += payout
        income.deposit_interest += payout - deposit.principal
        portfolio.deposits.remove(deposit)
        logging.info(f"Deposit matured: uid={session.uid} product={deposit.product_key} payout={payout}")

    for saving in [s for s in portfolio.savings if s.maturity_round <= round_number]:
        payout = calculators.saving_maturity(saving.monthly_amount, saving.interest_rate, saving.payment_count)
        portfolio.cash += payout
        income.saving_interest += payout - saving.monthly_amount * saving.payment_count
        portfolio.savings.remove(saving)
        logging.info(f"Saving matured: uid={session.uid} product={saving.product_key} payout={payout}")

    for bond in [b for b in portfolio.bonds if b.maturity_round <= round_number]:
        months = bond.maturity_round - bond.subscription_round
        payout = calculators.bond_maturity(bond.face_value, bond.interest_rate, months, bond.pays_coupon)
        portfolio.cash += payout
        income.bond_interest += payout - bond.face_value
        portfolio.bonds.remove(bond)
        logging.info(f"Bond matured: uid={session.uid} bond={bond.bond_id} payout={payout}")

    income.total = income.deposit_interest + income.saving_interest + income.bond_interest
    update_summary(portfolio)
    return income


def run_final_settlement(session: SessionModel, market: MarketDataProvider) -> int:
    """Force-liquidate every holding into cash at game completion.

    Returns:
        int: Terminal net worth
    """
    round_number = session.current_round
    portfolio = session.portfolio
    refresh_valuations(portfolio, market, round_number)

    for deposit in portfolio.deposits:
        if deposit.maturity_round <= round_number:
            months = deposit.maturity_round - deposit.subscription_round
            portfolio.cash += calculators.deposit_maturity(deposit.principal, deposit.interest_rate, months)
        else:
            portfolio.cash += calculators.deposit_early_withdrawal(deposit.principal, deposit.elapsed_months)
    for saving in portfolio.savings:
        if saving.maturity_round <= round_number:
            portfolio.cash += calculators.saving_maturity(saving.monthly_amount, saving.interest_rate, saving.payment_count)
        else:
            portfolio.cash += calculators.saving_early_withdrawal(saving.monthly_amount, saving.payment_count)
    for bond in portfolio.bonds:
        portfolio.cash += calculators.bond_forced_settlement(
            bond.face_value, bond.interest_rate, bond.elapsed_months, bond.pays_coupon
        )
    portfolio.cash += sum(stock.evaluation_amount for stock in portfolio.stocks)
    portfolio.cash += sum(fund.evaluation_amount for fund in portfolio.funds)
    portfolio.cash += sum(pension.evaluation_amount for pension in portfolio.pensions)

    portfolio.deposits.clear()
    portfolio.savings.clear()
    portfolio.bonds.clear()
    portfolio.stocks.clear()
    portfolio.funds.clear()
    portfolio.pensions.clear()

    for loan in list(portfolio.loans):
        paid = min(portfolio.cash, calculators.loan_maturity_repayment(loan.remaining_balance))
        portfolio.cash -= paid
        loan.remaining_balance -= paid
        if loan.remaining_balance == 0:
            portfolio.loans.remove(loan)
        else:
            logging.warning(f"Loan not fully repaid at completion: uid={session.uid} remaining={loan.remaining_balance}")

    update_summary(portfolio)
    logging.info(f"Final settlement: uid={session.uid} net_worth={portfolio.net_worth}")
    return portfolio.net_worth
