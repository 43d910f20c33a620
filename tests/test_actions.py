from decimal import Decimal

from finsim.domain.actions import ActionProcessor, add_stock
from finsim.domain.game_rules import GameMode
from finsim.domain.market_data import MarketDataProvider
from finsim.models.action_models import (
    BondAction,
    DepositAction,
    FundAction,
    IllegalLoanAction,
    InsuranceAction,
    LoanAction,
    PensionAction,
    SavingAction,
    StockAction,
)
from finsim.models.dc_models import BondModel, LifeEventModel
from finsim.models.response_models import ResultCode
from tests.helpers import make_session


def tutorial_processor():
    return ActionProcessor(MarketDataProvider(GameMode.tutorial))


def test_average_price_after_two_buys():
    stocks = []
    add_stock(stocks, "STOCK_01", 50_000, 10)
    holding = add_stock(stocks, "STOCK_01", 60_000, 10)
    assert holding.quantity == 20
    assert holding.avg_price == 55_000
    assert len(stocks) == 1


def test_deposit_subscription_sets_maturity():
    session = make_session()
    outcome = tutorial_processor().subscribe_deposit(session, DepositAction(amount=1_000_000))
    assert outcome.applied
    deposit = session.portfolio.deposits[0]
    assert deposit.maturity_round == 4
    assert deposit.expected_maturity_amount == 1_006_250
    assert session.portfolio.cash == 2_000_000
    assert "DEPOSIT" in session.products_used


def test_actions_never_overdraw_cash():
    session = make_session(cash=1_000_000)
    outcomes = tutorial_processor().process(
        session,
        [
            StockAction(action="BUY", stock_id="STOCK_01", quantity=1),
            DepositAction(amount=1_000_000),
        ],
    )
    # deposits are evaluated before stocks
    assert [outcome.kind for outcome in outcomes] == ["DEPOSIT", "STOCK"]
    assert outcomes[0].applied
    assert not outcomes[1].applied
    assert outcomes[1].code == ResultCode.insufficient_cash
    assert session.portfolio.cash == 0


def test_preferential_stock_price_discount():
    session = make_session()
    outcome = tutorial_processor().buy_stock(
        session, StockAction(action="BUY", stock_id="STOCK_01", quantity=10, preferential=True)
    )
    # round 1 price 52,800 x 0.95
    assert outcome.amount == 501_600
    assert session.portfolio.stocks[0].avg_price == 50_160


def test_sell_more_than_held_is_skipped():
    session = make_session()
    processor = tutorial_processor()
    processor.buy_stock(session, StockAction(action="BUY", stock_id="STOCK_02", quantity=5))
    outcome = processor.sell_stock(session, StockAction(action="SELL", stock_id="STOCK_02", quantity=6))
    assert not outcome.applied
    assert session.portfolio.stocks[0].quantity == 5


def test_fund_buy_and_partial_sell():
    session = make_session()
    processor = tutorial_processor()
    bought = processor.buy_fund(session, FundAction(action="BUY", fund_id="FUND_01", amount=109_710))
    assert bought.applied
    assert session.portfolio.funds[0].shares == 10
    assert bought.amount == 109_710
    sold = processor.sell_fund(session, FundAction(action="SELL", fund_id="FUND_01", amount=43_884))
    assert sold.amount == 4 * 10_971
    assert session.portfolio.funds[0].shares == 6


def test_saving_cancel_returns_penalty_value():
    session = make_session()
    processor = tutorial_processor()
    processor.subscribe_saving(session, SavingAction(product_key="SAVING_A", monthly_amount=100_000))
    outcome = processor.cancel_saving(session, SavingAction(action="CANCEL", product_key="SAVING_A"))
    assert outcome.amount == 100_000
    assert session.portfolio.cash == 3_000_000
    assert session.portfolio.savings == []


def test_bond_subscription_rate_is_base_plus_spread():
    session = make_session()
    tutorial_processor().subscribe_bond(session, BondAction(bond_id="BOND_NATIONAL", amount=1_000_000))
    bond = session.portfolio.bonds[0]
    assert bond.interest_rate == Decimal("0.0175") + Decimal("0.0125")
    assert bond.maturity_round == 4
    assert not bond.pays_coupon


def test_bond_cancel_sells_oldest_lot_first():
    session = make_session(current_round=2, cash=0)
    for subscription_round in (2, 1):
        session.portfolio.bonds.append(
            BondModel(
                bond_id="BOND_NATIONAL",
                name="National Bond",
                face_value=1_000_000,
                evaluation_amount=1_000_000,
                interest_rate=Decimal("0.03"),
                subscription_round=subscription_round,
                maturity_round=subscription_round + 3,
            )
        )
    outcome = tutorial_processor().cancel_bond(
        session, BondAction(action="CANCEL", bond_id="BOND_NATIONAL", amount=1_500_000)
    )
    assert outcome.applied
    assert len(session.portfolio.bonds) == 1
    kept = session.portfolio.bonds[0]
    assert kept.subscription_round == 2
    assert kept.face_value == 500_000
    assert session.portfolio.cash > 1_500_000


def test_cancel_without_holding_reports_not_found():
    session = make_session()
    outcome = tutorial_processor().cancel_deposit(session, DepositAction(action="CANCEL"))
    assert not outcome.applied
    assert outcome.code == ResultCode.portfolio_not_found


def test_loan_only_once_per_game():
    session = make_session()
    processor = tutorial_processor()
    first = processor.take_loan(session, 1_200_000)
    assert first.applied
    loan = session.loan_info
    assert loan.monthly_interest == 5_000
    assert loan.maturity_round == 4
    processor.repay_loan(session)
    second = processor.take_loan(session, 500_000)
    assert not second.applied
    assert second.code == ResultCode.loan_failed


def test_early_loan_repayment_includes_unpaid_interest():
    session = make_session()
    processor = tutorial_processor()
    processor.process(session, [LoanAction(amount=1_200_000)])
    outcome = processor.process(session, [LoanAction(action="REPAY")])[0]
    assert outcome.amount == 1_215_000
    assert session.portfolio.loans == []
    assert session.portfolio.cash == 3_000_000 - 15_000


def test_pension_and_insurance_subscription():
    session = make_session()
    outcomes = tutorial_processor().process(
        session, [InsuranceAction(), PensionAction(monthly_amount=100_000)]
    )
    assert all(outcome.applied for outcome in outcomes)
    assert session.insurance_subscribed
    assert session.monthly_insurance_premium == 5_000
    assert session.portfolio.pensions[0].payment_count == 1
    assert {"PENSION", "INSURANCE"} <= set(session.products_used)


def open_expense(amount):
    return LifeEventModel(
        event_key="EVENT_TUTORIAL_R2_01", event_type="EXPENSE", amount=amount, insurable_event=False, round_number=2
    )


def test_illegal_loan_covers_only_the_expense_shortfall():
    session = make_session(cash=100_000, pending_life_event=open_expense(300_000))
    outcome = tutorial_processor().take_illegal_loan(session, 10**12)
    assert outcome.applied
    assert outcome.amount == 200_000
    assert session.illegal_loan_used
    assert session.portfolio.cash == 300_000
    assert session.portfolio.loans == []


def test_illegal_loan_is_once_per_game():
    session = make_session(cash=0, pending_life_event=open_expense(300_000))
    processor = tutorial_processor()
    outcomes = processor.process(session, [IllegalLoanAction(amount=100_000), IllegalLoanAction(amount=100_000)])
    assert outcomes[0].applied
    assert not outcomes[1].applied
    assert outcomes[1].code == ResultCode.loan_failed
    assert session.portfolio.cash == 100_000


def test_illegal_loan_without_open_expense_is_rejected():
    session = make_session(cash=0)
    outcome = tutorial_processor().take_illegal_loan(session, 300_000)
    assert not outcome.applied
    assert outcome.code == ResultCode.loan_failed
    assert not session.illegal_loan_used
    assert session.portfolio.cash == 0


def test_fund_sell_above_holding_is_skipped():
    session = make_session()
    processor = tutorial_processor()
    processor.buy_fund(session, FundAction(action="BUY", fund_id="FUND_01", amount=109_710))
    outcome = processor.sell_fund(session, FundAction(action="SELL", fund_id="FUND_01", amount=10_971 * 50))
    assert not outcome.applied
    assert outcome.code == ResultCode.purchase_failed
    assert session.portfolio.funds[0].shares == 10
    assert session.portfolio.cash == 3_000_000 - 109_710


def test_preferential_buy_values_holding_at_market_price():
    session = make_session()
    processor = tutorial_processor()
    processor.buy_stock(session, StockAction(action="BUY", stock_id="STOCK_01", quantity=10, preferential=True))
    stock = session.portfolio.stocks[0]
    assert stock.avg_price == 50_160
    assert stock.current_price == 52_800
    assert stock.evaluation_amount == 528_000
    assert stock.profit_loss == (52_800 - 50_160) * 10

    processor.buy_fund(session, FundAction(action="BUY", fund_id="FUND_01", amount=104_225, preferential=True))
    fund = session.portfolio.funds[0]
    assert fund.avg_nav == 10_422
    assert fund.current_nav == 10_971
    assert fund.evaluation_amount == 10_971 * fund.shares
