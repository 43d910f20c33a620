"""Apply player-submitted actions to the live portfolio.

Each action is validated on its own. An action that fails validation is
skipped with a warning and reported back; the rest of the batch continues.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from finsim.domain import calculators
from finsim.domain.game_rules import (
    BOND,
    BOND_PRODUCTS,
    DEPOSIT,
    DEPOSIT_PRODUCTS,
    FUND,
    FUND_NAMES,
    INSURANCE,
    LOAN,
    LOAN_ANNUAL_RATE,
    LOAN_NAME,
    LOAN_TERM_MONTHS,
    MONTHLY_INSURANCE_PREMIUM,
    PENSION,
    PENSION_NAME,
    PENSION_RATE,
    PREFERENTIAL_DISCOUNT,
    PREFERENTIAL_RATE_BONUS,
    SAVING,
    SAVING_PRODUCTS,
    STOCK,
    STOCK_NAMES,
    maturity_round,
    term_months,
    to_money,
)
from finsim.domain.market_data import MarketDataProvider
from finsim.models.action_models import (
    ACTION_ORDER,
    BondAction,
    DepositAction,
    FundAction,
    GameAction,
    IllegalLoanAction,
    InsuranceAction,
    LoanAction,
    PensionAction,
    SavingAction,
    StockAction,
)
from finsim.models.dc_models import (
    BondModel,
    DepositModel,
    FundHoldingModel,
    LoanModel,
    PensionModel,
    SavingModel,
    SessionModel,
    StockHoldingModel,
)
from finsim.models.response_models import ActionOutcomeModel, ResultCode


def expense_shortfall(session: SessionModel) -> int:
    """Part of the open EXPENSE event that cash cannot cover; 0 when nothing is open."""
    event = session.pending_life_event
    if event is None or event.resolved or event.event_type != "EXPENSE":
        return 0
    return max(event.amount - session.portfolio.cash, 0)


class ActionProcessor:
    """Applies one round's actions at that round's market prices."""

    def __init__(self, market: MarketDataProvider):
        self.market = market

    def process(self, session: SessionModel, actions: Sequence[GameAction]) -> List[ActionOutcomeModel]:
        """Apply actions in the fixed family order.

        Args:
            session (SessionModel): Session whose portfolio is mutated in place
            actions (Sequence[GameAction]): Player actions for the current round

        Returns:
            List[ActionOutcomeModel]: One outcome per action, applied or skipped
        """
        ordered = sorted(actions, key=lambda action: ACTION_ORDER.index(action.kind))
        outcomes = []
        for action in ordered:
            match action:
                case DepositAction(action="SUBSCRIBE"):
                    outcome = self.subscribe_deposit(session, action)
                case DepositAction(action="CANCEL"):
                    outcome = self.cancel_deposit(session, action)
                case SavingAction(action="SUBSCRIBE"):
                    outcome = self.subscribe_saving(session, action)
                case SavingAction(action="CANCEL"):
                    outcome = self.cancel_saving(session, action)
                case BondAction(action="SUBSCRIBE"):
                    outcome = self.subscribe_bond(session, action)
                case BondAction(action="CANCEL"):
                    outcome = self.cancel_bond(session, action)
                case StockAction(action="BUY"):
                    outcome = self.buy_stock(session, action)
                case StockAction(action="SELL"):
                    outcome = self.sell_stock(session, action)
                case FundAction(action="BUY"):
                    outcome = self.buy_fund(session, action)
                case FundAction(action="SELL"):
                    outcome = self.sell_fund(session, action)
                case PensionAction():
                    outcome = self.subscribe_pension(session, action)
                case LoanAction(action="TAKE"):
                    outcome = self.take_loan(session, action.amount)
                case LoanAction(action="REPAY"):
                    outcome = self.repay_loan(session)
                case IllegalLoanAction():
                    outcome = self.take_illegal_loan(session, action.amount)
                case InsuranceAction():
                    outcome = self.change_insurance(session, action)
                case _:
                    raise ValueError(f"unsupported action: {action!r}")
            outcomes.append(outcome)
        return outcomes

    # ==== Outcomes ====
    @staticmethod
    def _applied(kind: str, action: str, product_key: str, amount: int) -> ActionOutcomeModel:
        logging.info(f"{kind} {action} applied: product={product_key} amount={amount}")
        return ActionOutcomeModel(kind=kind, action=action, product_key=product_key, applied=True, amount=amount)

    @staticmethod
    def _skipped(kind: str, action: str, product_key: str, code: ResultCode, message: str) -> ActionOutcomeModel:
        logging.warning(f"{kind} {action} skipped: product={product_key} reason={code.value} {message}")
        return ActionOutcomeModel(
            kind=kind, action=action, product_key=product_key, applied=False, code=code, message=message
        )

    # ==== Deposit ====
    def subscribe_deposit(self, session: SessionModel, action: DepositAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        if action.amount <= 0:
            return self._skipped(DEPOSIT, action.action, action.product_key, ResultCode.purchase_failed, f"invalid amount {action.amount}")
        if portfolio.cash < action.amount:
            return self._skipped(
                DEPOSIT, action.action, action.product_key, ResultCode.insufficient_cash,
                f"cash={portfolio.cash} amount={action.amount}",
            )
        product = DEPOSIT_PRODUCTS[action.product_key]
        rate = product.preferential_rate if action.preferential else product.base_rate
        current_round = session.current_round
        maturity = maturity_round(session.game_mode, current_round, term_months(session.game_mode, product))
        portfolio.deposits.append(
            DepositModel(
                product_key=action.product_key,
                name=product.name,
                principal=action.amount,
                balance=action.amount,
                expected_maturity_amount=calculators.deposit_maturity(action.amount, rate, maturity - current_round),
                interest_rate=rate,
                subscription_round=current_round,
                maturity_round=maturity,
                preferential=action.preferential,
            )
        )
        portfolio.cash -= action.amount
        session.mark_product_used(DEPOSIT)
        return self._applied(DEPOSIT, action.action, action.product_key, action.amount)

    def cancel_deposit(self, session: SessionModel, action: DepositAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        held = [deposit for deposit in portfolio.deposits if deposit.product_key == action.product_key]
        if not held:
            return self._skipped(DEPOSIT, action.action, action.product_key, ResultCode.portfolio_not_found, "no deposit held")
        payout = 0
        for deposit in held:
            elapsed = session.current_round - deposit.subscription_round
            payout += calculators.deposit_early_withdrawal(deposit.principal, elapsed)
            portfolio.deposits.remove(deposit)
        portfolio.cash += payout
        return self._applied(DEPOSIT, action.action, action.product_key, payout)

    # ==== Saving ====
    def subscribe_saving(self, session: SessionModel, action: SavingAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        monthly = action.monthly_amount
        if monthly <= 0:
            return self._skipped(SAVING, action.action, action.product_key, ResultCode.purchase_failed, f"invalid amount {monthly}")
        if portfolio.cash < monthly:
            return self._skipped(
                SAVING, action.action, action.product_key, ResultCode.insufficient_cash,
                f"cash={portfolio.cash} amount={monthly}",
            )
        product = SAVING_PRODUCTS[action.product_key]
        rate = product.preferential_rate if action.preferential else product.base_rate
        current_round = session.current_round
        maturity = maturity_round(session.game_mode, current_round, term_months(session.game_mode, product))
        portfolio.savings.append(
            SavingModel(
                product_key=action.product_key,
                name=product.name,
                monthly_amount=monthly,
                balance=monthly,
                expected_maturity_amount=calculators.saving_maturity(monthly, rate, max(maturity - current_round, 1)),
                interest_rate=rate,
                subscription_round=current_round,
                maturity_round=maturity,
                payment_count=1,
                preferential=action.preferential,
            )
        )
        portfolio.cash -= monthly
        session.mark_product_used(SAVING)
        return self._applied(SAVING, action.action, action.product_key, monthly)

    def cancel_saving(self, session: SessionModel, action: SavingAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        held = [saving for saving in portfolio.savings if saving.product_key == action.product_key]
        if not held:
            return self._skipped(SAVING, action.action, action.product_key, ResultCode.portfolio_not_found, "no saving held")
        payout = 0
        for saving in held:
            payout += calculators.saving_early_withdrawal(saving.monthly_amount, saving.payment_count)
            portfolio.savings.remove(saving)
        portfolio.cash += payout
        return self._applied(SAVING, action.action, action.product_key, payout)

    # ==== Bond ====
    def subscribe_bond(self, session: SessionModel, action: BondAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        if action.amount <= 0:
            return self._skipped(BOND, action.action, action.bond_id, ResultCode.purchase_failed, f"invalid amount {action.amount}")
        if portfolio.cash < action.amount:
            return self._skipped(
                BOND, action.action, action.bond_id, ResultCode.insufficient_cash,
                f"cash={portfolio.cash} amount={action.amount}",
            )
        product = BOND_PRODUCTS[action.bond_id]
        current_round = session.current_round
        rate = self.market.base_rate(current_round) + product.spread
        if action.preferential:
            rate += PREFERENTIAL_RATE_BONUS
        portfolio.bonds.append(
            BondModel(
                bond_id=action.bond_id,
                name=product.name,
                face_value=action.amount,
                evaluation_amount=action.amount,
                interest_rate=rate,
                subscription_round=current_round,
                maturity_round=maturity_round(session.game_mode, current_round, term_months(session.game_mode, product)),
                pays_coupon=product.pays_coupon,
                preferential=action.preferential,
            )
        )
        portfolio.cash -= action.amount
        session.mark_product_used(BOND)
        return self._applied(BOND, action.action, action.bond_id, action.amount)

    def cancel_bond(self, session: SessionModel, action: BondAction) -> ActionOutcomeModel:
        """Sell bonds of one kind by face amount, oldest lot first.

        A lot larger than the remaining amount is sold pro rata and keeps the rest.
        """
        portfolio = session.portfolio
        lots = sorted(
            (bond for bond in portfolio.bonds if bond.bond_id == action.bond_id),
            key=lambda bond: bond.subscription_round,
        )
        if not lots:
            return self._skipped(BOND, action.action, action.bond_id, ResultCode.portfolio_not_found, "no bond held")
        if action.amount <= 0:
            return self._skipped(BOND, action.action, action.bond_id, ResultCode.purchase_failed, f"invalid amount {action.amount}")

        current_round = session.current_round
        base_rate = self.market.base_rate(current_round)
        remaining = action.amount
        payout = 0
        for lot in lots:
            if remaining <= 0:
                break
            value = calculators.bond_early_withdrawal(
                lot.face_value,
                lot.interest_rate,
                base_rate,
                current_round - lot.subscription_round,
                max(lot.maturity_round - current_round, 0),
                lot.received_interest,
                lot.pays_coupon,
            )
            if lot.face_value <= remaining:
                payout += value
                remaining -= lot.face_value
                portfolio.bonds.remove(lot)
                continue
            fraction = Decimal(remaining) / Decimal(lot.face_value)
            payout += to_money(Decimal(value) * fraction)
            kept_interest = to_money(Decimal(lot.received_interest) * (1 - fraction))
            lot.face_value -= remaining
            lot.received_interest = kept_interest
            remaining = 0
        if remaining > 0:
            logging.warning(f"Bond cancel exceeded holdings: bond={action.bond_id} unfilled={remaining}")
        portfolio.cash += payout
        return self._applied(BOND, action.action, action.bond_id, payout)

    # ==== Stock ====
    def buy_stock(self, session: SessionModel, action: StockAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        if action.stock_id not in STOCK_NAMES:
            return self._skipped(STOCK, action.action, action.stock_id, ResultCode.purchase_failed, "unknown stock")
        if action.quantity <= 0:
            return self._skipped(STOCK, action.action, action.stock_id, ResultCode.purchase_failed, f"invalid quantity {action.quantity}")
        market_price = self.market.stock_price(action.stock_id, session.current_round)
        price = market_price
        if action.preferential:
            price = calculators.preferential_price(market_price, PREFERENTIAL_DISCOUNT)
        cost = price * action.quantity
        if portfolio.cash < cost:
            return self._skipped(
                STOCK, action.action, action.stock_id, ResultCode.insufficient_cash, f"cash={portfolio.cash} cost={cost}"
            )
        add_stock(portfolio.stocks, action.stock_id, price, action.quantity, market_price)
        portfolio.cash -= cost
        session.mark_product_used(STOCK)
        return self._applied(STOCK, action.action, action.stock_id, cost)

    def sell_stock(self, session: SessionModel, action: StockAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        holding = next((stock for stock in portfolio.stocks if stock.stock_id == action.stock_id), None)
        if holding is None:
            return self._skipped(STOCK, action.action, action.stock_id, ResultCode.portfolio_not_found, "stock not held")
        if action.quantity <= 0 or action.quantity > holding.quantity:
            return self._skipped(
                STOCK, action.action, action.stock_id, ResultCode.purchase_failed,
                f"invalid quantity {action.quantity} held={holding.quantity}",
            )
        price = self.market.stock_price(action.stock_id, session.current_round)
        proceeds = price * action.quantity
        holding.quantity -= action.quantity
        if holding.quantity == 0:
            portfolio.stocks.remove(holding)
        else:
            holding.current_price = price
            holding.evaluation_amount = price * holding.quantity
            holding.profit_loss = calculators.profit_loss(holding.avg_price, price, holding.quantity)
            holding.return_rate = calculators.return_rate(holding.avg_price, price)
        portfolio.cash += proceeds
        return self._applied(STOCK, action.action, action.stock_id, proceeds)

    # ==== Fund ====
    def buy_fund(self, session: SessionModel, action: FundAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        if action.fund_id not in FUND_NAMES:
            return self._skipped(FUND, action.action, action.fund_id, ResultCode.purchase_failed, "unknown fund")
        if action.amount <= 0:
            return self._skipped(FUND, action.action, action.fund_id, ResultCode.purchase_failed, f"invalid amount {action.amount}")
        market_nav = self.market.fund_nav(action.fund_id, session.current_round)
        nav = market_nav
        if action.preferential:
            nav = calculators.preferential_price(market_nav, PREFERENTIAL_DISCOUNT)
        shares = calculators.fund_shares(action.amount, nav)
        cost = shares * nav
        if shares <= 0:
            return self._skipped(FUND, action.action, action.fund_id, ResultCode.purchase_failed, f"amount below one share: nav={nav}")
        if portfolio.cash < cost:
            return self._skipped(
                FUND, action.action, action.fund_id, ResultCode.insufficient_cash, f"cash={portfolio.cash} cost={cost}"
            )
        add_fund(portfolio.funds, action.fund_id, nav, shares, market_nav)
        portfolio.cash -= cost
        session.mark_product_used(FUND)
        return self._applied(FUND, action.action, action.fund_id, cost)

    def sell_fund(self, session: SessionModel, action: FundAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        holding = next((fund for fund in portfolio.funds if fund.fund_id == action.fund_id), None)
        if holding is None:
            return self._skipped(FUND, action.action, action.fund_id, ResultCode.portfolio_not_found, "fund not held")
        if action.amount <= 0:
            return self._skipped(FUND, action.action, action.fund_id, ResultCode.purchase_failed, f"invalid amount {action.amount}")
        nav = self.market.fund_nav(action.fund_id, session.current_round)
        shares = calculators.fund_shares(action.amount, nav)
        if shares <= 0:
            return self._skipped(FUND, action.action, action.fund_id, ResultCode.purchase_failed, f"amount below one share: nav={nav}")
        if shares > holding.shares:
            return self._skipped(
                FUND, action.action, action.fund_id, ResultCode.purchase_failed,
                f"invalid shares {shares} held={holding.shares}",
            )
        proceeds = shares * nav
        holding.shares -= shares
        if holding.shares == 0:
            portfolio.funds.remove(holding)
        else:
            holding.current_nav = nav
            holding.evaluation_amount = nav * holding.shares
            holding.profit_loss = calculators.profit_loss(holding.avg_nav, nav, holding.shares)
            holding.return_rate = calculators.return_rate(holding.avg_nav, nav)
        portfolio.cash += proceeds
        return self._applied(FUND, action.action, action.fund_id, proceeds)

    # ==== Pension ====
    def subscribe_pension(self, session: SessionModel, action: PensionAction) -> ActionOutcomeModel:
        portfolio = session.portfolio
        monthly = action.monthly_amount
        if monthly <= 0:
            return self._skipped(PENSION, action.action, PENSION, ResultCode.purchase_failed, f"invalid amount {monthly}")
        if portfolio.cash < monthly:
            return self._skipped(
                PENSION, action.action, PENSION, ResultCode.insufficient_cash, f"cash={portfolio.cash} amount={monthly}"
            )
        rate = PENSION_RATE + PREFERENTIAL_RATE_BONUS if action.preferential else PENSION_RATE
        portfolio.pensions.append(
            PensionModel(
                name=PENSION_NAME,
                monthly_amount=monthly,
                total_contribution=monthly,
                evaluation_amount=calculators.pension_payout(monthly, 1, rate),
                interest_rate=rate,
                subscription_round=session.current_round,
                payment_count=1,
                preferential=action.preferential,
            )
        )
        portfolio.cash -= monthly
        session.mark_product_used(PENSION)
        return self._applied(PENSION, action.action, PENSION, monthly)

    # ==== Loan ====
    def take_loan(self, session: SessionModel, amount: int) -> ActionOutcomeModel:
        """Regular loan: once per game, interest fixed at origination."""
        if session.loan_used:
            return self._skipped(LOAN, "TAKE", LOAN, ResultCode.loan_failed, "loan already used")
        if amount <= 0:
            return self._skipped(LOAN, "TAKE", LOAN, ResultCode.loan_failed, f"invalid amount {amount}")
        current_round = session.current_round
        session.portfolio.loans.append(
            LoanModel(
                name=LOAN_NAME,
                principal=amount,
                remaining_balance=amount,
                interest_rate=LOAN_ANNUAL_RATE,
                execution_round=current_round,
                maturity_round=maturity_round(session.game_mode, current_round, LOAN_TERM_MONTHS),
                monthly_interest=calculators.loan_monthly_interest(amount, LOAN_ANNUAL_RATE),
            )
        )
        session.loan_used = True
        session.portfolio.cash += amount
        return self._applied(LOAN, "TAKE", LOAN, amount)

    def repay_loan(self, session: SessionModel) -> ActionOutcomeModel:
        portfolio = session.portfolio
        loan = session.loan_info
        if loan is None:
            return self._skipped(LOAN, "REPAY", LOAN, ResultCode.loan_failed, "no active loan")
        total_interest = calculators.loan_total_interest(loan.monthly_interest, LOAN_TERM_MONTHS)
        repayment = calculators.loan_early_repayment(loan.remaining_balance, total_interest, loan.total_interest_paid)
        if portfolio.cash < repayment:
            return self._skipped(
                LOAN, "REPAY", LOAN, ResultCode.insufficient_cash, f"cash={portfolio.cash} repayment={repayment}"
            )
        portfolio.cash -= repayment
        portfolio.loans.remove(loan)
        return self._applied(LOAN, "REPAY", LOAN, repayment)

    def take_illegal_loan(self, session: SessionModel, amount: int) -> ActionOutcomeModel:
        """Private lending: once per game, never more than the open expense shortfall."""
        if session.illegal_loan_used:
            return self._skipped("ILLEGAL_LOAN", "TAKE", "ILLEGAL_LOAN", ResultCode.loan_failed, "illegal loan already used")
        if amount <= 0:
            return self._skipped("ILLEGAL_LOAN", "TAKE", "ILLEGAL_LOAN", ResultCode.loan_failed, f"invalid amount {amount}")
        shortfall = expense_shortfall(session)
        if shortfall <= 0:
            return self._skipped("ILLEGAL_LOAN", "TAKE", "ILLEGAL_LOAN", ResultCode.loan_failed, "no expense to cover")
        amount = min(amount, shortfall)
        session.portfolio.cash += amount
        session.illegal_loan_used = True
        logging.warning(f"Illegal loan used: uid={session.uid} amount={amount}")
        return self._applied("ILLEGAL_LOAN", "TAKE", "ILLEGAL_LOAN", amount)

    # ==== Insurance ====
    def change_insurance(self, session: SessionModel, action: InsuranceAction) -> ActionOutcomeModel:
        if action.action == "SUBSCRIBE":
            if session.insurance_subscribed:
                return self._skipped(INSURANCE, action.action, INSURANCE, ResultCode.purchase_failed, "already subscribed")
            session.insurance_subscribed = True
            session.monthly_insurance_premium = MONTHLY_INSURANCE_PREMIUM
            session.mark_product_used(INSURANCE)
            return self._applied(INSURANCE, action.action, INSURANCE, MONTHLY_INSURANCE_PREMIUM)
        if not session.insurance_subscribed:
            return self._skipped(INSURANCE, action.action, INSURANCE, ResultCode.portfolio_not_found, "not subscribed")
        session.insurance_subscribed = False
        session.monthly_insurance_premium = 0
        return self._applied(INSURANCE, action.action, INSURANCE, 0)


def add_stock(
    stocks: List[StockHoldingModel], stock_id: str, price: int, quantity: int, market_price: Optional[int] = None
) -> StockHoldingModel:
    """Merge a purchase into the holding with weighted-average cost.

    Args:
        stocks (List[StockHoldingModel]): Holdings, mutated in place
        stock_id (str): e.g. "STOCK_01"
        price (int): Price paid per share, discounted on a preferential buy
        quantity (int): Shares bought
        market_price (Optional[int]): Round price the holding is valued at; a new holding defaults to `price`

    Returns:
        StockHoldingModel: The new or merged holding
    """
    holding = next((stock for stock in stocks if stock.stock_id == stock_id), None)
    if holding is None:
        holding = StockHoldingModel(
            stock_id=stock_id,
            name=STOCK_NAMES[stock_id],
            quantity=quantity,
            avg_price=price,
            current_price=price,
        )
        stocks.append(holding)
    else:
        holding.avg_price = calculators.weighted_average_price(holding.avg_price, holding.quantity, price, quantity)
        holding.quantity += quantity
    if market_price is not None:
        holding.current_price = market_price
    holding.evaluation_amount = holding.current_price * holding.quantity
    holding.profit_loss = calculators.profit_loss(holding.avg_price, holding.current_price, holding.quantity)
    holding.return_rate = calculators.return_rate(holding.avg_price, holding.current_price)
    return holding


def add_fund(
    funds: List[FundHoldingModel], fund_id: str, nav: int, shares: int, market_nav: Optional[int] = None
) -> FundHoldingModel:
    holding = next((fund for fund in funds if fund.fund_id == fund_id), None)
    if holding is None:
        holding = FundHoldingModel(
            fund_id=fund_id,
            name=FUND_NAMES[fund_id],
            shares=shares,
            avg_nav=nav,
            current_nav=nav,
        )
        funds.append(holding)
    else:
        holding.avg_nav = calculators.weighted_average_price(holding.avg_nav, holding.shares, nav, shares)
        holding.shares += shares
    if market_nav is not None:
        holding.current_nav = market_nav
    holding.evaluation_amount = holding.current_nav * holding.shares
    holding.profit_loss = calculators.profit_loss(holding.avg_nav, holding.current_nav, holding.shares)
    holding.return_rate = calculators.return_rate(holding.avg_nav, holding.current_nav)
    return holding
