"""Life events rolled at round start and the ways a player can settle them."""

import logging
import math
import random
from typing import Optional

from finsim.domain.actions import ActionProcessor, expense_shortfall
from finsim.domain.game_rules import GameMode
from finsim.models.action_models import FundAction, StockAction
from finsim.models.dc_models import LifeEventModel, SessionModel
from finsim.models.response_models import GameResult, ResultCode

EVENT_PROBABILITY = 0.5
INCOME = "INCOME"
EXPENSE = "EXPENSE"


def roll_life_event(mode: GameMode, round_number: int, rng: random.Random) -> Optional[LifeEventModel]:
    """Roll this round's life event.

    Args:
        mode (GameMode): Game mode, part of the event key
        round_number (int): Round being opened; round 1 never has an event
        rng (random.Random): Injected generator so scenarios can be replayed

    Returns:
        Optional[LifeEventModel]: The event, or None when nothing happens
    """
    if round_number <= 1 or rng.random() >= EVENT_PROBABILITY:
        return None
    event_number = rng.randint(1, 3)
    is_expense = rng.random() < 0.5
    if is_expense:
        amount = rng.randint(1, 5) * 100_000
    else:
        amount = rng.randint(1, 3) * 50_000
    insurable = is_expense and rng.random() < 0.5
    event = LifeEventModel(
        event_key=f"EVENT_{GameMode(mode).value}_R{round_number}_{event_number:02d}",
        event_type=EXPENSE if is_expense else INCOME,
        amount=amount,
        insurable_event=insurable,
        round_number=round_number,
    )
    logging.info(
        f"Life event occurred: round={round_number} key={event.event_key} type={event.event_type} "
        f"amount={amount} insurable={insurable}"
    )
    return event


def apply_income_event(session: SessionModel, event: LifeEventModel) -> None:
    if event.event_type != INCOME or event.resolved:
        return
    session.portfolio.cash += event.amount
    event.resolved = True


def liquid_value(session: SessionModel) -> int:
    portfolio = session.portfolio
    return sum(stock.evaluation_amount for stock in portfolio.stocks) + sum(
        fund.evaluation_amount for fund in portfolio.funds
    )


class LifeEventResolver:
    """Settles the pending EXPENSE event of a session."""

    def __init__(self, processor: ActionProcessor):
        self.processor = processor

    def resolve(self, session: SessionModel, resolution_type: str, loan_amount: Optional[int] = None) -> GameResult:
        event = session.pending_life_event
        if event is None or event.resolved or event.event_type != EXPENSE:
            return GameResult.failure(ResultCode.no_pending_event)
        portfolio = session.portfolio
        amount = event.amount

        match resolution_type:
            case "CASH":
                if portfolio.cash < amount:
                    return GameResult.failure(
                        ResultCode.insufficient_cash, f"cash={portfolio.cash} required={amount}"
                    )
            case "SELL_ASSETS" | "FORCE_SELL":
                if liquid_value(session) < amount:
                    return GameResult.failure(ResultCode.insufficient_cash, "not enough assets to sell")
                self.raise_cash(session, portfolio.cash + amount)
            case "MIXED":
                if portfolio.cash + liquid_value(session) < amount:
                    return GameResult.failure(ResultCode.insufficient_cash, "not enough cash and assets")
                self.raise_cash(session, amount)
            case "INSURANCE":
                if not (session.insurance_subscribed and event.insurable_event):
                    return GameResult.failure(ResultCode.invalid_resolution_type, "insurance does not cover this event")
                amount = amount // 2
                if portfolio.cash < amount:
                    return GameResult.failure(
                        ResultCode.insufficient_cash, f"cash={portfolio.cash} required={amount}"
                    )
                session.insurable_event_occurred = True
            case "LOAN":
                shortfall = max(amount - portfolio.cash, 0)
                requested = loan_amount if loan_amount is not None else shortfall
                if requested < shortfall:
                    return GameResult.failure(ResultCode.insufficient_cash, f"loan {requested} below shortfall {shortfall}")
                outcome = self.processor.take_loan(session, requested)
                if not outcome.applied:
                    return GameResult.failure(ResultCode.loan_failed, outcome.message)
            case "ILLEGAL_LOAN":
                shortfall = expense_shortfall(session)
                if shortfall > 0:
                    outcome = self.processor.take_illegal_loan(session, shortfall)
                    if not outcome.applied:
                        return GameResult.failure(ResultCode.loan_failed, outcome.message)
                else:
                    session.illegal_loan_used = True
            case _:
                return GameResult.failure(ResultCode.invalid_resolution_type, f"unknown resolution {resolution_type}")

        portfolio.cash -= amount
        event.resolved = True
        logging.info(
            f"Life event resolved: uid={session.uid} key={event.event_key} method={resolution_type} "
            f"paid={amount} cash={portfolio.cash}"
        )
        return GameResult.success({"method": resolution_type, "paid": amount, "remaining_cash": portfolio.cash})

    def raise_cash(self, session: SessionModel, target: int) -> None:
        """Sell stocks, then funds, until cash reaches `target` or nothing is left."""
        portfolio = session.portfolio
        for stock in list(portfolio.stocks):
            needed = target - portfolio.cash
            if needed <= 0:
                return
            quantity = min(stock.quantity, math.ceil(needed / stock.current_price))
            self.processor.sell_stock(session, StockAction(action="SELL", stock_id=stock.stock_id, quantity=quantity))
        for fund in list(portfolio.funds):
            needed = target - portfolio.cash
            if needed <= 0:
                return
            nav = self.processor.market.fund_nav(fund.fund_id, session.current_round)
            shares = min(fund.shares, math.ceil(needed / nav))
            self.processor.sell_fund(session, FundAction(action="SELL", fund_id=fund.fund_id, amount=shares * nav))

    def settle_unresolved(self, session: SessionModel) -> None:
        """Settle a pending expense the player left open: cash first, then a forced sale."""
        event = session.pending_life_event
        if event is None or event.resolved or event.event_type != EXPENSE:
            return
        portfolio = session.portfolio
        if portfolio.cash < event.amount:
            self.raise_cash(session, event.amount)
        paid = min(portfolio.cash, event.amount)
        portfolio.cash -= paid
        event.resolved = True
        if paid < event.amount:
            logging.warning(
                f"Life event not fully paid: uid={session.uid} key={event.event_key} shortfall={event.amount - paid}"
            )
