"""Round state machine of one game.

AwaitingStart -> start settlement -> AwaitingActions -> actions -> end
settlement -> next round's AwaitingStart, or Completed after the last round.

Rule of thumb:
- OK: mutating the SessionModel handed in, rolling the injected rng.
- Not OK: loading/saving sessions, reading config, calling datetime.now()
  without it being passed in.
"""

import logging
import random
from datetime import datetime
from typing import List, Optional, Sequence

from finsim.domain.actions import ActionProcessor
from finsim.domain.game_rules import (
    CASE_COUNT,
    MAX_ADVICE_COUNT,
    STOCK_NAMES,
    GameMode,
    Pattern,
    StartingParameters,
    max_rounds,
)
from finsim.domain.life_events import INCOME, LifeEventResolver, apply_income_event, roll_life_event
from finsim.domain.market_data import MarketDataProvider
from finsim.domain.portfolio_rules import refresh_valuations, snapshot, update_summary
from finsim.domain.settlement import run_end_settlement, run_final_settlement, run_start_settlement
from finsim.models.action_models import GameAction, LifeEventResolutionModel
from finsim.models.dc_models import PassiveIncomeModel, PortfolioModel, SessionModel, SettlementModel
from finsim.models.response_models import (
    ActionOutcomeModel,
    FundNavChangeModel,
    MarketMovementModel,
    ResultCode,
    RoundStateModel,
    StockPriceChangeModel,
)
from finsim.score_utils import ScoreUtils

score_utils = ScoreUtils()


def market_for(session: SessionModel) -> MarketDataProvider:
    return MarketDataProvider(
        session.game_mode,
        stock_patterns=session.stock_patterns,
        stock_case=session.stock_start_case,
        base_rate_case=session.base_rate_case,
    )


def market_movement(market: MarketDataProvider, round_number: int) -> MarketMovementModel:
    """Base rate and per-product change rates of one round."""
    stock_changes = [
        StockPriceChangeModel(stock_id=stock_id, change_rate=rate, price=market.stock_price(stock_id, round_number))
        for stock_id, rate in market.stock_change_rates(round_number).items()
    ]
    fund_changes = [
        FundNavChangeModel(fund_id=fund_id, change_rate=rate, nav=market.fund_nav(fund_id, round_number))
        for fund_id, rate in market.fund_change_rates(round_number).items()
    ]
    return MarketMovementModel(
        round_number=round_number,
        base_rate=market.base_rate(round_number),
        base_rate_change=market.base_rate_change(round_number),
        stock_price_change=stock_changes,
        fund_nav_change=fund_changes,
    )


def use_advice(session: SessionModel) -> bool:
    if session.advice_used_count >= MAX_ADVICE_COUNT:
        return False
    session.advice_used_count += 1
    return True


def build_round_state(
    session: SessionModel, market: MarketDataProvider, outcomes: Optional[List[ActionOutcomeModel]] = None
) -> RoundStateModel:
    return RoundStateModel(
        current_round=session.current_round,
        completed=session.completed,
        settlement=session.last_settlement,
        portfolio=snapshot(session.portfolio),
        market=market_movement(market, session.current_round),
        life_event=session.pending_life_event,
        auto_payment_failures=list(session.auto_payment_failures),
        action_results=outcomes or [],
        final_score=session.final_score,
    )


def _merge_passive_income(target: PassiveIncomeModel, matured: PassiveIncomeModel) -> None:
    target.deposit_interest += matured.deposit_interest
    target.saving_interest += matured.saving_interest
    target.bond_interest += matured.bond_interest
    target.total += matured.total


class RoundLifecycle:
    """Drives a session through its rounds.

    Args:
        rng (random.Random): Source of every random draw (patterns, cases, life events)
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def start_game(
        self,
        uid: str,
        mode: GameMode,
        params: StartingParameters,
        now: Optional[datetime] = None,
        seed: Optional[int] = None,
    ) -> SessionModel:
        """Create a session at round 1 with its market case drawn.

        Args:
            uid (str): Player id
            mode (GameMode): TUTORIAL or COMPETITION
            params (StartingParameters): Starting cash, salary and living expense
            now (Optional[datetime]): Creation timestamp
            seed (Optional[int]): Recorded on the session so later rounds replay the same draws

        Returns:
            SessionModel: Session after round 1's start settlement
        """
        mode = GameMode(mode)
        if mode == GameMode.competition:
            stock_patterns = {
                stock_id: Pattern.up if self.rng.random() < 0.5 else Pattern.down for stock_id in STOCK_NAMES
            }
            stock_case = self.rng.randint(1, CASE_COUNT)
            base_rate_case = self.rng.randint(1, CASE_COUNT)
        else:
            stock_patterns = {stock_id: Pattern.up for stock_id in STOCK_NAMES}
            stock_case = 1
            base_rate_case = 1

        session = SessionModel(
            uid=uid,
            game_mode=mode,
            seed=seed,
            started_at=now,
            updated_at=now,
            monthly_salary=params.monthly_salary,
            monthly_living=params.monthly_living,
            initial_cash=params.initial_cash,
            stock_patterns=stock_patterns,
            stock_start_case=stock_case,
            base_rate_case=base_rate_case,
            portfolio=PortfolioModel(cash=params.initial_cash),
        )
        update_summary(session.portfolio)
        settlement, failures = run_start_settlement(session, market_for(session))
        session.last_settlement = settlement
        session.auto_payment_failures = failures
        logging.info(
            f"Game started: uid={uid} mode={mode.value} stock_case={stock_case} base_rate_case={base_rate_case}"
        )
        return session

    def proceed_round(
        self,
        session: SessionModel,
        actions: Sequence[GameAction],
        resolution: Optional[LifeEventResolutionModel] = None,
    ) -> RoundStateModel:
        """Apply the round's decisions, close it and open the next one.

        Args:
            session (SessionModel): Session at its current round, mutated in place
            actions (Sequence[GameAction]): Player actions for the current round
            resolution (Optional[LifeEventResolutionModel]): How to settle the pending expense event

        Returns:
            RoundStateModel: State of the round that was opened, or the final state
        """
        if session.completed:
            raise ValueError(f"session {session.uid} is already completed")

        market = market_for(session)
        processor = ActionProcessor(market)
        resolver = LifeEventResolver(processor)
        outcomes: List[ActionOutcomeModel] = []

        if resolution is not None:
            outcomes.append(self._resolve(session, resolver, resolution))
        outcomes.extend(processor.process(session, actions))
        resolver.settle_unresolved(session)

        refresh_valuations(session.portfolio, market, session.current_round)
        matured = run_end_settlement(session)

        if self.advance_round(session):
            run_final_settlement(session, market)
            session.final_score = score_utils.calculate_score(session)
            session.pending_life_event = None
            session.auto_payment_failures = []
            logging.info(
                f"Game completed: uid={session.uid} net_worth={session.portfolio.net_worth} "
                f"score={session.final_score.total_score}"
            )
            return build_round_state(session, market, outcomes)

        self.open_round(session, market, matured)
        return build_round_state(session, market, outcomes)

    def open_round(
        self, session: SessionModel, market: MarketDataProvider, matured: Optional[PassiveIncomeModel] = None
    ) -> SettlementModel:
        settlement, failures = run_start_settlement(session, market)
        if matured is not None:
            _merge_passive_income(settlement.passive_income, matured)
        session.last_settlement = settlement
        session.auto_payment_failures = failures

        event = roll_life_event(session.game_mode, session.current_round, self.rng)
        if event is not None and event.event_type == INCOME:
            apply_income_event(session, event)
            update_summary(session.portfolio)
        session.pending_life_event = event
        return settlement

    def advance_round(self, session: SessionModel) -> bool:
        """Move to the next round, or flag completion after the last one.

        Returns:
            bool: True when the game just completed
        """
        if session.current_round >= max_rounds(session.game_mode):
            session.completed = True
            return True
        session.current_round += 1
        return False

    def _resolve(
        self, session: SessionModel, resolver: LifeEventResolver, resolution: LifeEventResolutionModel
    ) -> ActionOutcomeModel:
        event = session.pending_life_event
        if event is None or event.event_key != resolution.event_key:
            return ActionOutcomeModel(
                kind="LIFE_EVENT",
                action=resolution.resolution_type,
                product_key=resolution.event_key,
                applied=False,
                code=ResultCode.no_pending_event,
                message=ResultCode.no_pending_event.value,
            )
        result = resolver.resolve(session, resolution.resolution_type, resolution.loan_amount)
        return ActionOutcomeModel(
            kind="LIFE_EVENT",
            action=resolution.resolution_type,
            product_key=resolution.event_key,
            applied=result.ok,
            amount=result.data["paid"] if result.ok else 0,
            code=result.code,
            message=result.message,
        )
