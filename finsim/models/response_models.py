from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel

from finsim.models.dc_models import (
    AllocationModel,
    AutoPaymentFailureModel,
    LifeEventModel,
    PortfolioModel,
    ScoreModel,
    SettlementModel,
)


class ResultCode(str, Enum):
    session_not_found = "SESSION_NOT_FOUND"
    game_in_progress = "GAME_IN_PROGRESS"
    game_not_completed = "GAME_NOT_COMPLETED"
    game_completed = "GAME_COMPLETED"
    portfolio_not_found = "PORTFOLIO_NOT_FOUND"
    purchase_failed = "PURCHASE_FAILED"
    insufficient_cash = "INSUFFICIENT_CASH"
    loan_failed = "LOAN_FAILED"
    invalid_resolution_type = "INVALID_RESOLUTION_TYPE"
    invalid_round = "INVALID_ROUND"
    no_pending_event = "NO_PENDING_EVENT"
    advice_limit_reached = "ADVICE_LIMIT_REACHED"


class GameResult(BaseModel):
    """Tagged result of a request-level operation."""

    ok: bool
    code: Optional[ResultCode] = None
    message: str = ""
    data: Optional[Any] = None

    @classmethod
    def success(cls, data: Any = None) -> "GameResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, code: ResultCode, message: str = "") -> "GameResult":
        return cls(ok=False, code=code, message=message or code.value)


class ActionOutcomeModel(BaseModel):
    kind: str
    action: str
    product_key: str
    applied: bool
    amount: int = 0
    code: Optional[ResultCode] = None
    message: str = ""


class StockPriceChangeModel(BaseModel):
    stock_id: str
    change_rate: Decimal
    price: int


class FundNavChangeModel(BaseModel):
    fund_id: str
    change_rate: Decimal
    nav: int


class MarketMovementModel(BaseModel):
    round_number: int
    base_rate: Decimal
    base_rate_change: Decimal
    stock_price_change: List[StockPriceChangeModel] = []
    fund_nav_change: List[FundNavChangeModel] = []


class PortfolioSummaryModel(BaseModel):
    cash: int
    total_assets: int
    total_liabilities: int
    net_worth: int
    cash_like_total: int
    investment_total: int


class PortfolioSnapshotModel(BaseModel):
    summary: PortfolioSummaryModel
    allocation: AllocationModel
    holdings: PortfolioModel


class RoundStateModel(BaseModel):
    current_round: int
    completed: bool
    settlement: Optional[SettlementModel] = None
    portfolio: PortfolioSnapshotModel
    market: Optional[MarketMovementModel] = None
    life_event: Optional[LifeEventModel] = None
    auto_payment_failures: List[AutoPaymentFailureModel] = []
    action_results: List[ActionOutcomeModel] = []
    final_score: Optional[ScoreModel] = None
