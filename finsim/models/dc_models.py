from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from uuid6 import uuid7

from finsim.domain.game_rules import GameMode, Pattern


def new_holding_id() -> str:
    return str(uuid7())


class DepositModel(BaseModel):
    holding_id: str = Field(default_factory=new_holding_id)
    product_key: str
    name: str
    principal: int
    balance: int
    expected_maturity_amount: int
    interest_rate: Decimal
    subscription_round: int
    maturity_round: int
    elapsed_months: int = 0
    preferential: bool = False


class SavingModel(BaseModel):
    holding_id: str = Field(default_factory=new_holding_id)
    product_key: str
    name: str
    monthly_amount: int
    balance: int  # sum of contributions paid so far
    expected_maturity_amount: int
    interest_rate: Decimal
    subscription_round: int
    maturity_round: int
    payment_count: int = 1
    preferential: bool = False


class BondModel(BaseModel):
    holding_id: str = Field(default_factory=new_holding_id)
    bond_id: str
    name: str
    face_value: int
    evaluation_amount: int
    interest_rate: Decimal
    subscription_round: int
    maturity_round: int
    elapsed_months: int = 0
    received_interest: int = 0
    pays_coupon: bool = False
    preferential: bool = False


class StockHoldingModel(BaseModel):
    stock_id: str
    name: str
    quantity: int
    avg_price: int
    current_price: int
    evaluation_amount: int
    profit_loss: int = 0
    return_rate: float = 0.0


class FundHoldingModel(BaseModel):
    fund_id: str
    name: str
    shares: int
    avg_nav: int
    current_nav: int
    evaluation_amount: int
    profit_loss: int = 0
    return_rate: float = 0.0


class PensionModel(BaseModel):
    holding_id: str = Field(default_factory=new_holding_id)
    product_key: str = "PENSION"
    name: str
    monthly_amount: int
    total_contribution: int
    evaluation_amount: int
    interest_rate: Decimal
    subscription_round: int
    payment_count: int = 1
    preferential: bool = False


class LoanModel(BaseModel):
    loan_id: str = Field(default_factory=new_holding_id)
    product_key: str = "LOAN"
    name: str
    principal: int
    remaining_balance: int
    interest_rate: Decimal
    execution_round: int
    maturity_round: int
    elapsed_months: int = 0
    monthly_interest: int
    total_interest_paid: int = 0


class AllocationModel(BaseModel):
    cash_ratio: Decimal = Decimal("0")
    deposit_ratio: Decimal = Decimal("0")
    saving_ratio: Decimal = Decimal("0")
    bond_ratio: Decimal = Decimal("0")
    stock_ratio: Decimal = Decimal("0")
    fund_ratio: Decimal = Decimal("0")
    pension_ratio: Decimal = Decimal("0")


class PortfolioModel(BaseModel):
    cash: int
    deposits: List[DepositModel] = []
    savings: List[SavingModel] = []
    bonds: List[BondModel] = []
    stocks: List[StockHoldingModel] = []
    funds: List[FundHoldingModel] = []
    pensions: List[PensionModel] = []
    loans: List[LoanModel] = []
    # derived, recomputed by portfolio_rules.update_summary
    total_assets: int = 0
    total_liabilities: int = 0
    net_worth: int = 0
    allocation: AllocationModel = Field(default_factory=AllocationModel)


class LifeEventModel(BaseModel):
    event_key: str
    event_type: str  # INCOME or EXPENSE
    amount: int
    insurable_event: bool = False
    round_number: int
    resolved: bool = False


class AutoPaymentFailureModel(BaseModel):
    type: str
    product_key: str
    name: str
    amount: int
    reason: str
    available_actions: List[str] = []


class BaseIncomeModel(BaseModel):
    salary: int = 0
    total: int = 0


class BaseExpensesModel(BaseModel):
    living: int = 0
    other_expenses: int = 0
    total: int = 0


class PassiveIncomeModel(BaseModel):
    deposit_interest: int = 0
    saving_interest: int = 0
    bond_interest: int = 0
    stock_dividend: int = 0
    fund_dividend: int = 0
    total: int = 0


class SettlementModel(BaseModel):
    round_number: int
    base_income: BaseIncomeModel = Field(default_factory=BaseIncomeModel)
    base_expenses: BaseExpensesModel = Field(default_factory=BaseExpensesModel)
    passive_income: PassiveIncomeModel = Field(default_factory=PassiveIncomeModel)


class ScoreModel(BaseModel):
    financial_management_score: int
    risk_management_score: int
    absolute_yield_score: int
    raw_total: int
    penalty_applied: bool
    total_score: int
    tier: str
    net_worth: int
    return_rate: float


class SessionModel(BaseModel):
    uid: str
    game_mode: GameMode
    current_round: int = 1
    seed: Optional[int] = None
    completed: bool = False
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    monthly_salary: int
    monthly_living: int
    initial_cash: int
    monthly_insurance_premium: int = 0
    insurance_subscribed: bool = False
    loan_used: bool = False
    illegal_loan_used: bool = False
    advice_used_count: int = 0
    insurable_event_occurred: bool = False
    stock_patterns: Dict[str, Pattern] = {}
    stock_start_case: int = 1
    base_rate_case: int = 1
    products_used: List[str] = []
    pending_life_event: Optional[LifeEventModel] = None
    auto_payment_failures: List[AutoPaymentFailureModel] = []
    last_settlement: Optional[SettlementModel] = None
    final_score: Optional[ScoreModel] = None
    portfolio: PortfolioModel

    @property
    def loan_info(self) -> Optional[LoanModel]:
        """The single active loan, if any."""
        return self.portfolio.loans[0] if self.portfolio.loans else None

    def mark_product_used(self, family: str) -> None:
        if family not in self.products_used:
            self.products_used.append(family)
