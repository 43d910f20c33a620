from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class DepositAction(BaseModel):
    kind: Literal["DEPOSIT"] = "DEPOSIT"
    action: Literal["SUBSCRIBE", "CANCEL"] = "SUBSCRIBE"
    product_key: Literal["DEPOSIT"] = "DEPOSIT"
    amount: int = 0
    preferential: bool = False


class SavingAction(BaseModel):
    kind: Literal["SAVING"] = "SAVING"
    action: Literal["SUBSCRIBE", "CANCEL"] = "SUBSCRIBE"
    product_key: Literal["SAVING_A", "SAVING_B"]
    monthly_amount: int = 0
    preferential: bool = False


class BondAction(BaseModel):
    kind: Literal["BOND"] = "BOND"
    action: Literal["SUBSCRIBE", "CANCEL"] = "SUBSCRIBE"
    bond_id: Literal["BOND_NATIONAL", "BOND_CORPORATE"]
    amount: int
    preferential: bool = False


class StockAction(BaseModel):
    kind: Literal["STOCK"] = "STOCK"
    action: Literal["BUY", "SELL"]
    stock_id: str
    quantity: int
    preferential: bool = False


class FundAction(BaseModel):
    kind: Literal["FUND"] = "FUND"
    action: Literal["BUY", "SELL"]
    fund_id: str
    amount: int
    preferential: bool = False


class PensionAction(BaseModel):
    kind: Literal["PENSION"] = "PENSION"
    action: Literal["SUBSCRIBE"] = "SUBSCRIBE"
    monthly_amount: int
    preferential: bool = False


class LoanAction(BaseModel):
    kind: Literal["LOAN"] = "LOAN"
    action: Literal["TAKE", "REPAY"] = "TAKE"
    amount: int = 0


class IllegalLoanAction(BaseModel):
    kind: Literal["ILLEGAL_LOAN"] = "ILLEGAL_LOAN"
    amount: int


class InsuranceAction(BaseModel):
    kind: Literal["INSURANCE"] = "INSURANCE"
    action: Literal["SUBSCRIBE", "CANCEL"] = "SUBSCRIBE"


GameAction = Annotated[
    Union[
        DepositAction,
        SavingAction,
        BondAction,
        StockAction,
        FundAction,
        PensionAction,
        LoanAction,
        IllegalLoanAction,
        InsuranceAction,
    ],
    Field(discriminator="kind"),
]

# Evaluation order when several actions compete for the same cash.
ACTION_ORDER = ["DEPOSIT", "SAVING", "BOND", "STOCK", "FUND", "PENSION", "LOAN", "ILLEGAL_LOAN", "INSURANCE"]


class LifeEventResolutionModel(BaseModel):
    event_key: str
    resolution_type: str
    loan_amount: Optional[int] = None


class ProceedRoundRequest(BaseModel):
    round_no: int
    actions: List[GameAction] = []
    life_event: Optional[LifeEventResolutionModel] = None


class StartGameRequest(BaseModel):
    seed: Optional[int] = None
