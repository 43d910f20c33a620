"""Game rules that are independent from HTTP and Redis.

This module is organized by *concept* (rules), not by game mode.
Mode-specific parameters live together here to avoid scattering constants.

Rule of thumb:
- OK: product catalog, round arithmetic, money rounding.
- Not OK: touching Redis, FastAPI, os.environ, datetime.now(), etc.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import NamedTuple


class GameMode(str, Enum):
    tutorial = "TUTORIAL"
    competition = "COMPETITION"


class Pattern(str, Enum):
    up = "UP"
    down = "DOWN"


MAX_ROUNDS = {
    GameMode.tutorial: 6,
    GameMode.competition: 12,
}

CASE_COUNT = 4
MAX_ADVICE_COUNT = 3

# ==== Product families ====
DEPOSIT = "DEPOSIT"
SAVING = "SAVING"
BOND = "BOND"
STOCK = "STOCK"
FUND = "FUND"
PENSION = "PENSION"
INSURANCE = "INSURANCE"
LOAN = "LOAN"

# ==== Rates ====
EARLY_WITHDRAWAL_PENALTY_RATE = Decimal("0.005")
PENSION_RATE = Decimal("0.032")
LOAN_ANNUAL_RATE = Decimal("0.05")
LOAN_TERM_MONTHS = 3
MONTHLY_INSURANCE_PREMIUM = 5_000
PREFERENTIAL_DISCOUNT = Decimal("0.95")
PREFERENTIAL_RATE_BONUS = Decimal("0.002")
COUPON_PERIOD_MONTHS = 3
NAV_START = 10_000


class TermProduct(NamedTuple):
    """Fixed-term deposit/saving product: rates are annual."""

    name: str
    base_rate: Decimal
    preferential_rate: Decimal
    tutorial_term: int
    competition_term: int


class BondProduct(NamedTuple):
    """Bond product: coupon rate is base rate + spread at subscription time."""

    name: str
    spread: Decimal
    tutorial_term: int
    competition_term: int
    pays_coupon: bool


DEPOSIT_PRODUCTS = {
    "DEPOSIT": TermProduct("Time Deposit", Decimal("0.025"), Decimal("0.027"), 3, 6),
}

SAVING_PRODUCTS = {
    "SAVING_A": TermProduct("Installment Saving A", Decimal("0.026"), Decimal("0.028"), 3, 6),
    "SAVING_B": TermProduct("Installment Saving B", Decimal("0.032"), Decimal("0.034"), 6, 12),
}

BOND_PRODUCTS = {
    "BOND_NATIONAL": BondProduct("National Bond", Decimal("0.0125"), 3, 9, False),
    "BOND_CORPORATE": BondProduct("Corporate Bond", Decimal("0.0175"), 6, 12, True),
}

STOCK_NAMES = {
    "STOCK_01": "Ever Semiconductor",
    "STOCK_02": "Care Financial",
    "STOCK_03": "Atom Energy",
    "STOCK_04": "Peak Construction",
    "STOCK_05": "Genetic Bio",
    "STOCK_06": "Biton Entertainment",
    "STOCK_07": "Wave Shipbuilding",
}

FUND_NAMES = {
    "FUND_01": "Growth Fund",
    "FUND_02": "Stable Fund",
    "FUND_03": "High Risk High Return Fund",
}

PENSION_NAME = "Pension Savings"
LOAN_NAME = "Short-term Loan"
INSURANCE_NAME = "Accident Insurance"


class StartingParameters(NamedTuple):
    initial_cash: int
    monthly_salary: int
    monthly_living: int


DEFAULT_STARTING_PARAMETERS = {
    GameMode.tutorial: StartingParameters(3_000_000, 2_000_000, 1_000_000),
    GameMode.competition: StartingParameters(5_000_000, 1_000_000, 500_000),
}


def to_money(value: Decimal) -> int:
    """Round to a whole currency unit, half-up."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_ratio(value: Decimal, places: int = 4) -> Decimal:
    """Round a fraction to `places` decimals, half-up."""
    return Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def max_rounds(mode: GameMode) -> int:
    """Return the number of rounds played in the given mode."""
    return MAX_ROUNDS[GameMode(mode)]


def is_valid_round(mode: GameMode, round_number: int) -> bool:
    return 1 <= round_number <= max_rounds(mode)


def term_months(mode: GameMode, product: TermProduct | BondProduct) -> int:
    if GameMode(mode) == GameMode.tutorial:
        return product.tutorial_term
    return product.competition_term


def maturity_round(mode: GameMode, subscription_round: int, months: int) -> int:
    """Maturity round of a fixed-term product, never beyond the last round.

    Args:
        mode (GameMode): Game mode of the session
        subscription_round (int): Round in which the product was opened
        months (int): Product term in months

    Returns:
        int: min(subscription_round + months, max_rounds(mode))
    """
    if months < 0:
        raise ValueError(f"term must not be negative: {months}")
    return min(subscription_round + months, max_rounds(mode))


def product_family(product_key: str) -> str:
    """Map a product key (e.g. "SAVING_A", "STOCK_03") to its family."""
    if product_key in DEPOSIT_PRODUCTS:
        return DEPOSIT
    if product_key in SAVING_PRODUCTS:
        return SAVING
    if product_key in BOND_PRODUCTS:
        return BOND
    if product_key in STOCK_NAMES:
        return STOCK
    if product_key in FUND_NAMES:
        return FUND
    if product_key.startswith(PENSION):
        return PENSION
    if product_key.startswith(LOAN):
        return LOAN
    raise ValueError(f"unknown product key: {product_key}")
