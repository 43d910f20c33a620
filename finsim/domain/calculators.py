"""Pure formulas for every product family.

All amounts are whole currency units. Rates are annual fractions unless the
name says otherwise. Rounding (half-up) happens once, at the final step.
"""

from decimal import Decimal

from finsim.domain.game_rules import (
    COUPON_PERIOD_MONTHS,
    EARLY_WITHDRAWAL_PENALTY_RATE,
    PENSION_RATE,
    to_money,
)

MONTHS_PER_YEAR = Decimal(12)


def _simple_growth(principal: int, rate: Decimal, months: int) -> Decimal:
    return Decimal(principal) * (1 + Decimal(rate) * months / MONTHS_PER_YEAR)


# ==== Deposit ====
def deposit_maturity(principal: int, rate: Decimal, term_months: int) -> int:
    """principal x (1 + rate x term/12)

    >>> deposit_maturity(1_000_000, Decimal("0.025"), 3)
    1006250
    """
    return to_money(_simple_growth(principal, rate, term_months))


def deposit_early_withdrawal(principal: int, elapsed_months: int) -> int:
    """Early withdrawal accrues at the penalty rate, never the product rate."""
    return to_money(_simple_growth(principal, EARLY_WITHDRAWAL_PENALTY_RATE, elapsed_months))


# ==== Saving ====
def saving_maturity(monthly_amount: int, rate: Decimal, payment_count: int) -> int:
    """Sum of each contribution's own accrual: n = 1..payment_count months."""
    total = sum((_simple_growth(monthly_amount, rate, n) for n in range(1, payment_count + 1)), Decimal("0"))
    return to_money(total)


def saving_early_withdrawal(monthly_amount: int, payment_count: int) -> int:
    """Penalty-rate accrual with n = 0..payment_count-1 months."""
    total = sum(
        (_simple_growth(monthly_amount, EARLY_WITHDRAWAL_PENALTY_RATE, n) for n in range(payment_count)),
        Decimal("0"),
    )
    return to_money(total)


# ==== Bond ====
def _bond_accrual(principal: int, bond_rate: Decimal, months: int) -> Decimal:
    return Decimal(principal) * Decimal(bond_rate) * months / MONTHS_PER_YEAR


def bond_market_price(principal: int, bond_rate: Decimal, base_rate: Decimal, remaining_months: int) -> int:
    return to_money(_simple_growth(principal, Decimal(bond_rate) - Decimal(base_rate), remaining_months))


def bond_accrued_interest(principal: int, bond_rate: Decimal, elapsed_months: int) -> int:
    return to_money(_bond_accrual(principal, bond_rate, elapsed_months))


def bond_coupon(principal: int, bond_rate: Decimal) -> int:
    """Quarterly coupon: principal x rate / 4."""
    return to_money(Decimal(principal) * Decimal(bond_rate) / 4)


def bond_early_withdrawal(
    principal: int,
    bond_rate: Decimal,
    base_rate: Decimal,
    elapsed_months: int,
    remaining_months: int,
    received_interest: int = 0,
    pays_coupon: bool = False,
) -> int:
    """Value received when a bond is sold before maturity.

    Args:
        principal (int): Face value
        bond_rate (Decimal): Annual coupon rate fixed at subscription
        base_rate (Decimal): Current base rate
        elapsed_months (int): Months held
        remaining_months (int): Months until maturity
        received_interest (int): Coupons already paid out
        pays_coupon (bool): Coupon bonds only accrue since the last coupon

    Returns:
        int: principal when sold in the subscription round, else market price + accrued interest
    """
    if elapsed_months == 0:
        return principal
    accrual_months = elapsed_months % COUPON_PERIOD_MONTHS if pays_coupon else elapsed_months
    value = _simple_growth(principal, Decimal(bond_rate) - Decimal(base_rate), remaining_months)
    value += _bond_accrual(principal, bond_rate, accrual_months)
    if pays_coupon:
        value += received_interest
    return to_money(value)


def bond_maturity(principal: int, bond_rate: Decimal, term_months: int, pays_coupon: bool = False) -> int:
    """Principal plus interest not already paid out as coupons."""
    unpaid_months = term_months % COUPON_PERIOD_MONTHS if pays_coupon else term_months
    return to_money(Decimal(principal) + _bond_accrual(principal, bond_rate, unpaid_months))


def bond_forced_settlement(principal: int, bond_rate: Decimal, elapsed_months: int, pays_coupon: bool = False) -> int:
    """Settlement of a bond still held when the game ends.

    Coupons already paid went to cash when they were paid, so a coupon bond
    only adds the interest accrued since its last coupon.
    """
    accrual_months = elapsed_months % COUPON_PERIOD_MONTHS if pays_coupon else elapsed_months
    return to_money(Decimal(principal) + _bond_accrual(principal, bond_rate, accrual_months))


# ==== Pension ====
def pension_payout(monthly_amount: int, payment_count: int, rate: Decimal = PENSION_RATE) -> int:
    return saving_maturity(monthly_amount, rate, payment_count)


# ==== Loan ====
def loan_monthly_interest(principal: int, annual_rate: Decimal) -> int:
    return to_money(Decimal(principal) * Decimal(annual_rate) / MONTHS_PER_YEAR)


def loan_total_interest(monthly_interest: int, term_months: int) -> int:
    return monthly_interest * term_months


def loan_maturity_repayment(principal: int) -> int:
    """Interest has been collected monthly, so only the principal is due."""
    return principal


def loan_early_repayment(principal: int, total_interest: int, interest_paid: int) -> int:
    return principal + max(total_interest - interest_paid, 0)


# ==== Stock / Fund ====
def dividend(price: int, quantity: int, period_rate: Decimal) -> int:
    """price x quantity x period_rate; period_rate is already per period."""
    return to_money(Decimal(price) * quantity * Decimal(period_rate))


def weighted_average_price(old_avg: int, old_quantity: int, price: int, quantity: int) -> int:
    """(old_avg x old_qty + price x qty) / (old_qty + qty), truncated to a whole unit."""
    total_quantity = old_quantity + quantity
    if total_quantity <= 0:
        raise ValueError(f"total quantity must be positive: {total_quantity}")
    return (old_avg * old_quantity + price * quantity) // total_quantity


def preferential_price(price: int, discount: Decimal) -> int:
    return to_money(Decimal(price) * Decimal(discount))


def fund_shares(amount: int, nav: int) -> int:
    if nav <= 0:
        raise ValueError(f"nav must be positive: {nav}")
    return to_money(Decimal(amount) / Decimal(nav))


def profit_loss(avg_price: int, current_price: int, quantity: int) -> int:
    return (current_price - avg_price) * quantity


def return_rate(avg_price: int, current_price: int) -> float:
    if avg_price == 0:
        return 0.0
    return round((current_price - avg_price) / avg_price, 4)
