from decimal import Decimal

import pytest

from finsim.domain import calculators


def test_deposit_maturity_three_months():
    assert calculators.deposit_maturity(1_000_000, Decimal("0.025"), 3) == 1_006_250


def test_deposit_maturity_increases_with_term():
    values = [calculators.deposit_maturity(1_000_000, Decimal("0.025"), months) for months in range(0, 13)]
    assert values == sorted(values)
    assert values[0] == 1_000_000


def test_deposit_early_withdrawal_uses_penalty_rate():
    assert calculators.deposit_early_withdrawal(1_000_000, 0) == 1_000_000
    # 1,000,000 x (1 + 0.005 x 2/12)
    assert calculators.deposit_early_withdrawal(1_000_000, 2) == 1_000_833


def test_saving_maturity_sums_each_contribution():
    # 3 x 100,000 + 100,000 x 0.026 x (1+2+3)/12
    assert calculators.saving_maturity(100_000, Decimal("0.026"), 3) == 301_300


def test_saving_early_withdrawal_first_payment_earns_nothing():
    assert calculators.saving_early_withdrawal(100_000, 1) == 100_000
    assert calculators.saving_early_withdrawal(100_000, 0) == 0


def test_bond_early_withdrawal_in_subscription_round_returns_principal():
    value = calculators.bond_early_withdrawal(1_000_000, Decimal("0.03"), Decimal("0.0175"), 0, 6)
    assert value == 1_000_000


def test_bond_early_withdrawal_market_price_plus_accrued():
    # market: 1,000,000 x (1 + 0.0125 x 2/12) = 1,002,083.33
    # accrued: 1,000,000 x 0.03 x 1/12 = 2,500
    value = calculators.bond_early_withdrawal(1_000_000, Decimal("0.03"), Decimal("0.0175"), 1, 2)
    assert value == 1_004_583


def test_coupon_bond_early_withdrawal_adds_received_coupons():
    without = calculators.bond_early_withdrawal(1_000_000, Decimal("0.03"), Decimal("0.0175"), 4, 2, 0, True)
    with_coupon = calculators.bond_early_withdrawal(1_000_000, Decimal("0.03"), Decimal("0.0175"), 4, 2, 7_500, True)
    assert with_coupon - without == 7_500


def test_bond_coupon_is_quarter_of_annual_interest():
    assert calculators.bond_coupon(1_000_000, Decimal("0.03")) == 7_500


def test_bond_maturity_excludes_paid_coupons():
    assert calculators.bond_maturity(1_000_000, Decimal("0.03"), 3, pays_coupon=False) == 1_007_500
    assert calculators.bond_maturity(1_000_000, Decimal("0.03"), 6, pays_coupon=True) == 1_000_000
    assert calculators.bond_maturity(1_000_000, Decimal("0.03"), 4, pays_coupon=True) == 1_002_500


def test_loan_interest_and_early_repayment():
    monthly = calculators.loan_monthly_interest(1_200_000, Decimal("0.05"))
    assert monthly == 5_000
    total = calculators.loan_total_interest(monthly, 3)
    assert total == 15_000
    assert calculators.loan_early_repayment(1_200_000, total, 5_000) == 1_210_000
    assert calculators.loan_maturity_repayment(1_200_000) == 1_200_000


def test_weighted_average_price_truncates():
    assert calculators.weighted_average_price(50_000, 10, 60_000, 10) == 55_000
    assert calculators.weighted_average_price(100, 1, 101, 2) == 100


def test_weighted_average_price_rejects_empty_position():
    with pytest.raises(ValueError):
        calculators.weighted_average_price(100, 0, 100, 0)


def test_fund_shares_round_half_up():
    assert calculators.fund_shares(15_000, 10_000) == 2
    assert calculators.fund_shares(14_999, 10_000) == 1


def test_dividend_and_returns():
    assert calculators.dividend(50_000, 10, Decimal("0.005")) == 2_500
    assert calculators.profit_loss(50_000, 55_000, 10) == 50_000
    assert calculators.return_rate(50_000, 55_000) == 0.1
    assert calculators.return_rate(0, 55_000) == 0.0
