from finsim.score_utils import FINANCIAL_MAX, RISK_MAX, YIELD_MAX, ScoreUtils
from tests.helpers import make_session

score_utils = ScoreUtils()


def test_illegal_loan_penalty_applied_once():
    assert score_utils.apply_penalty(100_000, True) == 80_000
    assert score_utils.apply_penalty(100_000, False) == 100_000


def test_tiers():
    assert score_utils.tier(80_000) == "S"
    assert score_utils.tier(79_999) == "A"
    assert score_utils.tier(40_000) == "B"
    assert score_utils.tier(0) == "C"


def test_components_are_capped():
    assert score_utils.financial_management_score(5.0) == FINANCIAL_MAX
    assert score_utils.financial_management_score(-1.0) == 0
    assert score_utils.absolute_yield_score(10_000_000, 1_000_000) == YIELD_MAX
    assert score_utils.risk_management_score(8, True, False, 3) == RISK_MAX


def test_piecewise_interpolates_between_breakpoints():
    # halfway between 0.0 -> 16,000 and 0.1 -> 28,000
    assert score_utils.financial_management_score(0.05) == 22_000


def test_break_even_session():
    session = make_session(completed=True)
    session.portfolio.net_worth = 3_000_000
    score = score_utils.calculate_score(session)
    assert score.return_rate == 0.0
    assert score.financial_management_score == 16_000
    assert score.absolute_yield_score == 10_000
    # no products, not insured, no illegal loan, no advice
    assert score.risk_management_score == 6_000
    assert score.total_score == 32_000
    assert score.tier == "C"


def test_illegal_loan_session_is_penalized():
    session = make_session(completed=True, illegal_loan_used=True, products_used=["DEPOSIT", "STOCK", "INSURANCE"])
    session.portfolio.net_worth = 3_600_000
    score = score_utils.calculate_score(session)
    assert score.penalty_applied
    assert score.total_score == round(score.raw_total * 0.8)


def test_insurance_is_not_counted_as_a_diversified_product():
    session = make_session(completed=True, insurance_subscribed=True, products_used=["DEPOSIT", "INSURANCE"])
    session.portfolio.net_worth = 3_000_000
    score = score_utils.calculate_score(session)
    # one investment family 3,000 + insurance 8,000 + no illegal loan 6,000
    assert score.risk_management_score == 17_000
