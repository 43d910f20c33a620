import numpy as np
from typing import Sequence

from finsim.domain.game_rules import INSURANCE, MAX_ADVICE_COUNT
from finsim.models.dc_models import ScoreModel, SessionModel

FINANCIAL_MAX = 40_000
RISK_MAX = 30_000
YIELD_MAX = 30_000
ILLEGAL_LOAN_PENALTY = 0.8

# (x, score) breakpoints; np.interp holds the end values flat outside the range.
RETURN_RATE_POINTS = ([-0.2, 0.0, 0.1, 0.3], [0, 16_000, 28_000, 40_000])
DIVERSIFICATION_POINTS = ([0, 1, 3, 5], [0, 3_000, 9_000, 12_000])
ADVICE_POINTS = ([0, 1, MAX_ADVICE_COUNT], [0, 2_000, 4_000])
NET_WORTH_RATIO_POINTS = ([0.8, 1.0, 1.5], [0, 10_000, 30_000])
INSURANCE_SCORE = 8_000
NO_ILLEGAL_LOAN_SCORE = 6_000

TIERS = [(80_000, "S"), (60_000, "A"), (40_000, "B")]


class ScoreUtils:
    def piecewise(self, x: float, points: tuple[Sequence[float], Sequence[float]], cap: int) -> int:
        """Evaluate a piecewise-linear score and cap it

        Args:
            x (float): Input value
            points (tuple[Sequence[float], Sequence[float]]): Breakpoint x values and their scores
            cap (int): Upper bound of the component

        Returns:
            int: Score rounded to a whole point, within [0, cap]
        """
        xs, ys = points
        value = float(np.interp(x, xs, ys))
        return int(np.clip(np.round(value), 0, cap))

    def return_rate(self, net_worth: int, initial_cash: int) -> float:
        if initial_cash <= 0:
            return 0.0
        return (net_worth - initial_cash) / initial_cash

    def financial_management_score(self, return_rate: float) -> int:
        return self.piecewise(return_rate, RETURN_RATE_POINTS, FINANCIAL_MAX)

    def risk_management_score(
        self, diversification: int, insured: bool, illegal_loan_used: bool, advice_used: int
    ) -> int:
        """Diversification breadth + insurance + no illegal lending + advice usage

        Args:
            diversification (int): Number of investment product families used during the game, insurance excluded
            insured (bool): Insurance was held at some point
            illegal_loan_used (bool): Illegal private loan flag
            advice_used (int): Advice used, capped at MAX_ADVICE_COUNT

        Returns:
            int: Risk management score, capped at RISK_MAX
        """
        score = self.piecewise(diversification, DIVERSIFICATION_POINTS, RISK_MAX)
        if insured:
            score += INSURANCE_SCORE
        if not illegal_loan_used:
            score += NO_ILLEGAL_LOAN_SCORE
        score += self.piecewise(min(advice_used, MAX_ADVICE_COUNT), ADVICE_POINTS, RISK_MAX)
        return min(score, RISK_MAX)

    def absolute_yield_score(self, net_worth: int, initial_cash: int) -> int:
        if initial_cash <= 0:
            return 0
        return self.piecewise(net_worth / initial_cash, NET_WORTH_RATIO_POINTS, YIELD_MAX)

    def apply_penalty(self, raw_total: int, illegal_loan_used: bool) -> int:
        """The illegal-loan penalty applies once, to the summed score."""
        if not illegal_loan_used:
            return raw_total
        return int(np.round(raw_total * ILLEGAL_LOAN_PENALTY))

    def tier(self, total_score: int) -> str:
        for threshold, label in TIERS:
            if total_score >= threshold:
                return label
        return "C"

    def calculate_score(self, session: SessionModel) -> ScoreModel:
        """Score a completed session from its terminal net worth and flags

        Args:
            session (SessionModel): Session after final settlement

        Returns:
            ScoreModel: Component scores, penalty and total
        """
        net_worth = session.portfolio.net_worth
        rate = self.return_rate(net_worth, session.initial_cash)
        financial = self.financial_management_score(rate)
        insured = session.insurance_subscribed or INSURANCE in session.products_used
        # insurance is scored by its own bonus
        diversification = len([product for product in session.products_used if product != INSURANCE])
        risk = self.risk_management_score(
            diversification, insured, session.illegal_loan_used, session.advice_used_count
        )
        absolute = self.absolute_yield_score(net_worth, session.initial_cash)
        raw_total = financial + risk + absolute
        total = self.apply_penalty(raw_total, session.illegal_loan_used)
        return ScoreModel(
            financial_management_score=financial,
            risk_management_score=risk,
            absolute_yield_score=absolute,
            raw_total=raw_total,
            penalty_applied=session.illegal_loan_used,
            total_score=total,
            tier=self.tier(total),
            net_worth=net_worth,
            return_rate=round(rate, 4),
        )
