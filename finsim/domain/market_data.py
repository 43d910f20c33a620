"""Deterministic market data: stock change rates, fund NAV and base rates.

Nothing here is simulated. Every per-round change rate comes from a fixed
table keyed by (mode, case, pattern, stock id); prices and NAVs are replayed
from round 1 with half-up rounding after every round so that a value derived
later always equals the value shown to the player at that round.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional, Tuple

from finsim.domain.game_rules import (
    CASE_COUNT,
    FUND_NAMES,
    NAV_START,
    STOCK_NAMES,
    GameMode,
    Pattern,
    max_rounds,
    to_money,
)

RateKey = Tuple[int, Pattern, str]


def _rates(*values: str) -> Tuple[Decimal, ...]:
    return tuple(Decimal(value) for value in values)


STOCK_BASE_PRICES = {
    "STOCK_01": 50_000,
    "STOCK_02": 30_000,
    "STOCK_03": 15_000,
    "STOCK_04": 10_000,
    "STOCK_05": 5_000,
    "STOCK_06": 25_000,
    "STOCK_07": 20_000,
}

FUND_COMPOSITIONS: Dict[str, Dict[str, Decimal]] = {
    "FUND_01": {"STOCK_01": Decimal("0.3"), "STOCK_02": Decimal("0.3"), "STOCK_07": Decimal("0.4")},
    "FUND_02": {"STOCK_03": Decimal("0.4"), "STOCK_04": Decimal("0.3"), "STOCK_06": Decimal("0.3")},
    "FUND_03": {"STOCK_02": Decimal("0.4"), "STOCK_05": Decimal("0.3"), "STOCK_07": Decimal("0.3")},
}

# Annual dividend yield per stock; paid quarterly.
STOCK_DIVIDEND_YIELDS = {
    "STOCK_01": Decimal("0.02"),
    "STOCK_02": Decimal("0.04"),
    "STOCK_03": Decimal("0.03"),
    "STOCK_04": Decimal("0.01"),
    "STOCK_05": Decimal("0"),
    "STOCK_06": Decimal("0.01"),
    "STOCK_07": Decimal("0.02"),
}
FUND_DIVIDEND_YIELD = Decimal("0.02")
STOCK_DIVIDEND_ROUNDS = (3, 6, 9, 12)
FUND_DIVIDEND_ROUNDS = (6, 12)

# ==== Tutorial tables (6 rounds) ====
TUTORIAL_STOCK_RATES = {
    "STOCK_01": _rates("0.056", "-0.034", "0.059", "0.007", "0.044", "0.099"),
    "STOCK_02": _rates("0.081", "0.183", "0.179", "-0.088", "-0.013", "0.133"),
    "STOCK_03": _rates("0.085", "-0.030", "-0.021", "-0.070", "0.045", "0.015"),
    "STOCK_04": _rates("0.005", "-0.160", "-0.044", "0.019", "-0.064", "-0.029"),
    "STOCK_05": _rates("-0.118", "-0.157", "-0.027", "-0.638", "0.460", "-0.061"),
    "STOCK_06": _rates("-0.040", "-0.100", "-0.059", "0.125", "-0.009", "0.039"),
    "STOCK_07": _rates("0.140", "-0.010", "0.240", "0.100", "-0.070", "0.040"),
}

TUTORIAL_BASE_RATES = _rates("0.0175", "0.015", "0.015", "0.015", "0.0125", "0.0125")

# ==== Competition series (15 months; case k plays months k..k+11) ====
COMPETITION_STOCK_SERIES = {
    Pattern.up: {
        "STOCK_01": _rates(
            "-0.036", "0.042", "0.000", "0.159", "0.038", "0.056", "-0.034", "0.059",
            "0.007", "0.044", "0.099", "-0.013", "0.036", "0.082", "-0.096",
        ),
        "STOCK_02": _rates(
            "-0.087", "-0.079", "-0.169", "0.065", "0.100", "0.081", "0.183", "0.179",
            "-0.088", "-0.013", "0.133", "-0.004", "0.006", "-0.017", "-0.169",
        ),
        "STOCK_03": _rates(
            "0.061", "0.061", "-0.063", "-0.014", "-0.050", "0.085", "-0.030", "-0.021",
            "-0.070", "0.045", "0.015", "0.055", "0.085", "0.115", "-0.171",
        ),
        "STOCK_04": _rates(
            "0.002", "0.000", "0.048", "0.041", "0.044", "0.058", "0.074", "0.044",
            "0.053", "0.071", "-0.033", "-0.082", "-0.009", "-0.073", "-0.023",
        ),
        "STOCK_05": _rates(
            "0.181", "0.140", "0.016", "0.073", "0.245", "-0.097", "0.171", "0.157",
            "-0.058", "0.042", "0.325", "0.089", "-0.018", "0.213", "2.044",
        ),
        "STOCK_06": _rates(
            "0.017", "-0.012", "-0.037", "-0.023", "-0.180", "0.020", "-0.120", "0.065",
            "0.025", "0.085", "0.122", "-0.021", "0.105", "-0.090", "-0.247",
        ),
        "STOCK_07": _rates(
            "-0.034", "0.049", "0.044", "-0.070", "-0.010", "0.140", "-0.010", "0.240",
            "0.100", "-0.070", "0.040", "-0.060", "-0.050", "-0.120", "-0.253",
        ),
    },
    Pattern.down: {
        "STOCK_01": _rates(
            "-0.043", "0.010", "-0.035", "-0.016", "0.012", "0.034", "-0.041", "-0.036",
            "0.008", "-0.019", "0.038", "-0.033", "-0.036", "-0.074", "-0.167",
        ),
        "STOCK_02": _rates(
            "-0.125", "-0.053", "-0.204", "0.103", "0.082", "-0.035", "-0.035", "-0.005",
            "0.014", "0.036", "0.106", "-0.010", "-0.096", "0.089", "-0.204",
        ),
        "STOCK_03": _rates(
            "0.050", "-0.003", "-0.045", "0.017", "-0.096", "-0.036", "0.076", "-0.035",
            "0.006", "-0.036", "-0.084", "0.024", "-0.133", "-0.131", "-0.230",
        ),
        "STOCK_04": _rates(
            "0.075", "-0.090", "-0.005", "-0.047", "-0.011", "0.005", "-0.160", "-0.044",
            "0.019", "-0.064", "-0.029", "0.035", "-0.098", "-0.063", "0.234",
        ),
        "STOCK_05": _rates(
            "0.087", "0.007", "0.007", "-0.070", "-0.252", "-0.118", "-0.157", "-0.027",
            "-0.638", "0.460", "-0.061", "0.020", "-0.167", "-0.196", "0.106",
        ),
        "STOCK_06": _rates(
            "-0.051", "-0.007", "0.081", "-0.033", "-0.100", "-0.040", "-0.100", "-0.059",
            "0.125", "-0.009", "0.039", "0.088", "-0.020", "-0.120", "0.200",
        ),
        "STOCK_07": _rates(
            "0.166", "-0.271", "-0.064", "0.045", "-0.106", "-0.008", "-0.018", "-0.018",
            "0.137", "-0.097", "-0.111", "0.048", "-0.044", "-0.084", "-0.318",
        ),
    },
}

COMPETITION_BASE_RATES = _rates(
    "0.0175", "0.0175", "0.0175", "0.0175", "0.0175", "0.0175",
    "0.015", "0.015", "0.015",
    "0.0125", "0.0125", "0.0125", "0.0125",
    "0.0075", "0.0075", "0.0075",
)


class RateTable:
    """Per-round stock change rates keyed by (case, pattern, stock id) for one mode.

    The table is validated on construction: every case, both patterns and
    every stock must be present, each with exactly one rate per round.
    """

    def __init__(self, mode: GameMode, entries: Mapping[RateKey, Tuple[Decimal, ...]], cases: Iterable[int]):
        self.mode = GameMode(mode)
        self.rounds = max_rounds(self.mode)
        self.cases = tuple(cases)
        self._entries = dict(entries)
        self.validate()

    def validate(self) -> None:
        for case in self.cases:
            for pattern in Pattern:
                for stock_id in STOCK_NAMES:
                    rates = self._entries.get((case, pattern, stock_id))
                    if rates is None:
                        raise ValueError(
                            f"{self.mode.value} rate table is missing case={case} pattern={pattern.value} stock={stock_id}"
                        )
                    if len(rates) != self.rounds:
                        raise ValueError(
                            f"{self.mode.value} rate table has {len(rates)} rates for "
                            f"case={case} pattern={pattern.value} stock={stock_id}, expected {self.rounds}"
                        )

    def lookup(self, case: int, pattern: Pattern, stock_id: str, round_number: int) -> Optional[Decimal]:
        """Checked lookup of `rates[case][pattern][stock_id][round - 1]`.

        Returns:
            Optional[Decimal]: The change rate, or None when the key or round is out of range
        """
        rates = self._entries.get((case, Pattern(pattern), stock_id))
        if rates is None or not 1 <= round_number <= len(rates):
            return None
        return rates[round_number - 1]

    def first_entry(self, case: int, pattern: Pattern, stock_id: str) -> Decimal:
        """First rate of the series being looked up; case 1 of the same pattern when the case is unknown."""
        pattern = Pattern(pattern)
        rates = self._entries.get((case, pattern, stock_id)) or self._entries.get((self.cases[0], pattern, stock_id))
        if rates is None:
            raise ValueError(f"unknown stock id: {stock_id}")
        return rates[0]


def build_tutorial_table() -> RateTable:
    entries = {
        (1, pattern, stock_id): rates
        for stock_id, rates in TUTORIAL_STOCK_RATES.items()
        for pattern in Pattern
    }
    return RateTable(GameMode.tutorial, entries, cases=(1,))


def build_competition_table() -> RateTable:
    rounds = max_rounds(GameMode.competition)
    entries = {}
    for pattern, series_by_stock in COMPETITION_STOCK_SERIES.items():
        for stock_id, series in series_by_stock.items():
            if len(series) < rounds + CASE_COUNT - 1:
                raise ValueError(f"series for {stock_id} {pattern.value} is too short: {len(series)}")
            for case in range(1, CASE_COUNT + 1):
                entries[(case, pattern, stock_id)] = series[case - 1 : case - 1 + rounds]
    return RateTable(GameMode.competition, entries, cases=range(1, CASE_COUNT + 1))


RATE_TABLES = {
    GameMode.tutorial: build_tutorial_table(),
    GameMode.competition: build_competition_table(),
}


class MarketDataProvider:
    """Market view of one game: mode plus the case/pattern chosen at game start."""

    def __init__(
        self,
        mode: GameMode,
        stock_patterns: Optional[Mapping[str, Pattern]] = None,
        stock_case: int = 1,
        base_rate_case: int = 1,
    ):
        self.mode = GameMode(mode)
        self.table = RATE_TABLES[self.mode]
        self.stock_patterns = {
            stock_id: Pattern((stock_patterns or {}).get(stock_id, Pattern.up)) for stock_id in STOCK_NAMES
        }
        self.stock_case = stock_case if self.mode == GameMode.competition else 1
        self.base_rate_case = base_rate_case if self.mode == GameMode.competition else 1

    # ==== Stocks ====
    def stock_change_rate(self, stock_id: str, round_number: int) -> Decimal:
        pattern = self.stock_patterns.get(stock_id, Pattern.up)
        rate = self.table.lookup(self.stock_case, pattern, stock_id, round_number)
        if rate is None:
            fallback = self.table.first_entry(self.stock_case, pattern, stock_id)
            logging.warning(
                f"Change rate not found: stock={stock_id} mode={self.mode.value} case={self.stock_case} "
                f"pattern={pattern.value} round={round_number}, using {fallback}"
            )
            return fallback
        return rate

    def stock_price(self, stock_id: str, round_number: int) -> int:
        """Replay the change rates of rounds 1..round_number on the base price.

        Args:
            stock_id (str): e.g. "STOCK_01"
            round_number (int): Round whose closing price is requested; 0 gives the base price

        Returns:
            int: Price rounded half-up after every round
        """
        if stock_id not in STOCK_BASE_PRICES:
            raise ValueError(f"unknown stock id: {stock_id}")
        price = STOCK_BASE_PRICES[stock_id]
        for r in range(1, round_number + 1):
            price = to_money(Decimal(price) * (1 + self.stock_change_rate(stock_id, r)))
        return price

    def stock_change_rates(self, round_number: int) -> Dict[str, Decimal]:
        return {stock_id: self.stock_change_rate(stock_id, round_number) for stock_id in STOCK_NAMES}

    # ==== Funds ====
    def fund_change_rate(self, fund_id: str, round_number: int) -> Decimal:
        """Weighted sum of the constituents' change rates for the round."""
        composition = FUND_COMPOSITIONS.get(fund_id)
        if composition is None:
            raise ValueError(f"unknown fund id: {fund_id}")
        return sum(
            (weight * self.stock_change_rate(stock_id, round_number) for stock_id, weight in composition.items()),
            Decimal("0"),
        )

    def fund_nav(self, fund_id: str, round_number: int) -> int:
        nav = NAV_START
        for r in range(1, round_number + 1):
            nav = to_money(Decimal(nav) * (1 + self.fund_change_rate(fund_id, r)))
        return nav

    def fund_change_rates(self, round_number: int) -> Dict[str, Decimal]:
        return {fund_id: self.fund_change_rate(fund_id, round_number) for fund_id in FUND_NAMES}

    # ==== Base rate ====
    def base_rate(self, round_number: int) -> Decimal:
        if self.mode == GameMode.tutorial:
            rates = TUTORIAL_BASE_RATES
            index = round_number - 1
        else:
            rates = COMPETITION_BASE_RATES
            index = self.base_rate_case - 1 + (round_number - 1)
        if not 0 <= index < len(rates):
            clamped = min(max(index, 0), len(rates) - 1)
            logging.warning(
                f"Base rate index out of range: mode={self.mode.value} case={self.base_rate_case} "
                f"round={round_number} index={index}, clamped to {clamped}"
            )
            index = clamped
        return rates[index]

    def base_rate_change(self, round_number: int) -> Decimal:
        if round_number <= 1:
            return Decimal("0")
        return self.base_rate(round_number) - self.base_rate(round_number - 1)

    # ==== Dividends ====
    def stock_dividend_rate(self, stock_id: str, round_number: int) -> Decimal:
        """Per-period (quarterly) dividend rate, zero outside dividend rounds."""
        if round_number not in STOCK_DIVIDEND_ROUNDS:
            return Decimal("0")
        return STOCK_DIVIDEND_YIELDS.get(stock_id, Decimal("0")) / 4

    def fund_dividend_rate(self, fund_id: str, round_number: int) -> Decimal:
        if round_number not in FUND_DIVIDEND_ROUNDS or fund_id not in FUND_COMPOSITIONS:
            return Decimal("0")
        return FUND_DIVIDEND_YIELD / 2
