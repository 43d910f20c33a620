from decimal import Decimal

import pytest

from finsim.domain.game_rules import FUND_NAMES, NAV_START, STOCK_NAMES, GameMode, Pattern, to_money
from finsim.domain.market_data import (
    COMPETITION_BASE_RATES,
    COMPETITION_STOCK_SERIES,
    FUND_COMPOSITIONS,
    RATE_TABLES,
    TUTORIAL_STOCK_RATES,
    MarketDataProvider,
    RateTable,
)


def test_tutorial_stock_price_replays_rounding_each_round():
    market = MarketDataProvider(GameMode.tutorial)
    assert market.stock_price("STOCK_01", 0) == 50_000
    assert market.stock_price("STOCK_01", 1) == 52_800
    # 52,800 x 0.966 = 51,004.8
    assert market.stock_price("STOCK_01", 2) == 51_005


def test_unknown_stock_price_raises():
    with pytest.raises(ValueError):
        MarketDataProvider(GameMode.tutorial).stock_price("STOCK_99", 1)


def test_fund_nav_matches_raw_tables():
    market = MarketDataProvider(GameMode.tutorial)
    for fund_id in FUND_NAMES:
        nav = NAV_START
        for round_number in range(1, 7):
            rate = sum(
                weight * TUTORIAL_STOCK_RATES[stock_id][round_number - 1]
                for stock_id, weight in FUND_COMPOSITIONS[fund_id].items()
            )
            nav = to_money(Decimal(nav) * (1 + rate))
            assert market.fund_nav(fund_id, round_number) == nav


def test_fund_01_first_round_change_rate():
    market = MarketDataProvider(GameMode.tutorial)
    # 0.3 x 0.056 + 0.3 x 0.081 + 0.4 x 0.140
    assert market.fund_change_rate("FUND_01", 1) == Decimal("0.0971")
    assert market.fund_nav("FUND_01", 1) == 10_971


def test_competition_case_selects_series_window():
    patterns = {stock_id: Pattern.down for stock_id in STOCK_NAMES}
    market = MarketDataProvider(GameMode.competition, stock_patterns=patterns, stock_case=3)
    series = COMPETITION_STOCK_SERIES[Pattern.down]["STOCK_02"]
    assert market.stock_change_rate("STOCK_02", 1) == series[2]
    assert market.stock_change_rate("STOCK_02", 12) == series[13]


def test_missing_round_falls_back_to_first_entry(caplog):
    market = MarketDataProvider(GameMode.tutorial)
    assert market.stock_change_rate("STOCK_03", 7) == TUTORIAL_STOCK_RATES["STOCK_03"][0]
    assert "Change rate not found" in caplog.text


def test_fallback_keeps_session_case_and_pattern(caplog):
    patterns = {stock_id: Pattern.down for stock_id in STOCK_NAMES}
    market = MarketDataProvider(GameMode.competition, stock_patterns=patterns, stock_case=2)
    series = COMPETITION_STOCK_SERIES[Pattern.down]["STOCK_02"]
    assert market.stock_change_rate("STOCK_02", 13) == series[1]
    assert "Change rate not found" in caplog.text


def test_fallback_for_unknown_case_uses_case_one_of_same_pattern():
    patterns = {stock_id: Pattern.down for stock_id in STOCK_NAMES}
    market = MarketDataProvider(GameMode.competition, stock_patterns=patterns, stock_case=99)
    assert market.stock_change_rate("STOCK_02", 1) == COMPETITION_STOCK_SERIES[Pattern.down]["STOCK_02"][0]


def test_base_rate_by_case_and_clamp():
    market = MarketDataProvider(GameMode.competition, base_rate_case=2)
    assert market.base_rate(1) == COMPETITION_BASE_RATES[1]
    assert market.base_rate(12) == COMPETITION_BASE_RATES[12]
    assert market.base_rate(40) == COMPETITION_BASE_RATES[-1]


def test_base_rate_change_is_zero_in_first_round():
    market = MarketDataProvider(GameMode.tutorial)
    assert market.base_rate_change(1) == Decimal("0")
    assert market.base_rate_change(2) == Decimal("0.015") - Decimal("0.0175")


def test_dividend_rates_only_on_payment_rounds():
    market = MarketDataProvider(GameMode.competition)
    assert market.stock_dividend_rate("STOCK_02", 3) == Decimal("0.01")
    assert market.stock_dividend_rate("STOCK_02", 4) == Decimal("0")
    assert market.fund_dividend_rate("FUND_01", 6) == Decimal("0.01")
    assert market.fund_dividend_rate("FUND_01", 3) == Decimal("0")


def test_rate_table_rejects_wrong_length():
    entries = {
        (1, pattern, stock_id): (Decimal("0.01"),) * 5 for stock_id in STOCK_NAMES for pattern in Pattern
    }
    with pytest.raises(ValueError):
        RateTable(GameMode.tutorial, entries, cases=(1,))


def test_rate_table_rejects_missing_stock():
    entries = {
        (1, pattern, stock_id): (Decimal("0.01"),) * 6
        for stock_id in list(STOCK_NAMES)[1:]
        for pattern in Pattern
    }
    with pytest.raises(ValueError):
        RateTable(GameMode.tutorial, entries, cases=(1,))


def test_registered_tables_cover_every_case():
    assert RATE_TABLES[GameMode.tutorial].cases == (1,)
    assert RATE_TABLES[GameMode.competition].cases == (1, 2, 3, 4)
