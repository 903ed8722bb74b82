# tests/unit/libs/holdings-engine/test_position_calculator.py
import itertools
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from holdings_engine.logic.position_calculator import BuyStrategy, OversellAnomaly, PositionCalculator
from holdings_engine.transaction_domain.models import TransactionType


@pytest.fixture
def calculator() -> PositionCalculator:
    return PositionCalculator()


def test_no_transactions_yields_no_position(calculator: PositionCalculator):
    result = calculator.calculate("ACC-1", "AAPL", [])

    assert result.is_flat
    assert result.anomalies == ()


def test_partial_sell_preserves_average_cost(calculator, make_transaction):
    """
    GIVEN a BUY of 100 units for 1000 followed by a SELL of 40 units
    WHEN the position is calculated
    THEN 60 units remain at the original average cost of 10.
    """
    # ARRANGE
    history = [
        make_transaction("BUY", quantity=100, total_amount="1000"),
        make_transaction("SELL", quantity=40, total_amount="480"),
    ]

    # ACT
    result = calculator.calculate("ACC-1", "AAPL", history)

    # ASSERT
    position = result.position
    assert position.quantity == 60
    assert position.average_cost == Decimal("10")
    assert position.total_cost == Decimal("600")
    assert result.anomalies == ()


def test_multiple_buys_use_weighted_average(calculator, make_transaction):
    history = [
        make_transaction("BUY", quantity=10, total_amount="1000"),
        make_transaction("BUY", quantity=10, total_amount="2000"),
    ]

    position = calculator.calculate("ACC-1", "AAPL", history).position

    assert position.quantity == 20
    assert position.average_cost == Decimal("150")
    assert position.total_cost == Decimal("3000")


def test_full_liquidation_yields_no_position(calculator, make_transaction):
    history = [
        make_transaction("BUY", quantity=10, total_amount="1000"),
        make_transaction("SELL", quantity=10, total_amount="1200"),
    ]

    result = calculator.calculate("ACC-1", "AAPL", history)

    assert result.position is None
    assert result.anomalies == ()


def test_sell_proceeds_do_not_affect_cost_basis(calculator, make_transaction):
    """A SELL for a large gain leaves the remaining cost at the pro-rata purchase cost."""
    history = [
        make_transaction("BUY", quantity=4, total_amount="100"),
        make_transaction("SELL", quantity=1, total_amount="999999"),
    ]

    position = calculator.calculate("ACC-1", "AAPL", history).position

    assert position.quantity == 3
    assert position.total_cost == Decimal("75")
    assert position.average_cost == Decimal("25")


def test_oversell_clamps_to_zero_and_reports_anomaly(calculator, make_transaction):
    """
    GIVEN a SELL larger than the quantity held, followed by a new BUY
    WHEN the position is calculated
    THEN the oversell clamps the position to zero and is reported,
    and the later BUY starts a fresh cost basis.
    """
    # ARRANGE
    buy = make_transaction("BUY", quantity=10, total_amount="1000")
    oversell = make_transaction("SELL", quantity=15, total_amount="1500")
    rebuy = make_transaction("BUY", quantity=5, total_amount="600")

    # ACT
    result = calculator.calculate("ACC-1", "AAPL", [buy, oversell, rebuy])

    # ASSERT
    assert result.anomalies == (
        OversellAnomaly(transaction_id=oversell.transaction_id, requested_quantity=15, available_quantity=10),
    )
    assert result.position.quantity == 5
    assert result.position.total_cost == Decimal("600")
    assert result.position.average_cost == Decimal("120")


def test_sell_with_nothing_held_is_an_anomaly(calculator, make_transaction):
    sell = make_transaction("SELL", quantity=3, total_amount="300")

    result = calculator.calculate("ACC-1", "AAPL", [sell])

    assert result.is_flat
    assert result.anomalies[0].available_quantity == 0


def test_history_is_replayed_by_effective_date_not_input_order(calculator, make_transaction):
    buy = make_transaction("BUY", quantity=10, total_amount="1000")
    sell = make_transaction("SELL", quantity=5, total_amount="500")

    result = calculator.calculate("ACC-1", "AAPL", [sell, buy])

    assert result.position.quantity == 5
    assert result.anomalies == ()


def test_same_timestamp_result_is_independent_of_input_order(calculator, make_transaction):
    """
    GIVEN a SELL and a BUY sharing the same effective date
    WHEN the history is calculated in every input order
    THEN the result is identical, ordered by transaction id.
    """
    # ARRANGE
    same_time = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)
    history = [
        make_transaction("SELL", quantity=5, total_amount="500", transaction_id="A", effective_at=same_time),
        make_transaction("BUY", quantity=10, total_amount="1000", transaction_id="B", effective_at=same_time),
        make_transaction("BUY", quantity=2, total_amount="300", transaction_id="C", effective_at=same_time),
    ]

    # ACT
    results = [
        calculator.calculate("ACC-1", "AAPL", list(order))
        for order in itertools.permutations(history)
    ]

    # ASSERT
    result = results[0]
    assert all(r == result for r in results)
    # "A" sells before anything is held, so it clamps; B and C build the position.
    assert [a.transaction_id for a in result.anomalies] == ["A"]
    assert result.position.quantity == 12
    assert result.position.total_cost == Decimal("1300")


def test_non_trade_kinds_have_no_effect(calculator, make_transaction):
    history = [
        make_transaction("BUY", quantity=10, total_amount="1000"),
        make_transaction("DIVIDEND", quantity=1, total_amount="50"),
        make_transaction("DEPOSIT", quantity=1, total_amount="5000"),
        make_transaction("WITHDRAWAL", quantity=1, total_amount="200"),
    ]

    position = calculator.calculate("ACC-1", "AAPL", history).position

    assert position.quantity == 10
    assert position.total_cost == Decimal("1000")


def test_name_and_currency_come_from_last_trade(calculator, make_transaction):
    history = [
        make_transaction("BUY", quantity=10, total_amount="1000", instrument_name="Apple"),
        make_transaction("BUY", quantity=10, total_amount="1000", instrument_name="Apple Inc."),
    ]

    position = calculator.calculate("ACC-1", "AAPL", history).position

    assert position.instrument_name == "Apple Inc."
    assert position.currency == "USD"
    assert position.last_effective_at == history[1].effective_at


def test_history_from_another_key_is_rejected(calculator, make_transaction):
    foreign = make_transaction("BUY", account_id="ACC-2")

    with pytest.raises(ValueError, match="do not belong"):
        calculator.calculate("ACC-1", "AAPL", [foreign])


def test_every_transaction_type_has_a_strategy(calculator):
    assert set(calculator._strategies) == set(TransactionType)


def test_missing_strategy_fails_construction():
    """
    GIVEN a strategy table that lacks some transaction types
    WHEN the calculator is constructed
    THEN construction fails instead of silently ignoring those types.
    """
    with pytest.raises(TypeError, match="SELL"):
        PositionCalculator(strategies={TransactionType.BUY: BuyStrategy()})
