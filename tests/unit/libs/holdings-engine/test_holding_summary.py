# tests/unit/libs/holdings-engine/test_holding_summary.py
from datetime import datetime, timezone
from decimal import Decimal

from holdings_engine.holding_summary import CurrencyCostSummary, summarize_cost_basis
from holdings_engine.transaction_domain.models import Position


def _position(instrument_code: str, currency: str, quantity: int, total_cost: str) -> Position:
    cost = Decimal(total_cost)
    return Position(
        account_id="ACC-1",
        instrument_code=instrument_code,
        instrument_name=instrument_code,
        quantity=quantity,
        average_cost=cost / quantity,
        total_cost=cost,
        currency=currency,
        last_effective_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_totals_are_kept_per_currency():
    """
    GIVEN positions held in two currencies
    WHEN the cost basis is summarized
    THEN each currency is totalled on its own and amounts are rounded for display.
    """
    # ARRANGE
    positions = [
        _position("AAPL", "USD", 10, "1000.123456"),
        _position("MSFT", "USD", 5, "2000"),
        _position("005930", "KRW", 100, "7000000"),
    ]

    # ACT
    summary = summarize_cost_basis(positions)

    # ASSERT
    assert list(summary) == ["KRW", "USD"]
    assert summary["USD"] == CurrencyCostSummary(
        currency="USD", holdings_count=2, total_quantity=15, total_cost=Decimal("3000.1235")
    )
    assert summary["KRW"].total_cost == Decimal("7000000")


def test_empty_input_gives_empty_summary():
    assert summarize_cost_basis([]) == {}
