# tests/unit/libs/holdings-engine/test_transaction_sorter.py
from datetime import datetime, timedelta, timezone

from holdings_engine.logic.sorter import TransactionSorter


def test_sorts_by_effective_date_then_transaction_id(make_transaction):
    """
    GIVEN transactions recorded out of order, two of them sharing a timestamp
    WHEN they are sorted
    THEN they replay by effective date, with the id breaking the tie.
    """
    # ARRANGE
    noon = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    late = make_transaction(transaction_id="Z", effective_at=noon + timedelta(days=1))
    tie_b = make_transaction(transaction_id="B", effective_at=noon)
    tie_a = make_transaction(transaction_id="A", effective_at=noon)

    # ACT
    ordered = TransactionSorter().sort_transactions([late, tie_b, tie_a])

    # ASSERT
    assert [t.transaction_id for t in ordered] == ["A", "B", "Z"]


def test_creation_time_is_ignored(make_transaction):
    effective = datetime(2024, 3, 1, tzinfo=timezone.utc)
    recorded_first = make_transaction(
        transaction_id="B", effective_at=effective, created_at=datetime(2020, 1, 1, tzinfo=timezone.utc)
    )
    recorded_later = make_transaction(
        transaction_id="A", effective_at=effective, created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)
    )

    ordered = TransactionSorter().sort_transactions([recorded_first, recorded_later])

    assert [t.transaction_id for t in ordered] == ["A", "B"]


def test_mixed_timezones_are_compared_in_utc(make_transaction):
    # 09:00 in New York (UTC-5 in January) is later than 12:00 UTC.
    new_york = make_transaction(transaction_id="A", effective_at="2024-01-15T09:00:00-05:00")
    utc = make_transaction(transaction_id="B", effective_at="2024-01-15T12:00:00Z")

    ordered = TransactionSorter().sort_transactions([new_york, utc])

    assert [t.transaction_id for t in ordered] == ["B", "A"]
    assert new_york.effective_at.tzinfo == timezone.utc
