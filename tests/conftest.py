# tests/conftest.py
import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

import pytest

from holdings_engine.transaction_domain.models import Transaction, TransactionType

BASE_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """
    Builds validated Transaction objects. Ids are sequential (T0001, T0002, ...)
    and, unless given, each transaction takes effect one day after the previous one.
    """
    counter = itertools.count(1)

    def _make(
        transaction_type: str = "BUY",
        quantity: int = 10,
        total_amount: Any = "1000",
        account_id: str = "ACC-1",
        instrument_code: str = "AAPL",
        **overrides: Any,
    ) -> Transaction:
        n = next(counter)
        amount = Decimal(str(total_amount))
        data = {
            "transaction_id": f"T{n:04d}",
            "account_id": account_id,
            "instrument_code": instrument_code,
            "instrument_name": f"{instrument_code} Inc.",
            "transaction_type": TransactionType(transaction_type),
            "quantity": quantity,
            "price": amount / quantity if quantity else amount,
            "total_amount": amount,
            "currency": "USD",
            "effective_at": BASE_DATE + timedelta(days=n),
        }
        data.update(overrides)
        return Transaction(**data)

    return _make


@pytest.fixture
def trade_payload() -> Callable[..., dict]:
    """Builds raw BUY/SELL payloads the way a caller would submit them."""
    def _payload(
        transaction_type: str,
        quantity: int,
        total_amount: Any,
        day: int = 1,
        account_id: str = "ACC-1",
        instrument_code: str = "AAPL",
        **overrides: Any,
    ) -> dict:
        amount = Decimal(str(total_amount))
        payload = {
            "account_id": account_id,
            "instrument_code": instrument_code,
            "instrument_name": f"{instrument_code} Inc.",
            "transaction_type": transaction_type,
            "quantity": quantity,
            "price": str(amount / quantity),
            "total_amount": str(amount),
            "currency": "USD",
            "effective_at": f"2024-01-{day:02d}T00:00:00Z",
        }
        payload.update(overrides)
        return payload

    return _payload
