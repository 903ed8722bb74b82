# src/libs/holdings-engine/holdings_engine/holding_summary.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .transaction_domain.models import Position
from .utils import quantize_amount


@dataclass(frozen=True)
class CurrencyCostSummary:
    currency: str
    holdings_count: int
    total_quantity: int
    total_cost: Decimal


def summarize_cost_basis(positions: Iterable[Position]) -> dict[str, CurrencyCostSummary]:
    """
    Totals the invested cost of open positions per currency.
    Amounts in different currencies are never added together.
    """
    counts: dict[str, int] = {}
    quantities: dict[str, int] = {}
    costs: dict[str, Decimal] = {}
    for position in positions:
        currency = position.currency
        counts[currency] = counts.get(currency, 0) + 1
        quantities[currency] = quantities.get(currency, 0) + position.quantity
        costs[currency] = costs.get(currency, Decimal(0)) + position.total_cost

    return {
        currency: CurrencyCostSummary(
            currency=currency,
            holdings_count=counts[currency],
            total_quantity=quantities[currency],
            total_cost=quantize_amount(costs[currency]),
        )
        for currency in sorted(counts)
    }
