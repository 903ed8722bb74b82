# src/libs/holdings-engine/holdings_engine/logic/sorter.py
from typing import Iterable

from ..transaction_domain.models import Transaction


class TransactionSorter:
    """
    Responsible for ordering transactions according to processing rules.
    """
    def sort_transactions(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        """
        Sorting Rules:
        1. Primary sort: effective_at ascending.
        2. Secondary sort: transaction_id ascending, so that transactions sharing
           a timestamp always replay in the same order.
        Creation time never takes part in the ordering.
        """
        return sorted(transactions, key=lambda txn: (txn.effective_at, txn.transaction_id))
