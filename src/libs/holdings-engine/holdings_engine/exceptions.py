# src/libs/holdings-engine/holdings_engine/exceptions.py
from typing import Iterable, Optional


class HoldingsEngineError(Exception):
    """Base class for every error raised by the holdings engine."""
    retryable: bool = False


class TransactionValidationError(HoldingsEngineError):
    """
    Raised when a transaction payload is malformed or misses required fields.
    It is always raised before anything is written to the ledger.
    """
    def __init__(self, issues: Iterable) -> None:
        self.issues = list(issues)
        message = "; ".join(f"{i.code}: {i.field}" for i in self.issues)
        super().__init__(message or "Transaction validation failed")


class TransactionNotFoundError(HoldingsEngineError):
    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction '{transaction_id}' does not exist.")


class OversellError(HoldingsEngineError):
    """
    Raised under the 'reject' oversell policy when a mutation would make a
    SELL exceed the quantity held at that point of the history.
    """
    def __init__(self, account_id: str, instrument_code: str, anomalies: list) -> None:
        self.account_id = account_id
        self.instrument_code = instrument_code
        self.anomalies = list(anomalies)
        details = ", ".join(
            f"{a.transaction_id} sells {a.requested_quantity} of {a.available_quantity}"
            for a in self.anomalies
        )
        super().__init__(
            f"Sell quantity exceeds holdings for ({account_id}, {instrument_code}): {details}"
        )


class ConcurrencyError(HoldingsEngineError):
    """
    Raised when a reconciliation scope could not be acquired within the bounded
    wait. Callers are expected to retry a bounded number of times.
    """
    retryable = True

    def __init__(self, scope: str, timeout: float) -> None:
        self.scope = scope
        self.timeout = timeout
        super().__init__(f"Could not acquire lock scope '{scope}' within {timeout}s.")


class ConsistencyError(HoldingsEngineError):
    """
    Raised when the ledger mutation succeeded but the projection write that
    follows it failed. The projection is stale for the given key until a
    targeted reconcile or rebuild runs.
    """
    retryable = True

    def __init__(
        self,
        account_id: str,
        instrument_code: str,
        transaction_id: Optional[str],
        reason: str,
    ) -> None:
        self.account_id = account_id
        self.instrument_code = instrument_code
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(
            f"Projection for ({account_id}, {instrument_code}) is stale after "
            f"transaction '{transaction_id}': {reason}"
        )


class DuplicateTransactionError(HoldingsEngineError):
    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction '{transaction_id}' already exists.")
