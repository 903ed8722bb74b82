"""Transaction domain contracts, parsing and validation."""

from .models import (
    TRADE_TYPES,
    Position,
    Transaction,
    TransactionPatch,
    TransactionType,
)
from .reason_codes import TransactionValidationReasonCode
from .validation import (
    NON_TRADE_DEFAULTS,
    TransactionParser,
    TransactionValidationIssue,
)

__all__ = [
    "TRADE_TYPES",
    "NON_TRADE_DEFAULTS",
    "Position",
    "Transaction",
    "TransactionPatch",
    "TransactionType",
    "TransactionParser",
    "TransactionValidationIssue",
    "TransactionValidationReasonCode",
]
