# src/libs/holdings-engine/holdings_engine/transaction_domain/reason_codes.py
from enum import Enum


class TransactionValidationReasonCode(str, Enum):
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_TRANSACTION_TYPE = "INVALID_TRANSACTION_TYPE"
    MISSING_INSTRUMENT = "MISSING_INSTRUMENT"
    NON_POSITIVE_QUANTITY = "NON_POSITIVE_QUANTITY"
    MISSING_PRICE = "MISSING_PRICE"
    INVALID_FIELD_VALUE = "INVALID_FIELD_VALUE"
    IMMUTABLE_FIELD = "IMMUTABLE_FIELD"
