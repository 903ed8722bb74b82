# src/libs/holdings-engine/holdings_engine/transaction_domain/validation.py
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from ..exceptions import TransactionValidationError
from .models import Transaction, TransactionPatch, TransactionType
from .reason_codes import TransactionValidationReasonCode

logger = logging.getLogger(__name__)

# Instrument placeholders for kinds that do not reference a security.
NON_TRADE_DEFAULTS: dict[TransactionType, tuple[str, str]] = {
    TransactionType.DIVIDEND: ("DIVIDEND", "Dividend"),
    TransactionType.DEPOSIT: ("CASH", "Deposit"),
    TransactionType.WITHDRAWAL: ("CASH", "Withdrawal"),
}

REQUIRED_FIELDS = ("account_id", "transaction_type", "effective_at", "total_amount", "currency")
TRADE_REQUIRED_FIELDS = ("instrument_code", "instrument_name", "price")


@dataclass(frozen=True)
class TransactionValidationIssue:
    code: TransactionValidationReasonCode
    field: str
    message: str


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class TransactionParser:
    """
    Turns raw transaction payloads into validated Transaction objects.
    Every problem found is collected and raised at once as a
    TransactionValidationError; nothing invalid ever reaches the ledger.
    """
    def __init__(self):
        self._adapter = TypeAdapter(Transaction)

    def parse(self, raw: Mapping[str, Any]) -> Transaction:
        data = dict(raw)
        issues: list[TransactionValidationIssue] = []
        if _is_blank(data.get("fee")):
            data["fee"] = 0

        for field in REQUIRED_FIELDS:
            if _is_blank(data.get(field)):
                issues.append(TransactionValidationIssue(
                    code=TransactionValidationReasonCode.MISSING_REQUIRED_FIELD,
                    field=field,
                    message=f"{field} is required.",
                ))

        txn_type = self._coerce_type(data.get("transaction_type"), issues)
        if txn_type is not None:
            data["transaction_type"] = txn_type
            if txn_type.is_trade:
                issues.extend(self._check_trade_fields(data))
            else:
                self._apply_non_trade_defaults(txn_type, data)

        if issues:
            logger.info(
                "Rejected transaction payload.",
                extra={"transaction_id": data.get("transaction_id"), "issues": [i.code.value for i in issues]}
            )
            raise TransactionValidationError(issues)

        try:
            return self._adapter.validate_python(data)
        except ValidationError as e:
            raise TransactionValidationError([
                TransactionValidationIssue(
                    code=TransactionValidationReasonCode.INVALID_FIELD_VALUE,
                    field=str(err.get('loc', ['unknown'])[0]),
                    message=err['msg'],
                )
                for err in e.errors()
            ]) from e

    def apply_patch(self, existing: Transaction, patch: TransactionPatch | Mapping[str, Any]) -> Transaction:
        """
        Applies the explicitly set fields of a patch on top of an existing
        transaction and re-validates the result. The identifier and the audit
        timestamp are preserved.
        """
        if isinstance(patch, Mapping):
            if "transaction_id" in patch or "created_at" in patch:
                field = "transaction_id" if "transaction_id" in patch else "created_at"
                raise TransactionValidationError([
                    TransactionValidationIssue(
                        code=TransactionValidationReasonCode.IMMUTABLE_FIELD,
                        field=field,
                        message=f"{field} cannot be edited.",
                    )
                ])
            try:
                patch = TransactionPatch.model_validate(patch)
            except ValidationError as e:
                raise TransactionValidationError([
                    TransactionValidationIssue(
                        code=TransactionValidationReasonCode.INVALID_FIELD_VALUE,
                        field=str(err.get('loc', ['unknown'])[0]),
                        message=err['msg'],
                    )
                    for err in e.errors()
                ]) from e

        merged = existing.model_dump()
        merged.update(patch.model_dump(exclude_unset=True))
        merged["transaction_id"] = existing.transaction_id
        merged["created_at"] = existing.created_at
        return self.parse(merged)

    def parse_type(self, value: Any) -> TransactionType:
        """Coerces a caller-supplied transaction kind, case-insensitively."""
        issues: list[TransactionValidationIssue] = []
        txn_type = self._coerce_type(value, issues)
        if txn_type is None:
            raise TransactionValidationError(issues or [
                TransactionValidationIssue(
                    code=TransactionValidationReasonCode.INVALID_TRANSACTION_TYPE,
                    field="transaction_type",
                    message="transaction_type is required.",
                )
            ])
        return txn_type

    @staticmethod
    def _coerce_type(value: Any, issues: list[TransactionValidationIssue]) -> Optional[TransactionType]:
        if _is_blank(value):
            return None
        if isinstance(value, TransactionType):
            return value
        try:
            return TransactionType(str(value).strip().upper())
        except ValueError:
            issues.append(TransactionValidationIssue(
                code=TransactionValidationReasonCode.INVALID_TRANSACTION_TYPE,
                field="transaction_type",
                message=f"Unknown transaction type '{value}'.",
            ))
            return None

    @staticmethod
    def _check_trade_fields(data: dict[str, Any]) -> list[TransactionValidationIssue]:
        issues: list[TransactionValidationIssue] = []
        for field in TRADE_REQUIRED_FIELDS:
            if _is_blank(data.get(field)):
                code = (
                    TransactionValidationReasonCode.MISSING_PRICE
                    if field == "price"
                    else TransactionValidationReasonCode.MISSING_INSTRUMENT
                )
                issues.append(TransactionValidationIssue(
                    code=code,
                    field=field,
                    message=f"{field} is required for BUY and SELL transactions.",
                ))

        quantity = data.get("quantity")
        try:
            as_decimal = Decimal(str(quantity))
            positive = as_decimal > 0 and as_decimal == as_decimal.to_integral_value()
        except (InvalidOperation, TypeError, ValueError):
            positive = False
        if not positive:
            issues.append(TransactionValidationIssue(
                code=TransactionValidationReasonCode.NON_POSITIVE_QUANTITY,
                field="quantity",
                message="quantity must be a positive whole number for BUY and SELL transactions.",
            ))
        return issues

    @staticmethod
    def _apply_non_trade_defaults(txn_type: TransactionType, data: dict[str, Any]) -> None:
        default_code, default_name = NON_TRADE_DEFAULTS[txn_type]
        if txn_type is TransactionType.DIVIDEND:
            # A dividend may name the instrument that paid it.
            data["instrument_code"] = data.get("instrument_code") or default_code
            data["instrument_name"] = data.get("instrument_name") or default_name
        else:
            data["instrument_code"] = default_code
            data["instrument_name"] = default_name
        data["quantity"] = 1
        data["price"] = data.get("total_amount")
