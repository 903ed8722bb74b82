# src/libs/holdings-engine/holdings_engine/transaction_domain/models.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal, conint, field_validator


class TransactionType(str, Enum):
    """The closed set of transaction kinds the ledger accepts."""

    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"

    @property
    def is_trade(self) -> bool:
        """BUY and SELL are the only kinds that move a position."""
        return self in (TransactionType.BUY, TransactionType.SELL)


TRADE_TYPES = frozenset({TransactionType.BUY, TransactionType.SELL})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(v: Any) -> Any:
    if v is None:
        return v
    if isinstance(v, str):
        # Handle ISO format strings with or without 'Z'
        if v.endswith('Z'):
            v = v[:-1] + '+00:00'
        v = datetime.fromisoformat(v)
    if isinstance(v, datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
    return v


class Transaction(BaseModel):
    """
    A single ledger entry. `effective_at` is the only ordering key;
    `created_at` is kept for auditing.
    """
    transaction_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Stable unique identifier")
    account_id: str = Field(..., min_length=1, description="Owning account")
    instrument_code: str = Field(..., min_length=1, description="Instrument identifier, e.g. a ticker")
    instrument_name: str = Field(..., description="Instrument display name")
    transaction_type: TransactionType
    quantity: conint(ge=0) = Field(..., description="Units traded; fixed at 1 for non-trade kinds")
    price: condecimal(ge=0) = Field(..., description="Unit price")
    total_amount: condecimal(ge=0) = Field(..., description="Authoritative amount used for cost basis")
    fee: condecimal(ge=0) = Field(default=Decimal(0), description="Informational fee")
    currency: str = Field(..., min_length=1, max_length=10)
    effective_at: datetime = Field(..., description="When the transaction took effect")
    created_at: datetime = Field(default_factory=_utcnow, description="Audit timestamp, never used for ordering")

    @field_validator('effective_at', 'created_at', mode='before')
    @classmethod
    def standardize_datetimes(cls, v: Any) -> Any:
        """Ensure all datetimes are timezone-aware and expressed in UTC."""
        return _as_utc(v)

    @field_validator('currency', mode='after')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def position_key(self) -> tuple[str, str]:
        return (self.account_id, self.instrument_code)

    @property
    def is_trade(self) -> bool:
        return self.transaction_type.is_trade

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=False,
        extra='ignore'
    )


class TransactionPatch(BaseModel):
    """Partial update of a transaction; only explicitly set fields are applied."""
    account_id: Optional[str] = None
    instrument_code: Optional[str] = None
    instrument_name: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    currency: Optional[str] = None
    effective_at: Optional[datetime] = None

    model_config = ConfigDict(extra='forbid')


class Position(BaseModel):
    """
    The derived holding of one instrument in one account. A Position always has
    a positive quantity; a fully liquidated pair has no Position at all.
    """
    account_id: str
    instrument_code: str
    instrument_name: str
    quantity: int = Field(..., gt=0)
    average_cost: Decimal = Field(..., ge=0)
    total_cost: Decimal = Field(..., ge=0)
    currency: str
    last_effective_at: datetime

    @field_validator('last_effective_at', mode='before')
    @classmethod
    def standardize_datetimes(cls, v: Any) -> Any:
        return _as_utc(v)

    @property
    def position_key(self) -> tuple[str, str]:
        return (self.account_id, self.instrument_code)

    model_config = ConfigDict(from_attributes=True)
