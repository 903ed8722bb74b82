# src/libs/holdings-engine/holdings_engine/in_memory_stores.py
"""
Process-local implementations of the ledger and projection contracts.

Every value is copied on the way in and on the way out, so callers can never
mutate stored state by holding on to a returned object, and the two stores
never share mutable state with each other or with an SQL backend.
"""
import asyncio
import logging
from typing import Iterable, Optional

from .exceptions import DuplicateTransactionError, TransactionNotFoundError
from .stores import PositionKey
from .transaction_domain.models import TRADE_TYPES, Position, Transaction, TransactionType

logger = logging.getLogger(__name__)


class InMemoryLedgerStore:
    def __init__(self, io_delay: float = 0.0):
        self._transactions: dict[str, Transaction] = {}
        self._io_delay = io_delay

    async def create(self, transaction: Transaction) -> Transaction:
        await asyncio.sleep(self._io_delay)
        if transaction.transaction_id in self._transactions:
            raise DuplicateTransactionError(transaction.transaction_id)
        self._transactions[transaction.transaction_id] = transaction.model_copy(deep=True)
        return transaction.model_copy(deep=True)

    async def update(self, transaction: Transaction) -> Transaction:
        await asyncio.sleep(self._io_delay)
        if transaction.transaction_id not in self._transactions:
            raise TransactionNotFoundError(transaction.transaction_id)
        self._transactions[transaction.transaction_id] = transaction.model_copy(deep=True)
        return transaction.model_copy(deep=True)

    async def delete(self, transaction_id: str) -> bool:
        await asyncio.sleep(self._io_delay)
        return self._transactions.pop(transaction_id, None) is not None

    async def get(self, transaction_id: str) -> Optional[Transaction]:
        await asyncio.sleep(self._io_delay)
        stored = self._transactions.get(transaction_id)
        return stored.model_copy(deep=True) if stored else None

    async def list_transactions(
        self,
        account_id: Optional[str] = None,
        instrument_code: Optional[str] = None,
        transaction_types: Optional[Iterable[TransactionType]] = None,
    ) -> list[Transaction]:
        await asyncio.sleep(self._io_delay)
        types = set(transaction_types) if transaction_types is not None else None
        matches = [
            t for t in self._transactions.values()
            if (account_id is None or t.account_id == account_id)
            and (instrument_code is None or t.instrument_code == instrument_code)
            and (types is None or t.transaction_type in types)
        ]
        matches.sort(key=lambda t: (t.effective_at, t.transaction_id))
        return [t.model_copy(deep=True) for t in matches]

    async def list_trade_keys(self, account_id: Optional[str] = None) -> set[PositionKey]:
        await asyncio.sleep(self._io_delay)
        return {
            t.position_key for t in self._transactions.values()
            if t.transaction_type in TRADE_TYPES
            and (account_id is None or t.account_id == account_id)
        }


class InMemoryProjectionStore:
    def __init__(self, io_delay: float = 0.0):
        self._positions: dict[PositionKey, Position] = {}
        self._io_delay = io_delay

    async def upsert(self, position: Position) -> Position:
        await asyncio.sleep(self._io_delay)
        self._positions[position.position_key] = position.model_copy(deep=True)
        return position.model_copy(deep=True)

    async def delete(self, account_id: str, instrument_code: str) -> bool:
        await asyncio.sleep(self._io_delay)
        return self._positions.pop((account_id, instrument_code), None) is not None

    async def get(self, account_id: str, instrument_code: str) -> Optional[Position]:
        await asyncio.sleep(self._io_delay)
        stored = self._positions.get((account_id, instrument_code))
        return stored.model_copy(deep=True) if stored else None

    async def list_by_account(self, account_id: str) -> list[Position]:
        await asyncio.sleep(self._io_delay)
        return [
            p.model_copy(deep=True)
            for key, p in sorted(self._positions.items())
            if key[0] == account_id
        ]

    async def list_all(self) -> list[Position]:
        await asyncio.sleep(self._io_delay)
        return [p.model_copy(deep=True) for _, p in sorted(self._positions.items())]

    async def replace(self, positions: Iterable[Position], account_id: Optional[str] = None) -> int:
        await asyncio.sleep(self._io_delay)
        incoming = {p.position_key: p.model_copy(deep=True) for p in positions}
        if account_id is not None:
            stray = [key for key in incoming if key[0] != account_id]
            if stray:
                raise ValueError(f"Positions {stray} fall outside account '{account_id}'.")
            kept = {k: v for k, v in self._positions.items() if k[0] != account_id}
        else:
            kept = {}
        kept.update(incoming)
        self._positions = kept
        logger.debug(f"Replaced projection scope '{account_id or '*'}' with {len(incoming)} positions.")
        return len(incoming)
