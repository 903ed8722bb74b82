# src/libs/holdings-engine/holdings_engine/stores.py
"""
Storage contracts used by the reconciliation controller.

Both the ledger and the projection have an SQL implementation and an
in-memory implementation; the controller depends only on these protocols.
"""
from typing import Iterable, Optional, Protocol

from .transaction_domain.models import Position, Transaction, TransactionType

PositionKey = tuple[str, str]


class LedgerStore(Protocol):
    async def create(self, transaction: Transaction) -> Transaction: ...

    async def update(self, transaction: Transaction) -> Transaction: ...

    async def delete(self, transaction_id: str) -> bool: ...

    async def get(self, transaction_id: str) -> Optional[Transaction]: ...

    async def list_transactions(
        self,
        account_id: Optional[str] = None,
        instrument_code: Optional[str] = None,
        transaction_types: Optional[Iterable[TransactionType]] = None,
    ) -> list[Transaction]:
        """Returns matching transactions ordered by effective date, oldest first."""
        ...

    async def list_trade_keys(self, account_id: Optional[str] = None) -> set[PositionKey]:
        """Returns every (account, instrument) pair that has at least one BUY or SELL."""
        ...


class ProjectionStore(Protocol):
    async def upsert(self, position: Position) -> Position: ...

    async def delete(self, account_id: str, instrument_code: str) -> bool: ...

    async def get(self, account_id: str, instrument_code: str) -> Optional[Position]: ...

    async def list_by_account(self, account_id: str) -> list[Position]: ...

    async def list_all(self) -> list[Position]: ...

    async def replace(self, positions: Iterable[Position], account_id: Optional[str] = None) -> int:
        """
        Atomically swaps the stored positions for the given scope (one account,
        or everything when account_id is None) with `positions`.
        Returns the number of positions written.
        """
        ...
