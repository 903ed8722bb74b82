# src/libs/holdings-engine/holdings_engine/transaction_repository.py
import logging
from typing import Iterable, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database_models import Transaction as DBTransaction
from .exceptions import DuplicateTransactionError, TransactionNotFoundError
from .stores import PositionKey
from .transaction_domain.models import TRADE_TYPES, Transaction, TransactionType
from .utils import async_timed

logger = logging.getLogger(__name__)

_MUTABLE_COLUMNS = (
    "account_id", "instrument_code", "instrument_name", "transaction_type",
    "quantity", "price", "total_amount", "fee", "currency", "effective_at",
)


def _column_values(transaction: Transaction) -> dict:
    values = {name: getattr(transaction, name) for name in _MUTABLE_COLUMNS}
    values["transaction_type"] = transaction.transaction_type.value
    return values


class SqlLedgerRepository:
    """
    Ledger store backed by the `transactions` table.
    Every call runs in its own session and commits before returning.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @async_timed(repository="SqlLedgerRepository", method="create")
    async def create(self, transaction: Transaction) -> Transaction:
        row = DBTransaction(
            transaction_id=transaction.transaction_id,
            created_at=transaction.created_at,
            **_column_values(transaction),
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            raise DuplicateTransactionError(transaction.transaction_id) from e
        logger.debug(f"Stored transaction {transaction.transaction_id}.")
        return Transaction.model_validate(row)

    @async_timed(repository="SqlLedgerRepository", method="update")
    async def update(self, transaction: Transaction) -> Transaction:
        async with self._session_factory() as session, session.begin():
            stmt = select(DBTransaction).where(DBTransaction.transaction_id == transaction.transaction_id)
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise TransactionNotFoundError(transaction.transaction_id)
            for name, value in _column_values(transaction).items():
                setattr(row, name, value)
        return Transaction.model_validate(row)

    @async_timed(repository="SqlLedgerRepository", method="delete")
    async def delete(self, transaction_id: str) -> bool:
        async with self._session_factory() as session, session.begin():
            stmt = delete(DBTransaction).where(DBTransaction.transaction_id == transaction_id)
            result = await session.execute(stmt)
        return result.rowcount > 0

    @async_timed(repository="SqlLedgerRepository", method="get")
    async def get(self, transaction_id: str) -> Optional[Transaction]:
        async with self._session_factory() as session:
            stmt = select(DBTransaction).where(DBTransaction.transaction_id == transaction_id)
            row = (await session.execute(stmt)).scalar_one_or_none()
        return Transaction.model_validate(row) if row is not None else None

    @async_timed(repository="SqlLedgerRepository", method="list_transactions")
    async def list_transactions(
        self,
        account_id: Optional[str] = None,
        instrument_code: Optional[str] = None,
        transaction_types: Optional[Iterable[TransactionType]] = None,
    ) -> list[Transaction]:
        """
        Fetches matching transactions ordered chronologically by effective
        date, with the transaction id as the tie-break.
        """
        stmt = select(DBTransaction)
        if account_id is not None:
            stmt = stmt.where(DBTransaction.account_id == account_id)
        if instrument_code is not None:
            stmt = stmt.where(DBTransaction.instrument_code == instrument_code)
        if transaction_types is not None:
            stmt = stmt.where(DBTransaction.transaction_type.in_([t.value for t in transaction_types]))
        stmt = stmt.order_by(DBTransaction.effective_at.asc(), DBTransaction.transaction_id.asc())

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [Transaction.model_validate(row) for row in rows]

    @async_timed(repository="SqlLedgerRepository", method="list_trade_keys")
    async def list_trade_keys(self, account_id: Optional[str] = None) -> set[PositionKey]:
        stmt = (
            select(DBTransaction.account_id, DBTransaction.instrument_code)
            .where(DBTransaction.transaction_type.in_([t.value for t in TRADE_TYPES]))
            .distinct()
        )
        if account_id is not None:
            stmt = stmt.where(DBTransaction.account_id == account_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            keys = {(row.account_id, row.instrument_code) for row in result}
        logger.info(f"Found {len(keys)} traded positions for scope '{account_id or '*'}'.")
        return keys
