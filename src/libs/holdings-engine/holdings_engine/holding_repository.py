# src/libs/holdings-engine/holdings_engine/holding_repository.py
import logging
from typing import Iterable, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database_models import Holding
from .transaction_domain.models import Position
from .utils import async_timed

logger = logging.getLogger(__name__)

_POSITION_COLUMNS = (
    "instrument_name", "quantity", "average_cost", "total_cost", "currency", "last_effective_at",
)


class SqlProjectionRepository:
    """
    Projection store backed by the `holdings` table, one row per
    (account, instrument) pair with a non-zero quantity.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @async_timed(repository="SqlProjectionRepository", method="upsert")
    async def upsert(self, position: Position) -> Position:
        async with self._session_factory() as session, session.begin():
            stmt = select(Holding).where(
                Holding.account_id == position.account_id,
                Holding.instrument_code == position.instrument_code,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                row = Holding(account_id=position.account_id, instrument_code=position.instrument_code)
                session.add(row)
            for name in _POSITION_COLUMNS:
                setattr(row, name, getattr(position, name))
        return Position.model_validate(row)

    @async_timed(repository="SqlProjectionRepository", method="delete")
    async def delete(self, account_id: str, instrument_code: str) -> bool:
        async with self._session_factory() as session, session.begin():
            stmt = delete(Holding).where(
                Holding.account_id == account_id,
                Holding.instrument_code == instrument_code,
            )
            result = await session.execute(stmt)
        return result.rowcount > 0

    @async_timed(repository="SqlProjectionRepository", method="get")
    async def get(self, account_id: str, instrument_code: str) -> Optional[Position]:
        async with self._session_factory() as session:
            stmt = select(Holding).where(
                Holding.account_id == account_id,
                Holding.instrument_code == instrument_code,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
        return Position.model_validate(row) if row is not None else None

    @async_timed(repository="SqlProjectionRepository", method="list_by_account")
    async def list_by_account(self, account_id: str) -> list[Position]:
        stmt = (
            select(Holding)
            .where(Holding.account_id == account_id)
            .order_by(Holding.instrument_code.asc())
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [Position.model_validate(row) for row in rows]

    @async_timed(repository="SqlProjectionRepository", method="list_all")
    async def list_all(self) -> list[Position]:
        stmt = select(Holding).order_by(Holding.account_id.asc(), Holding.instrument_code.asc())
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [Position.model_validate(row) for row in rows]

    @async_timed(repository="SqlProjectionRepository", method="replace")
    async def replace(self, positions: Iterable[Position], account_id: Optional[str] = None) -> int:
        """
        Deletes every holding in scope and inserts the given positions in a
        single transaction, so readers never observe a half-rebuilt scope.
        """
        positions = list(positions)
        if account_id is not None:
            stray = [p.position_key for p in positions if p.account_id != account_id]
            if stray:
                raise ValueError(f"Positions {stray} fall outside account '{account_id}'.")

        async with self._session_factory() as session, session.begin():
            stmt = delete(Holding)
            if account_id is not None:
                stmt = stmt.where(Holding.account_id == account_id)
            await session.execute(stmt)
            session.add_all([
                Holding(
                    account_id=p.account_id,
                    instrument_code=p.instrument_code,
                    **{name: getattr(p, name) for name in _POSITION_COLUMNS},
                )
                for p in positions
            ])
        logger.info(f"Replaced holdings for scope '{account_id or '*'}' with {len(positions)} rows.")
        return len(positions)
