# src/libs/holdings-engine/holdings_engine/database_models.py
from sqlalchemy import (
    Column, Integer,
    String, Numeric, DateTime,
    func, UniqueConstraint, Index
)

from .db_base import Base


class Transaction(Base):
    __tablename__ = 'transactions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String, unique=True, index=True, nullable=False)
    account_id = Column(String, index=True, nullable=False)
    instrument_code = Column(String, nullable=False)
    instrument_name = Column(String, nullable=False)
    transaction_type = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(28, 10), nullable=False)
    total_amount = Column(Numeric(28, 10), nullable=False)
    fee = Column(Numeric(28, 10), nullable=False, default=0)
    currency = Column(String(10), nullable=False)
    effective_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_transactions_account_instrument_effective', 'account_id', 'instrument_code', 'effective_at'),
    )


class Holding(Base):
    __tablename__ = 'holdings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String, index=True, nullable=False)
    instrument_code = Column(String, nullable=False)
    instrument_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    average_cost = Column(Numeric(28, 10), nullable=False)
    total_cost = Column(Numeric(28, 10), nullable=False)
    currency = Column(String(10), nullable=False)
    last_effective_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('account_id', 'instrument_code', name='_holding_account_instrument_uc'),
    )
