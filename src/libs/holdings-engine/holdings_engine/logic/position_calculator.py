# src/libs/holdings-engine/holdings_engine/logic/position_calculator.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Protocol

from ..transaction_domain.models import Position, Transaction, TransactionType
from .sorter import TransactionSorter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OversellAnomaly:
    """A SELL that asked for more units than were held when it took effect."""
    transaction_id: str
    requested_quantity: int
    available_quantity: int


@dataclass
class RunningPosition:
    """Mutable accumulator threaded through the replay of one key's history."""
    quantity: int = 0
    total_cost: Decimal = Decimal(0)
    instrument_name: Optional[str] = None
    currency: Optional[str] = None
    last_effective_at: Optional[datetime] = None
    anomalies: list[OversellAnomaly] = field(default_factory=list)

    def touch(self, transaction: Transaction) -> None:
        self.instrument_name = transaction.instrument_name
        self.currency = transaction.currency
        self.last_effective_at = transaction.effective_at


@dataclass(frozen=True)
class PositionCalculation:
    """
    Result of replaying one (account, instrument) history. `position` is None
    when nothing is held at the end of the history.
    """
    account_id: str
    instrument_code: str
    position: Optional[Position]
    anomalies: tuple[OversellAnomaly, ...] = ()

    @property
    def is_flat(self) -> bool:
        return self.position is None


class PositionEffectStrategy(Protocol):
    def apply(self, state: RunningPosition, transaction: Transaction) -> None: ...


class BuyStrategy:
    def apply(self, state: RunningPosition, transaction: Transaction) -> None:
        state.quantity += transaction.quantity
        # total_amount already includes fees and is authoritative for cost basis.
        state.total_cost += transaction.total_amount
        state.touch(transaction)


class SellStrategy:
    def apply(self, state: RunningPosition, transaction: Transaction) -> None:
        sell_quantity = transaction.quantity
        held = state.quantity

        if sell_quantity > held:
            state.anomalies.append(OversellAnomaly(
                transaction_id=transaction.transaction_id,
                requested_quantity=sell_quantity,
                available_quantity=held,
            ))
            logger.debug(
                f"[Sell] {transaction.transaction_id} sells {sell_quantity} with only {held} held; clamping to zero."
            )
            state.quantity = 0
            state.total_cost = Decimal(0)
        elif held > 0:
            remaining = held - sell_quantity
            # Equivalent to total_cost * (1 - sell_quantity / held): the average cost is preserved.
            state.total_cost = state.total_cost * Decimal(remaining) / Decimal(held)
            state.quantity = remaining

        state.touch(transaction)


class NoEffectStrategy:
    """Cash movements and income never change quantity or cost basis."""
    def apply(self, state: RunningPosition, transaction: Transaction) -> None:
        return None


class PositionCalculator:
    """
    Derives the current position of one (account, instrument) pair from its
    full transaction history using the weighted-average cost method.

    The calculator is a pure function of its input: it performs no I/O and
    always re-sorts the history itself.
    """
    def __init__(
        self,
        sorter: Optional[TransactionSorter] = None,
        strategies: Optional[Mapping[TransactionType, PositionEffectStrategy]] = None,
    ):
        self._sorter = sorter or TransactionSorter()
        if strategies is None:
            strategies = {
                TransactionType.BUY: BuyStrategy(),
                TransactionType.SELL: SellStrategy(),
                TransactionType.DIVIDEND: NoEffectStrategy(),
                TransactionType.DEPOSIT: NoEffectStrategy(),
                TransactionType.WITHDRAWAL: NoEffectStrategy(),
            }
        self._strategies: dict[TransactionType, PositionEffectStrategy] = dict(strategies)
        missing = set(TransactionType) - set(self._strategies)
        if missing:
            raise TypeError(f"No position strategy registered for: {sorted(m.value for m in missing)}")

    def calculate(
        self,
        account_id: str,
        instrument_code: str,
        transactions: Iterable[Transaction],
    ) -> PositionCalculation:
        history = list(transactions)
        foreign = [
            t.transaction_id for t in history
            if t.account_id != account_id or t.instrument_code != instrument_code
        ]
        if foreign:
            raise ValueError(
                f"Transactions {foreign} do not belong to ({account_id}, {instrument_code})."
            )

        state = RunningPosition()
        for transaction in self._sorter.sort_transactions(history):
            self._strategies[transaction.transaction_type].apply(state, transaction)

        position = None
        if state.quantity > 0:
            position = Position(
                account_id=account_id,
                instrument_code=instrument_code,
                instrument_name=state.instrument_name,
                quantity=state.quantity,
                average_cost=state.total_cost / Decimal(state.quantity),
                total_cost=state.total_cost,
                currency=state.currency,
                last_effective_at=state.last_effective_at,
            )

        return PositionCalculation(
            account_id=account_id,
            instrument_code=instrument_code,
            position=position,
            anomalies=tuple(state.anomalies),
        )
