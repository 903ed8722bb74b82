# src/libs/holdings-engine/holdings_engine/reconciliation.py
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .config import HOLDINGS_OVERSELL_POLICY
from .exceptions import ConcurrencyError, ConsistencyError, OversellError, TransactionNotFoundError
from .locking import KeyedLockManager
from .logic.position_calculator import OversellAnomaly, PositionCalculation, PositionCalculator
from .monitoring import (
    CONSISTENCY_FAILURES_TOTAL, RECONCILIATION_LATENCY_SECONDS, REBUILDS_TOTAL,
    observe_oversell, observe_reconciliation
)
from .stores import LedgerStore, PositionKey, ProjectionStore
from .transaction_domain.models import TRADE_TYPES, Position, Transaction, TransactionPatch, TransactionType
from .transaction_domain.validation import TransactionParser
from .verification import ProjectionDrift, find_drifts

logger = logging.getLogger(__name__)

OVERSELL_POLICY_CLAMP = "clamp"
OVERSELL_POLICY_REJECT = "reject"
OVERSELL_POLICIES = (OVERSELL_POLICY_CLAMP, OVERSELL_POLICY_REJECT)

# How many times an edit or delete re-reads a transaction that moved while
# the controller was waiting for its lock scope.
_MAX_STALE_READS = 3


@dataclass(frozen=True)
class ReconciliationOutcome:
    account_id: str
    instrument_code: str
    position: Optional[Position]
    removed: bool = False
    anomalies: tuple[OversellAnomaly, ...] = ()

    @property
    def position_key(self) -> PositionKey:
        return (self.account_id, self.instrument_code)


@dataclass(frozen=True)
class MutationResult:
    """The stored transaction (None after a delete) and every pair it reconciled."""
    transaction: Optional[Transaction]
    outcomes: tuple[ReconciliationOutcome, ...] = ()

    def outcome_for(self, account_id: str, instrument_code: str) -> Optional[ReconciliationOutcome]:
        for outcome in self.outcomes:
            if outcome.position_key == (account_id, instrument_code):
                return outcome
        return None


@dataclass(frozen=True)
class RebuildReport:
    account_id: Optional[str]
    positions_written: int
    positions_removed: int
    anomalies: tuple[OversellAnomaly, ...] = ()


class ReconciliationController:
    """
    The single entry point for mutating the ledger. Every mutation that can
    move a position is followed, under the same lock scope, by a full replay
    of the affected (account, instrument) histories, so the projection always
    matches what the calculator derives from the ledger.
    """
    def __init__(
        self,
        ledger: LedgerStore,
        projection: ProjectionStore,
        calculator: Optional[PositionCalculator] = None,
        lock_manager: Optional[KeyedLockManager] = None,
        parser: Optional[TransactionParser] = None,
        oversell_policy: Optional[str] = None,
    ):
        self._ledger = ledger
        self._projection = projection
        self._calculator = calculator or PositionCalculator()
        self._locks = lock_manager or KeyedLockManager()
        self._parser = parser or TransactionParser()
        policy = (oversell_policy or HOLDINGS_OVERSELL_POLICY).lower()
        if policy not in OVERSELL_POLICIES:
            raise ValueError(f"Unknown oversell policy '{policy}'; expected one of {OVERSELL_POLICIES}.")
        self._oversell_policy = policy

    @property
    def oversell_policy(self) -> str:
        return self._oversell_policy

    # --- Mutations ---

    async def record_transaction(self, payload: Union[Transaction, Mapping[str, Any]]) -> MutationResult:
        # Pre-built models are re-validated too; the model alone allows a zero-quantity trade.
        raw = payload.model_dump() if isinstance(payload, Transaction) else payload
        transaction = self._parser.parse(raw)
        keys = [transaction.position_key] if transaction.is_trade else []

        async with self._locks.key_scope(keys):
            for key in keys:
                await self._guard_oversell(key, include=transaction)
            stored = await self._ledger.create(transaction)
            logger.info(
                "Recorded transaction.",
                extra={
                    "transaction_id": stored.transaction_id,
                    "account_id": stored.account_id,
                    "transaction_type": stored.transaction_type.value,
                }
            )
            outcomes = await self._reconcile_after_write(keys, stored.transaction_id)
        return MutationResult(transaction=stored, outcomes=outcomes)

    async def edit_transaction(
        self,
        transaction_id: str,
        patch: Union[TransactionPatch, Mapping[str, Any]],
    ) -> MutationResult:
        """
        Applies a patch to a stored transaction. When the edit moves the
        transaction to another account or instrument, both the old and the new
        pair are reconciled.
        """
        for _ in range(_MAX_STALE_READS):
            existing = await self._load(transaction_id)
            updated = self._parser.apply_patch(existing, patch)
            keys = self._affected_keys(existing, updated)

            async with self._locks.key_scope(keys):
                if await self._load(transaction_id) != existing:
                    continue
                for key in keys:
                    await self._guard_oversell(key, exclude_id=transaction_id, include=updated)
                stored = await self._ledger.update(updated)
                logger.info(
                    "Edited transaction.",
                    extra={"transaction_id": transaction_id, "affected_keys": [list(k) for k in keys]}
                )
                outcomes = await self._reconcile_after_write(keys, transaction_id)
                return MutationResult(transaction=stored, outcomes=outcomes)

        raise ConcurrencyError(f"transaction:{transaction_id}", self._locks.timeout)

    async def delete_transaction(self, transaction_id: str) -> MutationResult:
        for _ in range(_MAX_STALE_READS):
            existing = await self._load(transaction_id)
            keys = self._affected_keys(existing)

            async with self._locks.key_scope(keys):
                if await self._load(transaction_id) != existing:
                    continue
                for key in keys:
                    await self._guard_oversell(key, exclude_id=transaction_id)
                if not await self._ledger.delete(transaction_id):
                    raise TransactionNotFoundError(transaction_id)
                logger.info("Deleted transaction.", extra={"transaction_id": transaction_id})
                outcomes = await self._reconcile_after_write(keys, transaction_id)
                return MutationResult(transaction=None, outcomes=outcomes)

        raise ConcurrencyError(f"transaction:{transaction_id}", self._locks.timeout)

    # --- Reconciliation ---

    async def reconcile(self, account_id: str, instrument_code: str) -> ReconciliationOutcome:
        """Recomputes one pair from its full history and writes the result."""
        key = (account_id, instrument_code)
        async with self._locks.key_scope([key]):
            return await self._reconcile_key(key)

    async def rebuild_all(self, account_id: Optional[str] = None) -> RebuildReport:
        """
        Re-derives every position of one account, or of the whole ledger when
        no account is given, and swaps the projection for that scope in one go.
        This is the recovery path after a ConsistencyError.
        """
        scope = self._locks.account_scope(account_id) if account_id is not None else self._locks.global_scope()
        async with scope:
            before = await self._stored_positions(account_id)
            calculations = await self._derive(account_id)
            positions = [c.position for c in calculations if c.position is not None]
            anomalies = tuple(a for c in calculations for a in c.anomalies)
            for calculation in calculations:
                self._report_anomalies(calculation)

            written = await self._projection.replace(positions, account_id=account_id)

        kept = {p.position_key for p in positions}
        removed = sum(1 for p in before if p.position_key not in kept)
        REBUILDS_TOTAL.labels(scope="account" if account_id is not None else "global").inc()
        logger.info(
            "Rebuilt holdings projection.",
            extra={
                "account_id": account_id,
                "positions_written": written,
                "positions_removed": removed,
                "oversell_anomalies": len(anomalies),
            }
        )
        return RebuildReport(
            account_id=account_id,
            positions_written=written,
            positions_removed=removed,
            anomalies=anomalies,
        )

    async def verify(self, account_id: Optional[str] = None) -> list[ProjectionDrift]:
        """Reports where the stored projection differs from the ledger, without fixing anything."""
        scope = self._locks.account_scope(account_id) if account_id is not None else self._locks.global_scope()
        async with scope:
            stored = await self._stored_positions(account_id)
            expected = [c.position for c in await self._derive(account_id) if c.position is not None]

        drifts = find_drifts(expected, stored)
        if drifts:
            logger.warning(
                "Holdings projection has drifted from the ledger.",
                extra={
                    "account_id": account_id,
                    "drifts": [f"{d.kind.value}:{d.account_id}/{d.instrument_code}" for d in drifts],
                }
            )
        return drifts

    # --- Queries ---

    async def get_position(self, account_id: str, instrument_code: str) -> Optional[Position]:
        return await self._projection.get(account_id, instrument_code)

    async def list_positions(self, account_id: Optional[str] = None) -> list[Position]:
        return await self._stored_positions(account_id)

    async def list_transactions(
        self,
        account_id: Optional[str] = None,
        transaction_type: Optional[Union[TransactionType, str]] = None,
    ) -> list[Transaction]:
        """Lists ledger entries newest first."""
        types = None
        if transaction_type is not None:
            types = [self._parser.parse_type(transaction_type)]
        transactions = await self._ledger.list_transactions(account_id=account_id, transaction_types=types)
        return sorted(transactions, key=lambda t: (t.effective_at, t.transaction_id), reverse=True)

    # --- Internals ---

    async def _load(self, transaction_id: str) -> Transaction:
        transaction = await self._ledger.get(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    @staticmethod
    def _affected_keys(*transactions: Transaction) -> list[PositionKey]:
        return sorted({t.position_key for t in transactions if t.is_trade})

    async def _load_trades(self, key: PositionKey) -> list[Transaction]:
        account_id, instrument_code = key
        return await self._ledger.list_transactions(
            account_id=account_id,
            instrument_code=instrument_code,
            transaction_types=TRADE_TYPES,
        )

    async def _stored_positions(self, account_id: Optional[str]) -> list[Position]:
        if account_id is None:
            return await self._projection.list_all()
        return await self._projection.list_by_account(account_id)

    async def _derive(self, account_id: Optional[str]) -> list[PositionCalculation]:
        keys = await self._ledger.list_trade_keys(account_id)
        history: dict[PositionKey, list[Transaction]] = defaultdict(list)
        for transaction in await self._ledger.list_transactions(account_id=account_id, transaction_types=TRADE_TYPES):
            history[transaction.position_key].append(transaction)
        return [self._calculator.calculate(*key, history.get(key, [])) for key in sorted(keys)]

    async def _guard_oversell(
        self,
        key: PositionKey,
        exclude_id: Optional[str] = None,
        include: Optional[Transaction] = None,
    ) -> None:
        """
        Under the 'reject' policy, refuses a mutation whose resulting history
        for `key` would contain an oversell that the current history does not.
        """
        if self._oversell_policy != OVERSELL_POLICY_REJECT:
            return

        current = await self._load_trades(key)
        candidate = [t for t in current if t.transaction_id != exclude_id]
        if include is not None and include.is_trade and include.position_key == key:
            candidate.append(include)

        existing = set(self._calculator.calculate(*key, current).anomalies)
        introduced = [a for a in self._calculator.calculate(*key, candidate).anomalies if a not in existing]
        if introduced:
            logger.info(
                "Rejected mutation that would oversell a position.",
                extra={
                    "account_id": key[0],
                    "instrument_code": key[1],
                    "transaction_ids": [a.transaction_id for a in introduced],
                }
            )
            raise OversellError(key[0], key[1], introduced)

    async def _reconcile_after_write(
        self, keys: list[PositionKey], transaction_id: str
    ) -> tuple[ReconciliationOutcome, ...]:
        outcomes = []
        for key in keys:
            try:
                outcomes.append(await self._reconcile_key(key))
            except Exception as e:
                account_id, instrument_code = key
                observe_reconciliation("failed")
                CONSISTENCY_FAILURES_TOTAL.inc()
                logger.error(
                    "Ledger was updated but the holdings projection could not be reconciled.",
                    extra={
                        "account_id": account_id,
                        "instrument_code": instrument_code,
                        "transaction_id": transaction_id,
                    },
                    exc_info=True
                )
                raise ConsistencyError(account_id, instrument_code, transaction_id, str(e)) from e
        return tuple(outcomes)

    async def _reconcile_key(self, key: PositionKey) -> ReconciliationOutcome:
        account_id, instrument_code = key
        with RECONCILIATION_LATENCY_SECONDS.time():
            calculation = self._calculator.calculate(account_id, instrument_code, await self._load_trades(key))
            self._report_anomalies(calculation)

            if calculation.position is None:
                await self._projection.delete(account_id, instrument_code)
                observe_reconciliation("removed")
                return ReconciliationOutcome(
                    account_id=account_id,
                    instrument_code=instrument_code,
                    position=None,
                    removed=True,
                    anomalies=calculation.anomalies,
                )

            await self._projection.upsert(calculation.position)
            observe_reconciliation("upserted")
            return ReconciliationOutcome(
                account_id=account_id,
                instrument_code=instrument_code,
                position=calculation.position,
                anomalies=calculation.anomalies,
            )

    @staticmethod
    def _report_anomalies(calculation: PositionCalculation) -> None:
        if not calculation.anomalies:
            return
        observe_oversell(len(calculation.anomalies))
        logger.warning(
            "Sell quantity exceeds holdings; position clamped to zero.",
            extra={
                "account_id": calculation.account_id,
                "instrument_code": calculation.instrument_code,
                "transaction_ids": [a.transaction_id for a in calculation.anomalies],
            }
        )
