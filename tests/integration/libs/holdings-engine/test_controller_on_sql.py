# tests/integration/libs/holdings-engine/test_controller_on_sql.py
from decimal import Decimal

import pytest

from holdings_engine.holding_repository import SqlProjectionRepository
from holdings_engine.reconciliation import ReconciliationController
from holdings_engine.transaction_repository import SqlLedgerRepository
from holdings_engine.verification import DriftKind

pytestmark = pytest.mark.asyncio


@pytest.fixture
def controller(session_factory) -> ReconciliationController:
    return ReconciliationController(
        SqlLedgerRepository(session_factory),
        SqlProjectionRepository(session_factory),
        oversell_policy="clamp",
    )


async def test_full_lifecycle_keeps_projection_in_sync(controller, trade_payload):
    """
    GIVEN SQL-backed ledger and projection stores
    WHEN transactions are recorded, edited and deleted
    THEN the holdings table always matches the ledger.
    """
    # ARRANGE / ACT
    first = await controller.record_transaction(trade_payload("BUY", 10, "1000", day=1))
    await controller.record_transaction(trade_payload("BUY", 10, "2000", day=2))
    await controller.record_transaction(trade_payload("SELL", 5, "900", day=3))

    # ASSERT
    position = await controller.get_position("ACC-1", "AAPL")
    assert position.quantity == 15
    assert position.average_cost == Decimal("150")
    assert position.total_cost == Decimal("2250")
    assert await controller.verify() == []

    # ACT: edit the first buy, then delete it
    await controller.edit_transaction(first.transaction.transaction_id, {"quantity": 20, "total_amount": "2000"})
    edited = await controller.get_position("ACC-1", "AAPL")
    await controller.delete_transaction(first.transaction.transaction_id)
    after_delete = await controller.get_position("ACC-1", "AAPL")

    # ASSERT
    assert edited.quantity == 25
    assert after_delete.quantity == 5
    assert after_delete.average_cost == Decimal("200")
    assert await controller.verify() == []


async def test_rebuild_restores_a_tampered_holdings_table(controller, session_factory, trade_payload):
    # ARRANGE
    await controller.record_transaction(trade_payload("BUY", 10, "1000"))
    await controller.record_transaction(trade_payload("BUY", 4, "400", instrument_code="MSFT"))
    await SqlProjectionRepository(session_factory).delete("ACC-1", "MSFT")

    # ACT
    drifts = await controller.verify("ACC-1")
    report = await controller.rebuild_all("ACC-1")

    # ASSERT
    assert [(d.kind, d.instrument_code) for d in drifts] == [(DriftKind.MISSING, "MSFT")]
    assert report.positions_written == 2
    assert [p.instrument_code for p in await controller.list_positions("ACC-1")] == ["AAPL", "MSFT"]
    assert await controller.verify() == []
