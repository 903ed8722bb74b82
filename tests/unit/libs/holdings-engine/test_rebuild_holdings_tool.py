# tests/unit/libs/holdings-engine/test_rebuild_holdings_tool.py
import importlib.util
from pathlib import Path

import pytest
import pytest_asyncio

from holdings_engine.in_memory_stores import InMemoryLedgerStore, InMemoryProjectionStore
from holdings_engine.logging_utils import correlation_id_var
from holdings_engine.reconciliation import ReconciliationController

pytestmark = pytest.mark.asyncio

TOOL_PATH = Path(__file__).resolve().parents[4] / "tools" / "rebuild_holdings.py"


@pytest.fixture(scope="module")
def rebuild_tool():
    spec = importlib.util.spec_from_file_location("rebuild_holdings", TOOL_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest_asyncio.fixture
async def drifted_controller(make_transaction) -> ReconciliationController:
    ledger = InMemoryLedgerStore()
    await ledger.create(make_transaction("BUY", quantity=10, total_amount="1000"))
    return ReconciliationController(ledger, InMemoryProjectionStore())


async def test_verify_only_reports_drift_without_fixing_it(rebuild_tool, drifted_controller):
    """
    GIVEN a ledger whose projection was never written
    WHEN the tool runs in verify-only mode
    THEN it exits non-zero and leaves the projection untouched.
    """
    # ACT
    exit_code = await rebuild_tool.main(account_id=None, verify_only=True, controller=drifted_controller)

    # ASSERT
    assert exit_code == 1
    assert await drifted_controller.list_positions() == []


async def test_rebuild_repairs_projection(rebuild_tool, drifted_controller):
    exit_code = await rebuild_tool.main(account_id="ACC-1", verify_only=False, controller=drifted_controller)

    assert exit_code == 0
    assert (await drifted_controller.get_position("ACC-1", "AAPL")).quantity == 10
    assert await drifted_controller.verify() == []
    assert correlation_id_var.get() == "<not-set>"
