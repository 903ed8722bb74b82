# tools/rebuild_holdings.py
import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

# Ensure the script can find the holdings-engine library
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
holdings_engine_path = os.path.join(project_root, 'src', 'libs', 'holdings-engine')
if holdings_engine_path not in sys.path:
    sys.path.insert(0, holdings_engine_path)

from holdings_engine.db import get_async_session_factory
from holdings_engine.holding_repository import SqlProjectionRepository
from holdings_engine.holding_summary import summarize_cost_basis
from holdings_engine.logging_utils import setup_logging, correlation_id_var, generate_correlation_id
from holdings_engine.reconciliation import ReconciliationController
from holdings_engine.transaction_repository import SqlLedgerRepository
from holdings_engine.utils import retry_on_concurrency_error

logger = logging.getLogger(__name__)


def build_controller() -> ReconciliationController:
    session_factory = get_async_session_factory()
    return ReconciliationController(
        ledger=SqlLedgerRepository(session_factory),
        projection=SqlProjectionRepository(session_factory),
    )


async def main(
    account_id: Optional[str],
    verify_only: bool,
    controller: Optional[ReconciliationController] = None,
) -> int:
    """
    Verifies the holdings projection against the ledger and, unless
    `verify_only` is set, rebuilds it. Returns the process exit code.
    """
    correlation_id = generate_correlation_id("REBUILD_TOOL")
    token = correlation_id_var.set(correlation_id)
    scope = account_id or "all accounts"
    logger.info(f"Starting holdings check for {scope}.", extra={"correlation_id": correlation_id})

    try:
        controller = controller or build_controller()

        drifts = await retry_on_concurrency_error(lambda: controller.verify(account_id))
        for drift in drifts:
            logger.info(
                f"{drift.kind.value} holding {drift.account_id}/{drift.instrument_code}",
                extra={"fields": list(drift.fields)}
            )
        logger.info(f"Found {len(drifts)} drifted holding(s) for {scope}.")

        if verify_only:
            return 1 if drifts else 0

        report = await retry_on_concurrency_error(lambda: controller.rebuild_all(account_id))
        logger.info(
            f"Rebuild complete: {report.positions_written} written, {report.positions_removed} removed, "
            f"{len(report.anomalies)} oversell anomalies."
        )

        positions = await controller.list_positions(account_id)
        for summary in summarize_cost_basis(positions).values():
            logger.info(
                f"{summary.currency}: {summary.holdings_count} holding(s), invested {summary.total_cost}"
            )
        return 0
    finally:
        correlation_id_var.reset(token)


if __name__ == "__main__":
    setup_logging()
    parser = argparse.ArgumentParser(
        description="Verify and rebuild the holdings projection from the transaction ledger."
    )
    parser.add_argument(
        "--account-id",
        default=None,
        help="Restrict the run to a single account. Defaults to the whole ledger."
    )
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Report drift without rewriting the projection; exits non-zero when drift is found."
    )

    args = parser.parse_args()

    sys.exit(asyncio.run(main(account_id=args.account_id, verify_only=args.verify_only)))
