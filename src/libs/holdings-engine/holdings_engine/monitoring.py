# src/libs/holdings-engine/holdings_engine/monitoring.py
from prometheus_client import Counter, Histogram

# --------------------------------------------------------------------------------------
# DB metrics (used by holdings_engine.utils.async_timed)
# --------------------------------------------------------------------------------------
DB_OPERATION_LATENCY_SECONDS = Histogram(
    "db_operation_latency_seconds",
    "Latency of database operations in seconds",
    labelnames=("repository", "method"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

# --------------------------------------------------------------------------------------
# Reconciliation metrics
# --------------------------------------------------------------------------------------
RECONCILIATIONS_TOTAL = Counter(
    "holdings_reconciliations_total",
    "Number of (account, instrument) reconciliations by outcome",
    labelnames=("outcome",),
)

RECONCILIATION_LATENCY_SECONDS = Histogram(
    "holdings_reconciliation_latency_seconds",
    "Time spent recomputing and writing a single position",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5),
)

OVERSELL_ANOMALIES_TOTAL = Counter(
    "holdings_oversell_anomalies_total",
    "Number of SELL transactions found exceeding the quantity held",
)

LOCK_TIMEOUTS_TOTAL = Counter(
    "holdings_lock_timeouts_total",
    "Number of lock scopes that could not be acquired in time",
    labelnames=("scope",),
)

CONSISTENCY_FAILURES_TOTAL = Counter(
    "holdings_consistency_failures_total",
    "Number of ledger mutations whose projection write failed afterwards",
)

REBUILDS_TOTAL = Counter(
    "holdings_rebuilds_total",
    "Number of projection rebuilds by scope",
    labelnames=("scope",),
)


def observe_reconciliation(outcome: str) -> None:
    RECONCILIATIONS_TOTAL.labels(outcome).inc()


def observe_oversell(count: int = 1) -> None:
    OVERSELL_ANOMALIES_TOTAL.inc(count)
