# src/libs/holdings-engine/holdings_engine/config.py
import os
from dotenv import load_dotenv

# Load environment variables from a .env file for local development.
load_dotenv()


# Database Configurations
POSTGRES_USER = os.getenv("POSTGRES_USER", "user")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "password")
POSTGRES_DB = os.getenv("POSTGRES_DB", "holdings_db")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "postgres")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

# Reconciliation Configurations
HOLDINGS_LOCK_TIMEOUT_SECONDS = float(os.getenv("HOLDINGS_LOCK_TIMEOUT_SECONDS", "5.0"))
HOLDINGS_RECONCILE_RETRY_ATTEMPTS = int(os.getenv("HOLDINGS_RECONCILE_RETRY_ATTEMPTS", "3"))

# 'clamp' keeps oversold histories (quantity floors at zero, anomaly is flagged);
# 'reject' refuses any mutation that would oversell a position.
HOLDINGS_OVERSELL_POLICY = os.getenv("HOLDINGS_OVERSELL_POLICY", "clamp").lower()

# Decimal places used when positions are presented or compared.
HOLDINGS_PRESENTATION_PLACES = int(os.getenv("HOLDINGS_PRESENTATION_PLACES", "4"))
