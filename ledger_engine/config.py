"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.

The default account-mapping table (semantic key -> account code)
lives here too. It is loaded once at startup and handed to the
AccountResolver, so every process resolves accounts the same way.
"""

import json
import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


# Semantic account roles and the chart-of-accounts code each one
# falls back to when a tenant has no explicit override.
DEFAULT_ACCOUNT_MAPPINGS: dict[str, str] = {
    # Revenue
    "sales_revenue": "SALES-001",
    "room_revenue": "ROOM-REV-001",
    "fnb_revenue": "FNB-REV-001",
    "ecommerce_revenue": "ECOM-REV-001",
    "ecommerce_refunds": "ECOM-REF-001",

    # Assets
    "cash": "CASH-001",
    "bank": "BANK-001",
    "accounts_receivable": "AR-001",
    "guest_ledger": "GUEST-AR-001",
    "ecommerce_receivable": "ECOM-AR-001",
    "inventory": "INV-001",
    "input_cgst": "GST-IN-CGST",
    "input_sgst": "GST-IN-SGST",
    "input_igst": "GST-IN-IGST",
    "input_cess": "GST-IN-CESS",
    "tds_receivable": "TDS-REC-001",

    # Liabilities
    "accounts_payable": "AP-001",
    "output_cgst": "GST-OUT-CGST",
    "output_sgst": "GST-OUT-SGST",
    "output_igst": "GST-OUT-IGST",
    "output_cess": "GST-OUT-CESS",
    "gst_payable": "GST-PAY-001",
    "tds_payable": "TDS-PAY-001",

    # Expenses
    "cost_of_goods_sold": "COGS-001",
    "purchase_expense": "PURCH-001",
}


def _load_account_mappings() -> dict[str, str]:
    """Defaults, overlaid with ACCOUNT_MAPPINGS_FILE when it is set."""
    mappings = dict(DEFAULT_ACCOUNT_MAPPINGS)
    path = os.getenv("ACCOUNT_MAPPINGS_FILE")
    if path:
        with open(path, encoding="utf-8") as fh:
            mappings.update(json.load(fh))
    return mappings


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Ledger Posting Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/ledger_engine"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "json" if ENVIRONMENT == "production" else "console",
    )

    # Bank reconciliation defaults
    RECONCILIATION_DATE_TOLERANCE_DAYS: int = int(
        os.getenv("RECONCILIATION_DATE_TOLERANCE_DAYS", "3")
    )
    RECONCILIATION_AMOUNT_TOLERANCE: Decimal = Decimal(
        os.getenv("RECONCILIATION_AMOUNT_TOLERANCE", "0")
    )

    def __init__(self):
        self.ACCOUNT_MAPPINGS: dict[str, str] = _load_account_mappings()


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables and the mappings file repeatedly.
    """
    return Settings()
