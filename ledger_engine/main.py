"""
Ledger Posting Engine, FastAPI application.

This is the entry point for the application.
All routers are registered here.
"""

from fastapi import FastAPI

from ledger_engine.config import get_settings
from ledger_engine.logging_config import configure_logging
from ledger_engine.api.health import router as health_router
from ledger_engine.api.ledger import router as ledger_router
from ledger_engine.api.tax import router as tax_router
from ledger_engine.api.invoices import router as invoices_router
from ledger_engine.api.bills import router as bills_router
from ledger_engine.api.banking import router as banking_router
from ledger_engine.api.reconciliations import router as reconciliations_router
from ledger_engine.api.bridge import router as bridge_router

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Double-entry posting engine with GST/TDS and bank reconciliation",
)

# Register routers
app.include_router(health_router)
app.include_router(ledger_router)
app.include_router(tax_router)
app.include_router(invoices_router)
app.include_router(bills_router)
app.include_router(banking_router)
app.include_router(reconciliations_router)
app.include_router(bridge_router)
