"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Tables are created before each test and
dropped after it, so no test data persists.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ledger_engine.api.deps import get_publisher
from ledger_engine.config import DEFAULT_ACCOUNT_MAPPINGS
from ledger_engine.events import RecordingEventPublisher
from ledger_engine.main import app
from ledger_engine.models import AccountCategory, Base
from ledger_engine.models.base import get_db
from ledger_engine.schemas.ledger import AccountCreate
from ledger_engine.services.ledger_service import LedgerService


# Use SQLite for tests, no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


# Category of the account seeded for each semantic role
ROLE_CATEGORIES = {
    "sales_revenue": AccountCategory.REVENUE,
    "room_revenue": AccountCategory.REVENUE,
    "fnb_revenue": AccountCategory.REVENUE,
    "ecommerce_revenue": AccountCategory.REVENUE,
    "ecommerce_refunds": AccountCategory.EXPENSE,
    "cash": AccountCategory.ASSET,
    "bank": AccountCategory.ASSET,
    "accounts_receivable": AccountCategory.ASSET,
    "guest_ledger": AccountCategory.ASSET,
    "ecommerce_receivable": AccountCategory.ASSET,
    "inventory": AccountCategory.ASSET,
    "input_cgst": AccountCategory.ASSET,
    "input_sgst": AccountCategory.ASSET,
    "input_igst": AccountCategory.ASSET,
    "input_cess": AccountCategory.ASSET,
    "tds_receivable": AccountCategory.ASSET,
    "accounts_payable": AccountCategory.LIABILITY,
    "output_cgst": AccountCategory.LIABILITY,
    "output_sgst": AccountCategory.LIABILITY,
    "output_igst": AccountCategory.LIABILITY,
    "output_cess": AccountCategory.LIABILITY,
    "gst_payable": AccountCategory.LIABILITY,
    "tds_payable": AccountCategory.LIABILITY,
    "cost_of_goods_sold": AccountCategory.EXPENSE,
    "purchase_expense": AccountCategory.EXPENSE,
}


def seed_accounts(db, tenant_id=TENANT, roles=None) -> dict[str, int]:
    """
    Create the default-coded account for each role.

    Returns {role: account_id}. With roles=None every role in
    the default mapping table is seeded.
    """
    service = LedgerService(db, RecordingEventPublisher())
    accounts = {}
    for role in roles or DEFAULT_ACCOUNT_MAPPINGS:
        account = service.create_account(tenant_id, AccountCreate(
            code=DEFAULT_ACCOUNT_MAPPINGS[role],
            name=role.replace("_", " ").title(),
            category=ROLE_CATEGORIES[role],
        ))
        accounts[role] = account.id
    return accounts


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    This ensures each test starts with a clean database.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def publisher():
    """Collects published domain events for assertions."""
    return RecordingEventPublisher()


@pytest.fixture
def accounts(db_session):
    """Every default-mapped account, seeded for TENANT."""
    return seed_accounts(db_session)


@pytest.fixture
def client(db_session, publisher):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database, and
    every request is sent as TENANT.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_publisher] = lambda: publisher
    test_client = TestClient(app)
    test_client.headers.update({"X-Tenant-ID": TENANT})
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_id():
    return TENANT


@pytest.fixture
def seed(db_session):
    """seed(tenant_id=TENANT, roles=None) -> {role: account_id}."""
    def _seed(tenant_id=TENANT, roles=None):
        return seed_accounts(db_session, tenant_id, roles)
    return _seed
