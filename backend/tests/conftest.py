"""
Pytest fixtures for retailcore backend tests.

Two flavours of the same core:
- core: MemoryStore-backed, no Flask needed; used for unit and concurrency tests
- app/sql_core/client: Flask app on in-memory SQLite with SqlAlchemyStore
"""

import pytest

from retailcore import create_app
from retailcore.collaborators import DictCatalog, StaticPolicyProvider
from retailcore.core import build_core
from retailcore.extensions import db
from retailcore.persistence import MemoryStore
from retailcore.services.concurrency import RetryPolicy
from retailcore.services.events import InMemoryEventPublisher


TENANT = 1
OTHER_TENANT = 2
BRANCH_A = 1
BRANCH_B = 2
SHIRT = 100   # catalog price 1000
JACKET = 200  # catalog price 2500
UNLISTED = 999

CATALOG_PRICES = {
    (TENANT, SHIRT): 1000,
    (TENANT, JACKET): 2500,
    (OTHER_TENANT, SHIRT): 1000,
}

HEADERS = {"X-Tenant-Id": str(TENANT), "X-Actor-Id": "7", "X-Branch-Id": str(BRANCH_A)}


@pytest.fixture
def catalog():
    return DictCatalog(CATALOG_PRICES)


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def policy():
    return StaticPolicyProvider()


@pytest.fixture
def store():
    return MemoryStore(lock_timeout=5.0)


@pytest.fixture
def core(store, catalog, policy, publisher):
    return build_core(
        store,
        catalog=catalog,
        policy=policy,
        publisher=publisher,
        retry=RetryPolicy(attempts=3, backoff_base=0),
    )


@pytest.fixture
def seed(core):
    """Put quantity units of variant on the shelf at branch (tenant 1)."""
    def _seed(variant_id, branch_id, quantity, tenant_id=TENANT):
        core.ledger.credit(tenant_id, variant_id, branch_id, quantity, reason="RESTOCK")
    return _seed


@pytest.fixture
def sell(core):
    """Sell at catalog price, paid in cash."""
    def _sell(variant_id, quantity, branch_id=BRANCH_A, unit_price_cents=None):
        price = unit_price_cents if unit_price_cents is not None else CATALOG_PRICES[(TENANT, variant_id)]
        return core.transactions.create_transaction(
            TENANT,
            branch_id,
            [{"variant_id": variant_id, "quantity": quantity, "unit_price_cents": price}],
            payment_method="CASH",
        )
    return _sell


# -- Flask / SQLAlchemy -------------------------------------------------------

@pytest.fixture(scope='session')
def app_publisher():
    return InMemoryEventPublisher()


@pytest.fixture(scope='session')
def app(app_publisher):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'SQLITE_BEGIN_IMMEDIATE': False,
            'RETRY_BACKOFF_SECONDS': 0,
        },
        catalog=DictCatalog(CATALOG_PRICES),
        publisher=app_publisher,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app, app_publisher):
    """Empty every table before each test."""
    with app.app_context():
        db.session.rollback()
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app_publisher.clear()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def sql_core(app, db_session):
    return app.extensions["retailcore"]


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()
