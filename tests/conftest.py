import pytest

from salesdesk import create_app
from salesdesk.database import get_session, create_all, drop_all
from salesdesk.services import catalog_service
from salesdesk.services.sales_service import SalesTransactionEngine

ACTOR_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema and database session for each test."""
    ctx = app.app_context()
    ctx.push()
    create_all()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_all()
    ctx.pop()


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def actor_headers():
    """Headers the upstream auth layer would forward."""
    return {'X-Actor-Id': str(ACTOR_ID)}


@pytest.fixture(scope='function')
def engine(session):
    return SalesTransactionEngine(session, compensation_timeout=1.0, compensation_attempts=2)


@pytest.fixture(scope='function')
def product(session):
    """Plain product: stock 10 at 10.00."""
    return catalog_service.create_product(
        session, name='Widget', price='10.00', stock=10, product_code='W-001', image='widget.png'
    )


@pytest.fixture(scope='function')
def other_product(session):
    """Second plain product: stock 6 at 4.50."""
    return catalog_service.create_product(
        session, name='Gadget', price='4.50', stock=6, product_code='G-001'
    )


@pytest.fixture(scope='function')
def sized_product(session):
    """Product with sub-categories: stock 5, Large 2 @ 20.00, Small 4 @ 12.50."""
    return catalog_service.create_product(
        session, name='T-Shirt', price='15.00', stock=5, product_code='TS-001',
        categories=[
            {'name': 'Large', 'quantity': 2, 'price': '20.00'},
            {'name': 'Small', 'quantity': 4, 'price': '12.50'},
        ]
    )

