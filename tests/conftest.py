import pytest
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from config import TestConfig
from app import create_app
from app.database import Base, get_session, create_tables
from app.services import quote_service
from app.services.auth_service import create_user


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app(TestConfig)
    with app.app_context():
        create_tables()
    return app


@pytest.fixture(autouse=True)
def clean_tables(app):
    """Empty every table after each test."""
    yield
    db_session = get_session()
    db_session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        db_session.execute(table.delete())
    db_session.commit()
    db_session.remove()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing."""
    return get_session()


@pytest.fixture
def fixed_now():
    return datetime(2026, 1, 12, 20, 30, 5, tzinfo=timezone.utc)


# ============================================================================
# ACTORS (identity provider shape)
# ============================================================================

@pytest.fixture
def vendedor():
    return {'id': 'u-1', 'email': 'valeria@tecnophone.co', 'displayName': 'Valeria Ríos',
            'role': 'vendedor', 'isActive': True}


@pytest.fixture
def revisor():
    return {'id': 'u-2', 'email': 'rodrigo@tecnophone.co', 'displayName': 'Rodrigo Peña',
            'role': 'revisor', 'isActive': True}


@pytest.fixture
def comprador():
    return {'id': 'u-3', 'email': 'camila@tecnophone.co', 'displayName': 'Camila Ortiz',
            'role': 'comprador', 'isActive': True}


@pytest.fixture
def inactive_comprador(comprador):
    return dict(comprador, isActive=False)


@pytest.fixture
def admin():
    return {'id': 'u-4', 'email': 'admin@tecnophone.co', 'displayName': 'Admin',
            'role': 'admin', 'isActive': True}


# ============================================================================
# QUOTES
# ============================================================================

def make_row(row_id, item_id, pvp_total, item_name=None, **fields):
    """Already-calculated row with just the fields grouping and resolution read."""
    row = {
        'id': row_id,
        'itemId': item_id,
        'itemName': item_name or item_id,
        'pvpTotal': Decimal(str(pvp_total)),
        'margen': Decimal('30'),
    }
    row.update(fields)
    return row


@pytest.fixture
def two_item_rows():
    """Item A with two options (100 and 150), item B with one option (200)."""
    return [
        make_row('a-1', 'item-a', 100, 'Portátil', mayorista='Ingram'),
        make_row('a-2', 'item-a', 150, 'Portátil', mayorista='Nexsys'),
        make_row('b-1', 'item-b', 200, 'Monitor', mayorista='Ingram'),
    ]


@pytest.fixture
def pending_quote(two_item_rows, vendedor):
    return {
        'id': 1,
        'cotizacion_id': 'COT-1760000000000-ABCDEFGHI',
        'clienteName': 'Colegio San José',
        'trmGlobal': Decimal('4000'),
        'rows': two_item_rows,
        'totalGeneral': Decimal('450'),
        'status': 'pending_approval',
        'date': '2026-01-10T15:00:00+00:00',
        'dateFormatted': '10/1/2026, 10:00:00 a. m.',
        'createdBy': vendedor['email'],
    }


@pytest.fixture
def draft_quote(vendedor, fixed_now):
    """Draft with one item and a costed option."""
    quote = quote_service.new_quote('Colegio San José', vendedor, trm_global=4000, now=fixed_now)
    row_id = quote['rows'][0]['id']
    quote = quote_service.update_row(quote, row_id, 'costoUSD', 100)
    return quote_service.update_row(quote, row_id, 'margen', 20)


@pytest.fixture
def approved_quote(pending_quote, revisor):
    from app.services.approval_service import approve_quote
    return approve_quote(pending_quote, {'item-a': 'a-2', 'item-b': 'b-1'}, {}, revisor)


# ============================================================================
# DATABASE USERS
# ============================================================================

@pytest.fixture
def make_user(session):
    """Factory: store a user and return its identity as a plain dict."""
    def _make_user(role, active=True, password='password123'):
        suffix = str(uuid.uuid4())[:8]
        user = create_user(
            session, f'{role}-{suffix}@tecnophone.co', f'{role.title()} {suffix}', role,
            password=password, active=active
        )
        return {'id': user.id, 'email': user.email, 'role': role, 'password': password}
    return _make_user


@pytest.fixture
def login(client):
    """Log a stored user into the test client."""
    def _login(user):
        response = client.post('/auth/login', json={
            'email': user['email'],
            'password': user['password'],
        })
        assert response.status_code == 200
        return response
    return _login
