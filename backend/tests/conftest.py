"""
Pytest fixtures for storepos backend tests.

Provides an in-memory database, catalog/customer factories, principal
headers for the test client and a fake media host.
"""

import pytest

from storepos import create_app
from storepos.extensions import db, media
from storepos.errors import MediaUnavailable
from storepos.models import Product, VariationCombination, Customer, StoreSettings


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'STORAGE_RETRY_ATTEMPTS': 2,
        'MEDIA_CLOUD_NAME': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        db.session.remove()
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


# =============================================================================
# PRINCIPALS
# =============================================================================

def principal_headers(user_id: str, role: str, name: str) -> dict:
    return {'X-User-Id': user_id, 'X-User-Role': role, 'X-User-Name': name}


@pytest.fixture
def admin_headers():
    return principal_headers('u-admin', 'admin', 'Alex Admin')


@pytest.fixture
def cashier_headers():
    return principal_headers('u-cashier', 'cashier', 'Casey Cashier')


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_product(db_session):
    """Factory: flat product, or variation product when `combinations` is given."""
    counter = {'n': 0}

    def _make(stock=10, price_cents=1000, category='General', combinations=None, **kwargs):
        counter['n'] += 1
        sku = kwargs.pop('sku', f"SKU-{counter['n']:03d}")
        product = Product(
            sku=sku,
            name=kwargs.pop('name', f"Product {counter['n']}"),
            category=category,
            purchase_price_cents=price_cents // 2,
            selling_price_cents=price_cents,
            stock=stock,
            **kwargs,
        )
        for position, (variations, combo_stock) in enumerate(combinations or []):
            values = [v for _, v in variations]
            product.variation_combinations.append(VariationCombination(
                position=position,
                combination_name=" / ".join(values),
                sku="-".join([sku, *(v.upper() for v in values)]),
                variations=[list(pair) for pair in variations],
                price_cents=price_cents,
                stock=combo_stock,
            ))
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def customer(db_session):
    c = Customer(name="Jordan Buyer", phone="0770000000", loyalty_points=0, total_purchases_cents=0)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def override_out_of_stock(db_session):
    settings = StoreSettings(override_out_of_stock=True)
    db_session.add(settings)
    db_session.commit()
    return settings


def sale_payload(*lines, customer_id=None, total_cents=None, points_used=0):
    """
    Build a sale request body from (product_id, quantity, unit_price_cents[, combination_id]) tuples.
    """
    items = []
    for line in lines:
        product_id, quantity, unit_price = line[:3]
        item = {
            'product_id': product_id,
            'quantity': quantity,
            'unit_price_cents': unit_price,
            'total_price_cents': unit_price * quantity,
        }
        if len(line) > 3 and line[3] is not None:
            item['variation_combination_id'] = line[3]
        items.append(item)

    subtotal = sum(i['total_price_cents'] for i in items)
    total = subtotal if total_cents is None else total_cents
    payload = {
        'items': items,
        'subtotal_cents': subtotal,
        'total_cents': total,
        'loyalty_points_used': points_used,
        'payments': [{'method': 'cash', 'amount_cents': max(total, 0)}],
    }
    if customer_id is not None:
        payload['customer_id'] = customer_id
    return payload


# =============================================================================
# MEDIA
# =============================================================================

class FakeMedia:
    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_deletes = False

    def upload(self, file, *, subfolder=None):
        n = len(self.uploaded) + 1
        url = f"https://res.cloudinary.com/demo/image/upload/v17000000{n}/storepos/{subfolder}/receipt{n}.jpg"
        self.uploaded.append(url)
        return url

    def delete(self, public_id):
        if self.fail_deletes:
            raise MediaUnavailable("Media host unreachable")
        self.deleted.append(public_id)


@pytest.fixture
def fake_media(monkeypatch):
    fake = FakeMedia()
    monkeypatch.setattr(media, 'upload', fake.upload)
    monkeypatch.setattr(media, 'delete', fake.delete)
    return fake
