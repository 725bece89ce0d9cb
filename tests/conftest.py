import io
from urllib.error import HTTPError, URLError
from urllib.parse import urlsplit

import pytest

from sigmavie.app import create_app
from sigmavie.client import Storefront, events
from sigmavie.client.gateway import RemoteGateway
from sigmavie.client.store import LocalStore, MemoryStore
from sigmavie.config import ClientConfig, TestConfig
from sigmavie.models import db

API_URL = 'http://shop.test/api'


class CapturingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, channel, recipient, subject, body):
        self.sent.append({'channel': channel, 'recipient': recipient, 'subject': subject, 'body': body})
        return True


class _Response:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


# stands in for a urllib opener and answers from the flask test client.
# each opener has its own test client and cookie; online = False drops every request
class FlaskOpener:
    def __init__(self, app):
        self.client = app.test_client()
        self.online = True
        self.requests = []

    def open(self, req, timeout=None):
        self.requests.append((req.get_method(), req.full_url))
        if not self.online:
            raise URLError('connection refused')
        parts = urlsplit(req.full_url)
        path = parts.path + ('?' + parts.query if parts.query else '')
        headers = dict(req.header_items())
        resp = self.client.open(path, method=req.get_method(), data=req.data, headers=headers)
        body = resp.get_data()
        if resp.status_code >= 400:
            raise HTTPError(req.full_url, resp.status_code, resp.status, dict(resp.headers), io.BytesIO(body))
        return _Response(resp.status_code, body)


class DeferredRunner:
    # background jobs wait here until the test runs them
    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        self.jobs.append((fn, args, kwargs))

    def run_pending(self):
        while self.jobs:
            fn, args, kwargs = self.jobs.pop(0)
            fn(*args, **kwargs)


@pytest.fixture
def notifier():
    return CapturingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app(TestConfig, notifier=notifier)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    admin = app.test_client()
    resp = admin.post('/api/admin/login', json={'username': 'admin', 'password': 'admin'})
    assert resp.status_code == 200
    return admin


@pytest.fixture
def dress(admin):
    # one product, three variants: the workhorse of the order tests
    resp = admin.post('/api/products', json={
        'id': 101, 'name': 'Đầm Lụa', 'price': 1200000, 'importPrice': 500000,
        'variants': [
            {'size': 'M', 'color': 'Black', 'stock': 3},
            {'size': 'L', 'color': 'Black', 'stock': 5},
            {'size': 'M', 'color': 'White', 'stock': 0},
        ],
    })
    assert resp.status_code == 201
    return resp.get_json()['product']


@pytest.fixture
def bag(admin):
    resp = admin.post('/api/products', json={'id': 202, 'name': 'Túi Xách', 'price': '890.000₫', 'stock': 4})
    assert resp.status_code == 201
    return resp.get_json()['product']


@pytest.fixture
def opener(app):
    return FlaskOpener(app)


@pytest.fixture
def runner():
    return DeferredRunner()


def make_storefront(opener, runner, root, session=None):
    gateway = RemoteGateway(API_URL, opener=opener)
    return Storefront(
        config=ClientConfig(api_url=API_URL, cache_dir=str(root)),
        store=LocalStore(str(root)),
        session=session if session is not None else MemoryStore(),
        gateway=gateway,
        runner=runner,
    )


@pytest.fixture
def shop(opener, runner, tmp_path):
    return make_storefront(opener, runner, tmp_path / 'shop')


@pytest.fixture
def back_office(app, runner, tmp_path):
    front = make_storefront(FlaskOpener(app), runner, tmp_path / 'back-office')
    assert front.gateway.admin_login('admin', 'admin').success
    return front


def register(shop, **overrides):
    data = {
        'fullName': 'Nguyễn Thị Lan', 'email': 'lan@example.com', 'phoneNumber': '0901234567',
        'password': 'secret1', 'cccdNumber': '001199000001',
    }
    data.update(overrides)
    result = shop.customers.register(data)
    assert result['success'], result
    return result['customer']


@pytest.fixture
def listen():
    # listen('sigma_vie_products_update') -> list that fills up as the event fires
    connected = []

    def _listen(name):
        seen = []

        def receiver(sender, **data):
            seen.append(data)

        events.subscribe(name, receiver)
        connected.append((name, receiver))
        return seen

    yield _listen
    for name, receiver in connected:
        events.unsubscribe(name, receiver)
