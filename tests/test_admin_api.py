import re

from test_orders_api import order, place, set_status


def test_admin_login_attempts_are_logged(client, admin):
    assert client.post('/api/admin/login', json={'username': 'admin', 'password': 'x'}).status_code == 401
    logs = admin.get('/api/admin/logs').get_json()
    assert {(l['method'], l['status']) for l in logs} == {('PASSWORD', 'FAILED'), ('PASSWORD', 'SUCCESS')}
    assert client.get('/api/admin/logs').status_code == 401


def test_logout(admin):
    assert admin.post('/api/admin/logout').status_code == 200
    assert admin.get('/api/admin/dashboard').status_code == 401


def test_otp_login_works_once(client, notifier):
    resp = client.post('/api/admin/send-otp', json={})
    assert resp.get_json()['delivered'] == 1
    code = re.search(r'\b(\d{6})\b', notifier.sent[0]['body']).group(1)

    assert client.post('/api/admin/verify-otp', json={'code': 'abcdef'}).status_code == 401
    assert client.post('/api/admin/verify-otp', json={'code': code}).status_code == 200
    assert client.get('/api/admin/dashboard').status_code == 200
    assert client.post('/api/admin/verify-otp', json={'code': code}).status_code == 401


def test_settings_are_versioned_blobs(client, admin):
    assert client.get('/api/settings/shipping').get_json() == {}
    assert client.post('/api/settings/shipping', json={'baseFee': 25000}).status_code == 401

    first = admin.post('/api/settings/shipping', json={'baseFee': 25000}).get_json()
    second = admin.post('/api/settings/shipping', json={'baseFee': 20000, 'enabled': False}).get_json()
    assert (first['version'], second['version']) == (1, 2)
    # last write wins, whole blob
    assert client.get('/api/settings/shipping').get_json() == {'baseFee': 20000, 'enabled': False}
    assert admin.post('/api/settings/shipping', json=[1, 2]).status_code == 400


def test_dashboard_skips_cancelled_orders(client, admin, dress, bag):
    place(client, order('ORD-1', quantity=1), order('ORD-2', product_id=202, size=None, color=None))
    set_status(client, 'ORD-2', 'CANCELLED')

    report = admin.get('/api/admin/dashboard').get_json()
    assert report['totalRevenue'] == 1200000
    assert report['totalUnits'] == 1
    assert report['totalRevenueToday'] == 1200000
    assert len(report['dailySales']) == 7
    assert report['dailySales'][-1]['revenue'] == 1200000
    assert [p['productId'] for p in report['salesByProduct']] == [101]
    assert {p['id'] for p in report['lowStockProducts']} == {202}


def test_reset_scopes(client, admin, dress):
    place(client, order('ORD-1'))
    admin.post('/api/settings/store', json={'name': 'Sigma'})

    assert admin.post('/api/admin/reset', json={'scope': 'ALL'}).status_code == 400
    assert client.post('/api/admin/reset', json={'scope': 'FULL'}).status_code == 401

    assert admin.post('/api/admin/reset', json={'scope': 'ORDERS'}).status_code == 200
    assert admin.get('/api/orders').get_json() == []
    assert len(admin.get('/api/products').get_json()) == 1
    # the counters survive, and the fresh ledger opens with what is on the shelf
    assert admin.get('/api/inventory/audit').get_json()['consistent']
    assert sorted(t['quantity'] for t in admin.get('/api/inventory').get_json()) == [2, 5]

    assert admin.post('/api/admin/reset', json={'scope': 'FULL'}).status_code == 200
    assert admin.get('/api/products').get_json() == []
    assert admin.get('/api/categories').get_json() == []
    assert admin.get('/api/settings/store').get_json() == {}
    # the admin survives a full reset
    assert admin.get('/api/admin/logs').status_code == 200


def test_health(client):
    assert client.get('/api/health').get_json()['status'] == 'ok'
