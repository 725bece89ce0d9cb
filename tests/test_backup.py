import json

from conftest import make_storefront


def test_backup_and_restore(shop, runner, dress, tmp_path):
    shop.products.force_reload()
    shop.categories.get_categories()
    raw = shop.backup(now=42)
    backup = json.loads(raw)
    assert backup['timestamp'] == 42
    assert [p['id'] for p in backup['data']['products']] == [101]
    assert backup['data']['orders'] == []
    assert backup['data']['bankSettings'] == {}

    other = make_storefront(shop.gateway.opener, runner, tmp_path / 'other')
    result = other.restore(raw)
    assert result['success']
    assert 'products' in result['restored']
    assert other.products.get_product(101)['name'] == 'Đầm Lụa'
    assert len(other.categories.cached()) == 5


def test_restore_rejects_garbage(shop):
    assert not shop.restore('not json')['success']
    assert not shop.restore(json.dumps({'data': []}))['success']


def test_reset_orders(back_office, admin, dress):
    back_office.products.force_reload()
    back_office.orders.create_order(None, {'id': 101}, 1, size='M', color='Black')
    assert back_office.factory_reset('ORDERS')['success']
    assert not back_office.store.has('sigma_vie_orders')
    assert back_office.store.has('sigma_vie_products')
    assert admin.get('/api/orders').get_json() == []


def test_reset_needs_the_server_first(back_office, dress):
    back_office.products.force_reload()
    back_office.gateway.opener.online = False
    result = back_office.factory_reset('PRODUCTS')
    assert result == {'success': False, 'message': 'Không thể kết nối Server để thực hiện xóa sạch.'}
    assert back_office.products.get_product(101) is not None
    assert not back_office.factory_reset('EVERYTHING')['success']


def test_full_reset_clears_carts_and_shopper(back_office, admin, dress):
    back_office.products.force_reload()
    back_office.cart().add({'id': 101}, 1, 'M', 'Black')
    back_office.session.set('sigma_vie_current_customer', {'id': 'CUST-1'})
    back_office.store.set('sigma_vie_cart_CUST-1', [{'id': 101, 'quantity': 1}])

    assert back_office.factory_reset('full')['success']
    assert back_office.store.keys('sigma_vie_cart_') == []
    assert back_office.customers.current_customer() is None
    assert not back_office.store.has('sigma_vie_products')
    # still logged in as admin
    assert back_office.gateway.is_admin
    assert admin.get('/api/admin/logs').status_code == 200
