from sigmavie.client import events

from conftest import register


def add_cheap_products(admin):
    admin.post('/api/products', json={'id': 601, 'name': 'Khăn Lụa', 'price': 150000, 'stock': 5})
    admin.post('/api/products', json={'id': 602, 'name': 'Tất Len', 'price': 50000, 'stock': 10})


def test_carts_do_not_leak_between_accounts(shop, dress):
    shop.products.force_reload()
    shop.cart().add({'id': 101}, 1, 'M', 'Black')
    assert shop.cart().count() == 1

    register(shop)
    assert shop.cart().get_items() == []
    shop.cart().add({'id': 101}, 2, 'L', 'Black')

    shop.customers.logout()
    items = shop.cart().get_items()
    assert [(i['selectedSize'], i['quantity']) for i in items] == [('M', 1)]

    shop.customers.login('lan@example.com', 'secret1')
    assert [(i['selectedSize'], i['quantity']) for i in shop.cart().get_items()] == [('L', 2)]


def test_quantity_is_capped_at_stock(shop, dress, listen):
    shop.products.force_reload()
    updates = listen(events.CART_UPDATED)
    cart = shop.cart()
    cart.add({'id': 101}, 2, 'M', 'Black')
    result = cart.add({'id': 101}, 2, 'M', 'Black')
    assert result['message'] == 'Xin lỗi, phân loại này chỉ còn lại 3 sản phẩm.'
    assert cart.get_items()[0]['quantity'] == 3
    assert len(updates) == 2

    assert not cart.add({'id': 101}, 1, 'M', 'White')['success']
    cart.update_quantity(101, 10, 'M', 'Black')
    assert cart.count() == 3
    cart.update_quantity(101, 0, 'M', 'Black')
    assert cart.get_items() == []


def test_price_is_locked_when_added(shop, admin, dress):
    shop.products.force_reload()
    cart = shop.cart()
    cart.add({'id': 101}, 1, 'L', 'Black')
    admin.post('/api/products', json=dict(dress, price=1500000))
    shop.products.force_reload()
    assert cart.get_items()[0]['selectedPrice'] == 1200000
    assert cart.subtotal() == 1200000
    cart.remove(101, 'L', 'Black')
    assert cart.count() == 0


def test_checkout_clears_the_cart(shop, admin):
    add_cheap_products(admin)
    shop.products.force_reload()
    cart = shop.cart()
    cart.add({'id': 601}, 1)
    cart.add({'id': 602}, 2)

    result = shop.checkout(shipping_address='Hải Phòng')
    assert result['success']
    # 250.000đ is under the free shipping threshold, the fee goes on the first order only
    assert [(o['productId'], o['shippingFee'], o['totalPrice']) for o in result['orders']] == [
        (601, 30000, 180000), (602, 0, 100000),
    ]
    assert cart.get_items() == []
    assert shop.checkout()['message'] == 'Giỏ hàng trống.'


def test_failed_checkout_keeps_the_cart(shop, admin):
    add_cheap_products(admin)
    shop.products.force_reload()
    shop.cart().add({'id': 601}, 5)
    admin.post('/api/products/stock', json={'id': 601, 'quantityChange': -5})

    result = shop.checkout()
    assert not result['success']
    assert shop.cart().count() == 5
