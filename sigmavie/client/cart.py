# shopping cart, one per customer on a shared machine
# the price is locked in when the item goes in; quantities never exceed the variant's stock

import logging

from sigmavie.catalog import available_stock, normalize
from sigmavie.client import events
from sigmavie.errors import InsufficientStockError
from sigmavie.money import effective_unit_price
from sigmavie.utils import now_ms

logger = logging.getLogger(__name__)

CART_PREFIX = 'sigma_vie_cart_'


def cart_key(customer):
    return f'{CART_PREFIX}{customer["id"]}' if customer else f'{CART_PREFIX}guest'


def _same_item(item, product_id, size, color):
    return (str(item['id']) == str(product_id)
            and normalize(item.get('selectedSize')) == normalize(size)
            and normalize(item.get('selectedColor')) == normalize(color))


class Cart:
    def __init__(self, store, products, customers):
        self.store = store
        self.products = products
        self.customers = customers

    @property
    def key(self):
        # looked up on every call so logging in or out switches carts
        return cart_key(self.customers.current_customer())

    def get_items(self):
        return self.store.get(self.key, [])

    def _save(self, items):
        self.store.set(self.key, items)
        events.emit(events.CART_UPDATED, self, key=self.key)

    def _available(self, product_id, size, color):
        product = self.products.get_product(product_id)
        return available_stock(product, size, color) if product else 0

    def add(self, product, quantity=1, size=None, color=None, now=None):
        product = self.products.get_product(product['id']) or product
        available = available_stock(product, size, color)
        if available <= 0:
            return {'success': False, 'message': 'Sản phẩm đã hết hàng.'}

        items = self.get_items()
        item = next((i for i in items if _same_item(i, product['id'], size, color)), None)
        if item is None:
            item = {
                'id': product['id'],
                'name': product.get('name'),
                'imageUrl': product.get('imageUrl'),
                'selectedSize': size or None,
                'selectedColor': color or None,
                'selectedPrice': effective_unit_price(product, now if now is not None else now_ms()),
                'quantity': 0,
            }
            items.append(item)

        wanted = item['quantity'] + int(quantity)
        item['quantity'] = min(wanted, available)
        self._save(items)
        if wanted > available:
            logger.info('cart quantity for product %s capped at %d', product['id'], available)
            return {'success': True, 'message': InsufficientStockError(available).message, 'item': item}
        return {'success': True, 'message': 'Đã thêm vào giỏ hàng.', 'item': item}

    def update_quantity(self, product_id, quantity, size=None, color=None):
        if quantity <= 0:
            return self.remove(product_id, size, color)
        items = self.get_items()
        for item in items:
            if _same_item(item, product_id, size, color):
                item['quantity'] = min(int(quantity), self._available(product_id, size, color))
                if item['quantity'] <= 0:
                    items.remove(item)
                break
        self._save(items)
        return items

    def remove(self, product_id, size=None, color=None):
        items = [i for i in self.get_items() if not _same_item(i, product_id, size, color)]
        self._save(items)
        return items

    def clear(self):
        self._save([])

    def subtotal(self):
        return sum(i['selectedPrice'] * i['quantity'] for i in self.get_items())

    def count(self):
        return sum(i['quantity'] for i in self.get_items())

    def lines(self):
        return [
            {'product': {'id': i['id']}, 'quantity': i['quantity'],
             'size': i.get('selectedSize'), 'color': i.get('selectedColor')}
            for i in self.get_items()
        ]
