# client side of the stock ledger
# the product cache gets the new counter at once; the server applies the same change with
# its conditional update and keeps its own ledger row under the same transaction id

import logging

from sigmavie.catalog import apply_stock_delta, resolve_stock
from sigmavie.errors import InsufficientStockError, VariantNotFoundError
from sigmavie.utils import new_id, now_ms

logger = logging.getLogger(__name__)

IMPORT = 'IMPORT'
EXPORT = 'EXPORT'


class InventoryLedger:
    def __init__(self, products, transactions, gateway, runner, outbox=None):
        self.products = products
        self.transactions = transactions
        self.gateway = gateway
        self.runner = runner
        self.outbox = outbox

    def slot(self, product, size=None, color=None):
        # the variant a size/color request lands on, as the catalog spells it
        index, _ = resolve_stock(product, size, color)
        if index is None:
            return None, None
        variant = product['variants'][index]
        return variant.get('size') or None, variant.get('color') or None

    def apply_local(self, product_id, delta, size=None, color=None):
        products = self.products.cached()
        product = next((p for p in products if str(p['id']) == str(product_id)), None)
        if product is None:
            logger.warning('stock change for unknown product %s', product_id)
            return False
        try:
            new_stock = apply_stock_delta(product, delta, size, color)
        except (InsufficientStockError, VariantNotFoundError) as err:
            logger.warning('stock change %+d on product %s refused: %s', delta, product_id, err.message)
            return False
        self.products.save(products)
        logger.debug('product %s slot %r now %d', product_id, (size, color), new_stock)
        return True

    def update_stock(self, product_id, delta, size=None, color=None, note=''):
        delta = int(delta)
        product = self.products.get_product(product_id)
        if delta == 0 or product is None:
            return False
        try:
            size, color = self.slot(product, size, color)
        except VariantNotFoundError:
            logger.warning('product %s has no variant %r', product_id, (size, color))
            return False
        if not self.apply_local(product_id, delta, size, color):
            return False

        now = now_ms()
        entry = self.transactions.record(
            product, IMPORT if delta > 0 else EXPORT, abs(delta), size, color,
            note=note, transaction_id=new_id('TX', now), now=now,
        )
        payload = {
            'id': product['id'],
            'quantityChange': delta,
            'size': size,
            'color': color,
            'note': note,
            'transactionId': entry['id'],
            'timestamp': now,
        }
        result = self.gateway.post('products/stock', payload)
        if result.success:
            self.transactions.mark_synced(entry['id'], (result.data or {}).get('transaction'))
        elif result.retryable and self.outbox is not None:
            self.outbox.enqueue('stock', 'POST', 'products/stock', payload)
        else:
            # the server said no, its counters win
            logger.error('stock change on product %s rejected: %s', product_id, result.message)
            self.apply_local(product_id, -delta, size, color)
            self.transactions.discard([entry['id']])
            self.runner.submit(self.products.force_reload)
            self.runner.submit(self.transactions.force_reload)
            return False
        return True
