# orders on the client: checkout, the local order cache and status changes
# a checkout is all or nothing. every line is checked against the cached stock before
# anything moves, the server takes the whole batch in one transaction, and a batch the
# server refuses is undone locally line by line.

import logging

from sigmavie.catalog import resolve_stock
from sigmavie.client import events
from sigmavie.client.ledger import EXPORT, IMPORT
from sigmavie.client.repositories import CachedRepository
from sigmavie.errors import InsufficientStockError, VariantNotFoundError
from sigmavie.money import effective_unit_price, order_total, parse_price
from sigmavie.utils import new_id, now_ms
from sigmavie.workflow import PAYMENT_METHODS, OrderStatus, check_transition, parse_status

logger = logging.getLogger(__name__)

ORDER_PLACED = 'Đặt hàng thành công!'
ORDER_QUEUED = 'Đặt hàng thành công! Đơn hàng sẽ được đồng bộ khi có kết nối.'


def _wire(order):
    return {k: v for k, v in order.items() if k != 'syncPending'}


class OrderRepository(CachedRepository):
    key = 'sigma_vie_orders'
    entity = 'orders'
    event = events.ORDERS_UPDATED

    def __init__(self, store, gateway, runner, outbox, products, transactions, customers, ledger):
        super().__init__(store, gateway, runner, outbox)
        self.products = products
        self.transactions = transactions
        self.customers = customers
        self.ledger = ledger

    def fetch_remote(self):
        if self.gateway.is_admin:
            return self.gateway.fetch_list(self.entity)
        customer = self.customers.current_customer()
        if customer is None:
            return None
        return self.gateway.fetch_list(self.entity, {'customerId': customer['id']})

    def reconcile(self, remote):
        # orders the server has not seen yet stay until their batch goes through
        known = {o['id'] for o in remote}
        pending = [o for o in self.cached() if o.get('syncPending') and o['id'] not in known]
        return sorted(pending + remote, key=lambda o: o.get('timestamp') or 0, reverse=True)

    def get_orders(self):
        return self.get()

    def get_order(self, order_id):
        return next((o for o in self.cached() if o['id'] == order_id), None)

    def get_orders_by_customer(self, customer_id):
        return [o for o in self.get() if o.get('customerId') == customer_id]

    def create_order(self, customer, product, quantity, payment_method='COD', shipping_fee=0,
                     size=None, color=None, shipping_address=None, now=None):
        line = {'product': product, 'quantity': quantity, 'size': size, 'color': color}
        result = self.place_batch(customer, [line], payment_method, shipping_fee, shipping_address, now)
        orders = result.pop('orders', [])
        if orders:
            result['order'] = orders[0]
        return result

    def _validate(self, lines, payment_method):
        # returns (resolved lines, error message)
        if not lines:
            return None, 'Giỏ hàng trống.'
        if payment_method not in PAYMENT_METHODS:
            return None, 'Phương thức thanh toán không hợp lệ.'

        resolved = []
        demand = {}
        for line in lines:
            try:
                quantity = int(line.get('quantity') or 0)
            except (TypeError, ValueError):
                quantity = 0
            if quantity <= 0:
                return None, 'Số lượng không hợp lệ.'

            requested = line.get('product') or {}
            product = self.products.get_product(requested.get('id'))
            if product is None:
                return None, 'Sản phẩm không tồn tại.'
            try:
                index, available = resolve_stock(product, line.get('size'), line.get('color'))
                size, color = self.ledger.slot(product, line.get('size'), line.get('color'))
            except VariantNotFoundError as err:
                return None, err.message

            # two lines on the same variant share its stock
            slot = (str(product['id']), index)
            demand[slot] = demand.get(slot, 0) + quantity
            if demand[slot] > available:
                return None, InsufficientStockError(available).message
            resolved.append((product, quantity, size, color))
        return resolved, None

    def _build_order(self, customer, product, quantity, size, color, payment_method,
                     shipping_fee, shipping_address, now):
        customer = customer or {}
        unit_price = effective_unit_price(product, now)
        return {
            'id': new_id('ORD', now),
            'customerId': customer.get('id'),
            'customerName': customer.get('fullName') or 'Khách vãng lai',
            'customerContact': customer.get('phoneNumber') or customer.get('email') or 'N/A',
            'customerAddress': shipping_address or customer.get('address') or 'Chưa cung cấp',
            'productId': product['id'],
            'productName': product.get('name'),
            'productSize': size,
            'productColor': color,
            'quantity': quantity,
            'unitPrice': unit_price,
            'totalPrice': order_total(unit_price, quantity, shipping_fee),
            'shippingFee': shipping_fee,
            'status': OrderStatus.PENDING.value,
            'paymentMethod': payment_method,
            'timestamp': now,
            'syncPending': True,
        }

    def place_batch(self, customer, lines, payment_method='COD', shipping_fee=0,
                    shipping_address=None, now=None):
        now = now if now is not None else now_ms()
        resolved, error = self._validate(lines, payment_method)
        if error:
            logger.warning('checkout refused: %s', error)
            return {'success': False, 'message': error}

        orders = []
        taken = []
        for position, (product, quantity, size, color) in enumerate(resolved):
            if not self.ledger.apply_local(product['id'], -quantity, size, color):
                # the cache moved under us since validation
                self._restock(taken)
                return {'success': False, 'message': 'Không đủ hàng trong kho. Vui lòng thử lại.'}
            taken.append((product['id'], quantity, size, color))
            fee = parse_price(shipping_fee) if position == 0 else 0
            orders.append(self._build_order(customer, product, quantity, size, color, payment_method,
                                            fee, shipping_address, now))
        self.save(orders + self.cached())

        payload = {'orders': [_wire(o) for o in orders]}
        result = self.gateway.post(self.entity, payload)
        if result.success:
            self.apply_server_orders((result.data or {}).get('orders') or [])
            for order, (product, quantity, size, color) in zip(orders, resolved):
                self.transactions.record(product, EXPORT, quantity, size, color,
                                         note=f'Đơn hàng trực tuyến ({order["id"]})', order_id=order['id'],
                                         transaction_id=f'{order["id"]}-EXPORT', pending=False, now=now)
            logger.info('placed %d orders', len(orders))
            return {'success': True, 'message': ORDER_PLACED, 'orders': [self.get_order(o['id']) for o in orders]}

        if result.retryable:
            for order, (product, quantity, size, color) in zip(orders, resolved):
                self.transactions.record(product, EXPORT, quantity, size, color,
                                         note=f'Đơn hàng trực tuyến ({order["id"]})', order_id=order['id'],
                                         transaction_id=f'{order["id"]}-EXPORT', now=now)
            self.outbox.enqueue('orders', 'POST', self.entity, payload, now=now,
                                order_ids=[o['id'] for o in orders])
            logger.warning('server unreachable, %d orders kept locally', len(orders))
            return {'success': True, 'message': ORDER_QUEUED, 'orders': orders}

        logger.error('checkout rejected by the server: %s', result.message)
        self.drop([o['id'] for o in orders])
        self._restock(taken)
        self.runner.submit(self.products.force_reload)
        return {'success': False, 'message': result.message}

    def _restock(self, taken):
        for product_id, quantity, size, color in taken:
            self.ledger.apply_local(product_id, quantity, size, color)

    def apply_server_orders(self, server_orders):
        by_id = {o['id']: o for o in server_orders}
        self.save([by_id.pop(o['id'], o) for o in self.cached()] + list(by_id.values()))
        for order_id in [o['id'] for o in server_orders]:
            self.transactions.mark_synced(f'{order_id}-EXPORT')

    def apply_status(self, order_id, server_order=None):
        # the server accepted a status change
        if server_order:
            self.save([server_order if o['id'] == order_id else o for o in self.cached()])
        self.transactions.mark_synced(f'{order_id}-IMPORT')
        return server_order

    def drop(self, order_ids):
        self.save([o for o in self.cached() if o['id'] not in order_ids])
        self.transactions.discard([f'{order_id}-EXPORT' for order_id in order_ids])

    def update_order_status(self, order_id, status):
        order = self.get_order(order_id)
        if order is None:
            return {'success': False, 'message': 'Không tìm thấy đơn hàng.'}
        requested = parse_status(status)
        if order['status'] == requested.value:
            return {'success': True, 'message': None, 'order': order}
        check_transition(order['status'], requested)

        if requested is OrderStatus.CANCELLED:
            # give back exactly what the order took, to the same variant
            restocked = self.ledger.apply_local(order['productId'], order['quantity'],
                                                order.get('productSize'), order.get('productColor'))
            product = self.products.get_product(order['productId'])
            if restocked and product is not None:
                self.transactions.record(product, IMPORT, order['quantity'], order.get('productSize'),
                                         order.get('productColor'),
                                         note=f'Hoàn trả tồn kho do hủy đơn hàng {order_id}',
                                         order_id=order_id, transaction_id=f'{order_id}-IMPORT')

        order = dict(order, status=requested.value)
        self.save([order if o['id'] == order_id else o for o in self.cached()])

        path = f'{self.entity}/{order_id}/status'
        payload = {'status': requested.value}
        if order.get('syncPending') or self.outbox.holds(order_id):
            # the order or an earlier change to it is still queued; the flush keeps them in line
            self.outbox.enqueue('order_status', 'POST', path, payload, order_ids=[order_id])
            return {'success': True, 'message': None, 'order': order}

        result = self.push('order_status', 'POST', path, payload, order_ids=[order_id])
        if result.success:
            order = self.apply_status(order_id, (result.data or {}).get('order')) or order
        elif not result.retryable:
            self.runner.submit(self.force_reload)
            self.runner.submit(self.products.force_reload)
            return {'success': False, 'message': result.message, 'order': order}
        return {'success': True, 'message': result.message, 'order': order}

    def sync_all_to_server(self):
        pending = [o for o in self.cached() if o.get('syncPending')]
        if not pending:
            return True
        # replays are harmless, the server skips order ids it already has
        result = self.gateway.post(self.entity, {'orders': [_wire(o) for o in pending]})
        if result.success:
            self.apply_server_orders((result.data or {}).get('orders') or [])
        else:
            logger.warning('could not push %d pending orders: %s', len(pending), result.message)
        return result.success
