# wires the client together: caches, gateway, background runner, outbox and repositories

import logging

from sigmavie.client import backup as backups
from sigmavie.client.cart import Cart
from sigmavie.client.gateway import RemoteGateway
from sigmavie.client.ledger import InventoryLedger
from sigmavie.client.ordering import OrderRepository
from sigmavie.client.repositories import (
    CategoryRepository, CustomerRepository, ProductRepository, TransactionRepository,
    settings_repositories,
)
from sigmavie.client.store import LocalStore, MemoryStore
from sigmavie.client.sync import Outbox, Poller, ThreadRunner
from sigmavie.config import ClientConfig

logger = logging.getLogger(__name__)


# everything a storefront or back office process needs to talk to the api.
# store is the persistent cache and session the per-process one
class Storefront:
    def __init__(self, config=None, store=None, session=None, gateway=None, runner=None):
        self.config = config or ClientConfig()
        self.store = store if store is not None else LocalStore(self.config.cache_dir)
        self.session = session if session is not None else MemoryStore()
        self.gateway = gateway or RemoteGateway(self.config.api_url, timeout=self.config.timeout)
        self.runner = runner or ThreadRunner()
        self.outbox = Outbox(self.store, self.gateway,
                             self.config.retry_base_seconds, self.config.retry_max_seconds)

        deps = (self.store, self.gateway, self.runner, self.outbox)
        self.products = ProductRepository(*deps)
        self.categories = CategoryRepository(*deps)
        self.transactions = TransactionRepository(*deps)
        self.customers = CustomerRepository(*deps, session=self.session)
        self.ledger = InventoryLedger(self.products, self.transactions, self.gateway, self.runner, self.outbox)
        self.orders = OrderRepository(*deps, products=self.products, transactions=self.transactions,
                                      customers=self.customers, ledger=self.ledger)
        self.settings = settings_repositories(*deps)
        self._outbox_poller = None

    def cart(self):
        return Cart(self.store, self.products, self.customers)

    def checkout(self, payment_method='COD', shipping_address=None, now=None):
        cart = self.cart()
        if not cart.get_items():
            return {'success': False, 'message': 'Giỏ hàng trống.'}
        fee = self.settings['shipping'].calculate_fee(cart.subtotal())
        result = self.orders.place_batch(self.customers.current_customer(), cart.lines(),
                                         payment_method, fee, shipping_address, now)
        if result['success']:
            cart.clear()
        return result

    def _settle(self, entry):
        result = entry['result']
        if entry['kind'] == 'orders':
            if result.success:
                self.orders.apply_server_orders((result.data or {}).get('orders') or [])
            else:
                self.orders.drop([o['id'] for o in entry['payload']['orders']])
        elif entry['kind'] == 'order_status':
            if result.success:
                self.orders.apply_status(entry['orderIds'][0], (result.data or {}).get('order'))
        elif entry['kind'] == 'stock':
            transaction_id = entry['payload']['transactionId']
            if result.success:
                self.transactions.mark_synced(transaction_id, (result.data or {}).get('transaction'))
            else:
                self.transactions.discard([transaction_id])

    def flush_outbox(self, now=None):
        settled = self.outbox.flush(now)
        for entry in settled:
            self._settle(entry)
        if settled:
            # the server is back, its counters and ledger win from here
            self.orders.force_reload()
            self.products.force_reload()
            self.transactions.force_reload()
            logger.info('outbox settled %d entries, %d still pending', len(settled), self.outbox.pending_count())
        return settled

    def start_polling(self):
        self.customers.start_polling(self.config.customer_poll_seconds)
        if self._outbox_poller is None:
            self._outbox_poller = Poller(self.config.outbox_poll_seconds, self.flush_outbox,
                                         name='sigmavie-outbox')
        self._outbox_poller.start()

    def stop_polling(self):
        self.customers.stop_polling()
        if self._outbox_poller is not None:
            self._outbox_poller.stop()

    def sync_status(self):
        return {
            'pending': self.outbox.pending_count(),
            'products': self.products.state.value,
            'orders': self.orders.state.value,
            'customers': self.customers.state.value,
        }

    def backup(self, now=None):
        return backups.generate_backup(self.store, now)

    def restore(self, raw):
        return backups.restore_backup(self.store, raw)

    def factory_reset(self, scope):
        return backups.factory_reset(self.store, self.gateway, scope, session=self.session)

    def close(self):
        self.stop_polling()
        if hasattr(self.runner, 'shutdown'):
            self.runner.shutdown()
