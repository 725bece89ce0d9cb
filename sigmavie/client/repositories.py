# entity repositories: the local cache is what the ui reads, the server is the truth
# reads answer from the cache at once and refresh it in the background the first time;
# writes land in the cache first and then go to the server. a failed write is reported,
# never rolled back, and queued in the outbox when the server could not be reached.

import json
import logging
import threading

from sigmavie.catalog import DEFAULT_CATEGORIES, total_variant_stock
from sigmavie.client import events
from sigmavie.client.sync import Poller, SyncState
from sigmavie.money import parse_optional_price, parse_price
from sigmavie.utils import new_id, new_product_id, now_ms

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = 'Không kết nối được máy chủ. Vui lòng thử lại sau.'


def _same(a, b):
    return json.dumps(a, sort_keys=True, ensure_ascii=False) == json.dumps(b, sort_keys=True, ensure_ascii=False)


def _key(value):
    # ids arrive as ints from the api and as strings from forms
    return str(value)


class CachedRepository:
    key = None
    entity = None
    event = None

    def __init__(self, store, gateway, runner, outbox=None):
        self.store = store
        self.gateway = gateway
        self.runner = runner
        self.outbox = outbox
        self.state = SyncState.UNSYNCED
        self._state_lock = threading.Lock()

    def default(self):
        return []

    def cached(self):
        return self.store.get(self.key, self.default())

    def get(self):
        data = self.cached()
        with self._state_lock:
            first_read = self.state is SyncState.UNSYNCED
            if first_read:
                self.state = SyncState.SYNCING
        if first_read:
            self.runner.submit(self._background_sync)
        return data

    def _background_sync(self):
        try:
            self.refresh()
        finally:
            # passive sync happens once per instance, even when the fetch failed
            self.state = SyncState.SYNCED

    def fetch_remote(self):
        return self.gateway.fetch_list(self.entity)

    def reconcile(self, remote):
        return remote

    def refresh(self):
        remote = self.fetch_remote()
        if remote is None:
            logger.debug('%s: server copy unknown, keeping the cache', self.key)
            return False
        merged = self.reconcile(remote)
        if merged is None:
            return False
        return self.replace(merged)

    def replace(self, data):
        if _same(data, self.cached()):
            return False
        self.store.set(self.key, data)
        events.emit(self.event, self)
        return True

    def force_reload(self):
        self.state = SyncState.SYNCING
        try:
            self.refresh()
        finally:
            self.state = SyncState.SYNCED
        return self.cached()

    def save(self, data):
        self.store.set(self.key, data)
        events.emit(self.event, self)

    def push(self, kind, method, path, payload=None, order_ids=None):
        result = self.gateway.send(method, path, payload)
        if result.success:
            return result
        if result.retryable and self.outbox is not None:
            self.outbox.enqueue(kind, method, path, payload, order_ids=order_ids)
        else:
            logger.error('%s %s rejected: %s', method, path, result.message)
        return result


def normalize_product(product, now=None):
    product = dict(product)
    if product.get('id') in (None, ''):
        product['id'] = new_product_id(now)
    product['price'] = parse_price(product.get('price'))
    product['salePrice'] = parse_optional_price(product.get('salePrice'))
    product['importPrice'] = parse_price(product.get('importPrice'))
    product['isFlashSale'] = bool(product.get('isFlashSale'))
    variants = [dict(v, stock=int(v.get('stock') or 0)) for v in product.get('variants') or []]
    product['variants'] = variants
    if variants:
        product['stock'] = total_variant_stock(product)
    else:
        product['stock'] = int(product.get('stock') or 0)
    return product


class ProductRepository(CachedRepository):
    key = 'sigma_vie_products'
    entity = 'products'
    event = events.PRODUCTS_UPDATED

    def get_products(self):
        return self.get()

    def get_product(self, product_id):
        for product in self.cached():
            if _key(product['id']) == _key(product_id):
                return product
        return None

    def add_product(self, product):
        product = normalize_product(product)
        self.save([product] + [p for p in self.cached() if _key(p['id']) != _key(product['id'])])
        return self._push_product(product)

    def update_product(self, product):
        product = normalize_product(product)
        products = self.cached()
        for index, item in enumerate(products):
            if _key(item['id']) == _key(product['id']):
                products[index] = product
                break
        else:
            products.insert(0, product)
        self.save(products)
        return self._push_product(product)

    def _push_product(self, product):
        result = self.push('product', 'POST', self.entity, product)
        saved = (result.data or {}).get('product') if result.success else None
        if saved:
            # the server keeps its own counters for variants it already had
            self.save([saved if _key(p['id']) == _key(saved['id']) else p for p in self.cached()])
        return result

    def delete_product(self, product_id):
        self.save([p for p in self.cached() if _key(p['id']) != _key(product_id)])
        return self.push('product', 'DELETE', f'{self.entity}/{product_id}')


class CategoryRepository(CachedRepository):
    key = 'sigma_vie_categories'
    entity = 'categories'
    event = events.CATEGORIES_UPDATED

    def default(self):
        return [dict(c) for c in DEFAULT_CATEGORIES]

    def reconcile(self, remote):
        # an empty server list never wipes the local categories
        return remote or None

    def get_categories(self):
        return self.get()

    def add_category(self, name, description=''):
        category = {'id': f'cat_{now_ms()}', 'name': name, 'description': description}
        self.save(self.cached() + [category])
        return self.push('category', 'POST', self.entity, category)

    def update_category(self, category):
        categories = [dict(c, **category) if c['id'] == category['id'] else c for c in self.cached()]
        self.save(categories)
        merged = next((c for c in categories if c['id'] == category['id']), category)
        return self.push('category', 'POST', self.entity, merged)

    def delete_category(self, category_id):
        self.save([c for c in self.cached() if c['id'] != category_id])
        return self.push('category', 'DELETE', f'{self.entity}/{category_id}')


class TransactionRepository(CachedRepository):
    key = 'sigma_vie_transactions'
    entity = 'inventory'
    event = events.TRANSACTIONS_UPDATED

    def get_transactions(self):
        return self.get()

    def reconcile(self, remote):
        known = {t['id'] for t in remote}
        pending = [t for t in self.cached() if t.get('syncPending') and t['id'] not in known]
        return sorted(pending + remote, key=lambda t: t.get('timestamp') or 0, reverse=True)

    def record(self, product, kind, quantity, size=None, color=None, note='',
               order_id=None, transaction_id=None, pending=True, now=None):
        now = now if now is not None else now_ms()
        entry = {
            'id': transaction_id or new_id('TX', now),
            'productId': product['id'],
            'productName': product.get('name'),
            'type': kind,
            'quantity': abs(int(quantity)),
            'selectedSize': size or None,
            'selectedColor': color or None,
            'orderId': order_id,
            'note': note,
            'timestamp': now,
        }
        if pending:
            entry['syncPending'] = True
        self.save([entry] + [t for t in self.cached() if t['id'] != entry['id']])
        return entry

    def mark_synced(self, transaction_id, server_entry=None):
        rows = []
        for row in self.cached():
            if row['id'] == transaction_id:
                row = dict(server_entry) if server_entry else {k: v for k, v in row.items() if k != 'syncPending'}
            rows.append(row)
        self.save(rows)

    def discard(self, transaction_ids):
        self.save([t for t in self.cached() if t['id'] not in transaction_ids])


class CustomerRepository(CachedRepository):
    key = 'sigma_vie_customers'
    entity = 'customers'
    event = events.CUSTOMERS_UPDATED
    session_key = 'sigma_vie_current_customer'

    def __init__(self, store, gateway, runner, outbox=None, session=None):
        super().__init__(store, gateway, runner, outbox)
        self.session = session
        self._sync_lock = threading.Lock()
        self._poller = None

    def get_customers(self):
        return self.get()

    def fetch_remote(self):
        # the full list is back office data
        if not self.gateway.is_admin:
            return None
        return super().fetch_remote()

    def current_customer(self):
        return self.session.get(self.session_key)

    def _remember(self, customer):
        customers = [c for c in self.cached() if c['id'] != customer['id']]
        self.save([customer] + customers)

    def sync_with_server(self):
        if not self._sync_lock.acquire(blocking=False):
            return False
        try:
            changed = self.refresh()
            current = self.current_customer()
            if current is None:
                return changed
            fresh = self.gateway.fetch_by_key(self.entity, current['id'])
            if fresh is None or _same(fresh, current):
                return changed
            self.session.set(self.session_key, fresh)
            self._remember(fresh)
            return True
        finally:
            self._sync_lock.release()

    def start_polling(self, interval=30):
        if self._poller is None:
            self._poller = Poller(interval, self.sync_with_server, name='sigmavie-customer-sync')
        self._poller.start()
        return self._poller

    def stop_polling(self):
        if self._poller is not None:
            self._poller.stop()

    def _find_duplicate(self, data, exclude_id=None):
        checks = (
            ('email', 'Email này đã được đăng ký.'),
            ('phoneNumber', 'Số điện thoại này đã được đăng ký.'),
            ('cccdNumber', 'Số CCCD này đã được đăng ký.'),
        )
        for field, message in checks:
            value = data.get(field)
            if not value:
                continue
            if any(c.get(field) == value and c['id'] != exclude_id for c in self.cached()):
                return message
        return None

    def register(self, data):
        if any(not data.get(f) for f in ('fullName', 'password', 'email', 'phoneNumber')):
            return {'success': False, 'message': 'Vui lòng điền đầy đủ thông tin.'}

        self.force_reload()
        duplicate = self._find_duplicate(data)
        if duplicate:
            return {'success': False, 'message': duplicate}

        payload = dict(data, id=data.get('id') or new_id('CUST'))
        result = self.gateway.post(f'{self.entity}/register', payload)
        if not result.success:
            if not result.reachable:
                logger.error('registration failed, server unreachable')
                return {'success': False, 'message': OFFLINE_MESSAGE}
            return {'success': False, 'message': result.message}

        customer = result.data['customer']
        self._remember(customer)
        self.session.set(self.session_key, customer)
        logger.info('customer %s registered', customer['id'])
        return {'success': True, 'message': result.message or 'Đăng ký thành công!', 'customer': customer}

    def login(self, identifier, password):
        result = self.gateway.post(f'{self.entity}/login', {'identifier': identifier, 'password': password})
        if not result.success:
            logger.error('customer login failed for %s: %s', identifier, result.message)
            message = result.message if result.reachable else OFFLINE_MESSAGE
            return {'success': False, 'message': message}
        customer = result.data['customer']
        self.session.set(self.session_key, customer)
        self._remember(customer)
        return {'success': True, 'message': result.message, 'customer': customer}

    def logout(self):
        self.session.remove(self.session_key)
        # orders belong to whoever was logged in
        self.store.set('sigma_vie_orders', [])
        events.emit(events.ORDERS_UPDATED, self)
        events.emit(self.event, self)

    def update_customer(self, customer_id, changes):
        duplicate = self._find_duplicate(changes, exclude_id=customer_id)
        if duplicate:
            return {'success': False, 'message': duplicate}

        # the password only ever travels to the server
        visible = {k: v for k, v in changes.items() if k != 'password'}
        updated = None
        customers = []
        for customer in self.cached():
            if customer['id'] == customer_id:
                customer = updated = dict(customer, **visible)
            customers.append(customer)
        self.save(customers)
        current = self.current_customer()
        if current and current['id'] == customer_id:
            self.session.set(self.session_key, dict(current, **visible))

        path = f'{self.entity}/{customer_id}'
        if 'password' not in changes:
            result = self.push('customer', 'POST', path, changes)
        else:
            # a password change is never queued, the outbox lives on disk
            result = self.gateway.send('POST', path, changes)
            if not result.success and result.retryable:
                if visible and self.outbox is not None:
                    self.outbox.enqueue('customer', 'POST', path, visible)
                logger.error('password change for customer %s failed, server unreachable', customer_id)
                return {'success': False, 'message': OFFLINE_MESSAGE, 'customer': updated}
            if not result.success:
                logger.error('POST %s rejected: %s', path, result.message)
        if result.success and result.data:
            updated = result.data.get('customer') or updated
        return {'success': result.success, 'message': result.message, 'customer': updated}

    def delete_customer(self, customer_id):
        self.save([c for c in self.cached() if c['id'] != customer_id])
        return self.push('customer', 'DELETE', f'{self.entity}/{customer_id}')

    def recover_from_orders(self, orders):
        # orders keep a snapshot of the buyer, enough to rebuild a lost customer record
        known = {c['id'] for c in self.cached()}
        recovered = []
        for order in sorted(orders, key=lambda o: o.get('timestamp') or 0):
            customer_id = order.get('customerId')
            if not customer_id or customer_id in known:
                continue
            contact = order.get('customerContact') or ''
            customer = {
                'id': customer_id,
                'fullName': order.get('customerName') or 'Khách hàng',
                'email': contact if '@' in contact else None,
                'phoneNumber': contact if contact and '@' not in contact else None,
                'address': order.get('customerAddress'),
                'createdAt': order.get('timestamp') or now_ms(),
            }
            known.add(customer_id)
            recovered.append(customer)
        if not recovered:
            return []
        self.save(recovered + self.cached())
        for customer in recovered:
            self.push('customer', 'POST', self.entity, customer)
        logger.warning('recovered %d customers from order history', len(recovered))
        return recovered


class SettingsRepository(CachedRepository):
    entity = 'settings'

    def __init__(self, store, gateway, runner, outbox=None, key=None, remote_key=None,
                 defaults=None, event=None):
        super().__init__(store, gateway, runner, outbox)
        self.key = key
        self.remote_key = remote_key
        self.defaults = defaults or {}
        self.event = event

    def default(self):
        return dict(self.defaults)

    def get(self):
        return dict(self.defaults, **super().get())

    def fetch_remote(self):
        return self.gateway.fetch_by_key(self.entity, self.remote_key)

    def reconcile(self, remote):
        # an empty blob means nobody saved these settings on the server yet
        if not remote:
            return None
        return dict(self.defaults, **remote)

    def update(self, changes):
        settings = dict(self.get(), **changes)
        self.save(settings)
        return self.push('settings', 'POST', f'{self.entity}/{self.remote_key}', settings)


class ShippingSettingsRepository(SettingsRepository):
    def calculate_fee(self, subtotal):
        settings = self.get()
        if not settings.get('enabled'):
            return 0
        if subtotal >= parse_price(settings.get('freeShipThreshold')):
            return 0
        return parse_price(settings.get('baseFee'))


# name: (cache key, server key, change event, defaults)
SETTINGS = {
    'bank': ('sigma_vie_bank_settings', 'bank', 'sigma_vie_bank_settings_update',
             {'bankId': '', 'accountNumber': '', 'accountName': '', 'template': 'compact'}),
    'shipping': ('sigma_vie_shipping_settings', 'shipping', 'sigma_vie_shipping_settings_update',
                 {'baseFee': 30000, 'freeShipThreshold': 500000, 'enabled': True}),
    'header': ('sigma_vie_header_settings', 'header', 'sigma_vie_header_settings_update',
               {'brandName': 'Sigma Vie', 'sticky': True}),
    'home': ('sigma_vie_home_page_settings', 'home-page', 'sigma_vie_home_settings_update',
             {'heroTitle': 'Sigma Vie', 'heroSubtitle': '', 'showFlashSale': True}),
    'about_content': ('sigma_vie_about_page', 'about-content', 'sigma_vie_about_content_update',
                      {'title': 'Về Sigma Vie', 'content': ''}),
    'about_settings': ('sigma_vie_about_page_settings', 'about-settings', 'sigma_vie_about_settings_update',
                       {'backgroundColor': '#ffffff', 'textColor': '#111111'}),
    'livechat': ('sigma_vie_livechat_settings', 'livechat-ui', 'sigma_vie_livechat_ui_update',
                 {'enabled': True, 'welcomeMessage': 'Xin chào! Sigma Vie có thể giúp gì cho bạn?'}),
    'social': ('sigma_vie_social_settings', 'social', 'sigma_vie_social_settings_update',
               {'facebook': 'https://facebook.com', 'instagram': 'https://instagram.com',
                'twitter': 'https://twitter.com', 'tiktok': 'https://tiktok.com'}),
    'store': ('sigma_vie_store_settings', 'store', 'sigma_vie_store_settings_update',
              {'name': 'Sigma Vie Store', 'phoneNumber': '0912.345.678',
               'address': 'Hà Nội, Việt Nam', 'email': 'contact@sigmavie.com'}),
    'product_page': ('sigma_vie_product_ui_settings', 'product-ui', 'sigma_vie_product_ui_update',
                     {'showStock': True, 'showSku': False}),
}


def settings_repositories(store, gateway, runner, outbox=None):
    repos = {}
    for name, (key, remote_key, event, defaults) in SETTINGS.items():
        cls = ShippingSettingsRepository if name == 'shipping' else SettingsRepository
        repos[name] = cls(store, gateway, runner, outbox, key=key, remote_key=remote_key,
                          defaults=defaults, event=event)
    return repos