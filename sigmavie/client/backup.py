# json backup of the local cache, restore, and factory reset
# a reset clears the server first; local keys go only once the server said yes, otherwise
# the next sync would push the old data straight back

import json
import logging

from sigmavie.client import events
from sigmavie.client.cart import CART_PREFIX
from sigmavie.client.sync import OUTBOX_KEY
from sigmavie.utils import now_ms

logger = logging.getLogger(__name__)

BACKUP_VERSION = '1.0'

KEYS = {
    'products': 'sigma_vie_products',
    'categories': 'sigma_vie_categories',
    'customers': 'sigma_vie_customers',
    'orders': 'sigma_vie_orders',
    'transactions': 'sigma_vie_transactions',
    'homeSettings': 'sigma_vie_home_page_settings',
    'aboutSettings': 'sigma_vie_about_page_settings',
    'aboutContent': 'sigma_vie_about_page',
    'headerSettings': 'sigma_vie_header_settings',
    'socialSettings': 'sigma_vie_social_settings',
    'bankSettings': 'sigma_vie_bank_settings',
    'storeSettings': 'sigma_vie_store_settings',
    'shippingSettings': 'sigma_vie_shipping_settings',
    'liveChatSettings': 'sigma_vie_livechat_settings',
    'productPageSettings': 'sigma_vie_product_ui_settings',
}

# entity lists default to empty, settings to an empty blob
LIST_KEYS = ('products', 'categories', 'customers', 'orders', 'transactions')

RESET_KEYS = {
    'ORDERS': ('orders', 'transactions'),
    'PRODUCTS': ('products', 'transactions', 'orders', 'categories'),
    'FULL': tuple(KEYS),
}

EVENTS = {
    'products': events.PRODUCTS_UPDATED,
    'categories': events.CATEGORIES_UPDATED,
    'customers': events.CUSTOMERS_UPDATED,
    'orders': events.ORDERS_UPDATED,
    'transactions': events.TRANSACTIONS_UPDATED,
}


def generate_backup(store, now=None):
    data = {}
    for name, key in KEYS.items():
        data[name] = store.get(key) if store.has(key) else ([] if name in LIST_KEYS else {})
    backup = {'timestamp': now if now is not None else now_ms(), 'version': BACKUP_VERSION, 'data': data}
    return json.dumps(backup, ensure_ascii=False, indent=2)


def restore_backup(store, raw):
    try:
        backup = json.loads(raw)
    except ValueError:
        return {'success': False, 'message': 'Tệp sao lưu không hợp lệ.'}
    data = backup.get('data') if isinstance(backup, dict) else None
    if not isinstance(data, dict):
        return {'success': False, 'message': 'Tệp sao lưu không hợp lệ.'}

    restored = []
    for name, value in data.items():
        key = KEYS.get(name)
        if key is None or value is None:
            continue
        store.set(key, value)
        restored.append(name)
        if name in EVENTS:
            events.emit(EVENTS[name], store)
    logger.info('restored %s from a backup taken at %s', ', '.join(restored), backup.get('timestamp'))
    return {'success': True, 'message': 'Khôi phục dữ liệu thành công.', 'restored': restored}


def factory_reset(store, gateway, scope, session=None):
    scope = (scope or '').upper()
    if scope not in RESET_KEYS:
        return {'success': False, 'message': 'Phạm vi xoá dữ liệu không hợp lệ.'}

    result = gateway.post('admin/reset', {'scope': scope})
    if not result.success:
        logger.error('factory reset %s failed: %s', scope, result.message)
        if not result.reachable:
            return {'success': False, 'message': 'Không thể kết nối Server để thực hiện xóa sạch.'}
        return {'success': False, 'message': result.message or 'Lỗi server khi reset dữ liệu.'}

    for name in RESET_KEYS[scope]:
        store.remove(KEYS[name])
    # nothing queued before the reset may reach the server after it
    store.remove(OUTBOX_KEY)
    if scope == 'FULL':
        for key in store.keys(CART_PREFIX):
            store.remove(key)
        if session is not None:
            # the admin stays logged in, the shopper does not
            session.remove('sigma_vie_current_customer')
    for name in RESET_KEYS[scope]:
        if name in EVENTS:
            events.emit(EVENTS[name], store)
    logger.warning('factory reset %s done', scope)
    return {'success': True, 'message': 'Dữ liệu đã được xóa trắng hoàn toàn.'}
