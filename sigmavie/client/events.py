# change notifications for views that render from the cache
# one blinker signal per event name, named like the storefront's old window events

import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

signals = Namespace()

PRODUCTS_UPDATED = 'sigma_vie_products_update'
CATEGORIES_UPDATED = 'sigma_vie_categories_update'
CUSTOMERS_UPDATED = 'sigma_vie_customers_update'
ORDERS_UPDATED = 'sigma_vie_orders_update'
TRANSACTIONS_UPDATED = 'sigma_vie_transactions_update'
CART_UPDATED = 'sigma_vie_cart_update'
SYNC_REJECTED = 'sigma_vie_sync_rejected'


def signal(name):
    return signals.signal(name)


def subscribe(name, receiver):
    # weak=False so a lambda or closure handed in by a view keeps working
    signal(name).connect(receiver, weak=False)
    return receiver


def unsubscribe(name, receiver):
    signal(name).disconnect(receiver)


def emit(name, sender=None, **data):
    logger.debug('emit %s', name)
    return signal(name).send(sender, **data)
