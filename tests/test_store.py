import os

from sigmavie.client.store import LocalStore, MemoryStore


def test_first_read_seeds_the_default(tmp_path):
    store = LocalStore(str(tmp_path))
    assert store.get('sigma_vie_categories', [{'id': 'cat_1'}]) == [{'id': 'cat_1'}]
    assert store.has('sigma_vie_categories')
    # a second instance over the same directory sees the seeded value
    assert LocalStore(str(tmp_path)).get('sigma_vie_categories') == [{'id': 'cat_1'}]


def test_values_are_copies():
    store = MemoryStore()
    store.set('sigma_vie_products', [{'id': 1, 'stock': 3}])
    products = store.get('sigma_vie_products')
    products[0]['stock'] = 0
    assert store.get('sigma_vie_products')[0]['stock'] == 3


def test_corrupt_slot_falls_back_to_default(tmp_path):
    store = LocalStore(str(tmp_path))
    with open(os.path.join(str(tmp_path), 'sigma_vie_orders.json'), 'w') as fh:
        fh.write('{not json')
    assert store.get('sigma_vie_orders', []) == []


def test_keys_remove_and_unicode(tmp_path):
    store = LocalStore(str(tmp_path))
    store.set('sigma_vie_cart_guest', [{'name': 'Đầm Lụa'}])
    store.set('sigma_vie_cart_CUST-1', [])
    store.set('sigma_vie_products', [])
    assert store.keys('sigma_vie_cart_') == ['sigma_vie_cart_CUST-1', 'sigma_vie_cart_guest']
    assert store.get('sigma_vie_cart_guest')[0]['name'] == 'Đầm Lụa'
    store.remove('sigma_vie_cart_guest')
    store.remove('sigma_vie_cart_guest')
    assert not store.has('sigma_vie_cart_guest')
    assert not [n for n in os.listdir(str(tmp_path)) if n.endswith('.tmp')]
