from test_inventory_api import stock_of


def slot_stock(front, product_id, size, color):
    product = front.products.get_product(product_id)
    return next(v['stock'] for v in product['variants'] if (v['size'], v['color']) == (size, color))


def test_update_stock_moves_both_counters(back_office, admin, dress):
    back_office.products.force_reload()
    assert back_office.ledger.update_stock(101, 4, 'L', 'Black', note='Nhập hàng đợt 2')
    assert slot_stock(back_office, 101, 'L', 'Black') == 9
    assert back_office.products.get_product(101)['stock'] == 12
    assert stock_of(admin, 101, 'L', 'Black') == 9

    [entry] = back_office.transactions.cached()[:1]
    assert entry['type'] == 'IMPORT'
    assert entry['quantity'] == 4
    assert 'syncPending' not in entry
    assert admin.get('/api/inventory/audit').get_json()['consistent']


def test_refused_changes_leave_stock_alone(back_office, dress):
    back_office.products.force_reload()
    assert not back_office.ledger.update_stock(101, -4, 'M', 'Black')
    assert not back_office.ledger.update_stock(101, 1, 'XXL', 'Gold')
    assert not back_office.ledger.update_stock(999, 1)
    assert not back_office.ledger.update_stock(101, 0, 'M', 'Black')
    assert slot_stock(back_office, 101, 'M', 'Black') == 3
    assert back_office.transactions.cached() == []


def test_offline_adjustment_is_replayed_once(back_office, admin, dress):
    back_office.products.force_reload()
    back_office.gateway.opener.online = False
    assert back_office.ledger.update_stock(101, -1, 'M', 'Black', note='Hàng mẫu')
    assert slot_stock(back_office, 101, 'M', 'Black') == 2
    assert back_office.transactions.cached()[0]['syncPending']
    assert back_office.sync_status()['pending'] == 1

    back_office.gateway.opener.online = True
    back_office.flush_outbox()
    assert stock_of(admin, 101, 'M', 'Black') == 2
    assert back_office.outbox.pending_count() == 0
    assert not any(t.get('syncPending') for t in back_office.transactions.cached())

    # the same transaction id a second time changes nothing
    entry = next(t for t in back_office.transactions.cached() if t['type'] == 'EXPORT')
    admin.post('/api/products/stock', json={'id': 101, 'quantityChange': -1, 'size': 'M', 'color': 'Black',
                                            'transactionId': entry['id']})
    assert stock_of(admin, 101, 'M', 'Black') == 2


def test_rejected_adjustment_reloads_server_truth(back_office, admin, runner, dress):
    back_office.products.force_reload()
    # someone else sold the last units meanwhile
    admin.post('/api/products/stock', json={'id': 101, 'quantityChange': -3, 'size': 'M', 'color': 'Black'})
    assert not back_office.ledger.update_stock(101, -2, 'M', 'Black')
    assert slot_stock(back_office, 101, 'M', 'Black') == 3

    runner.run_pending()
    assert slot_stock(back_office, 101, 'M', 'Black') == 0
    # the refused row is gone, the server ledger took its place
    assert not [t for t in back_office.transactions.cached() if t['quantity'] == 2]
