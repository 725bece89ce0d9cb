# stock ledger on the server
# counters only move through one conditional UPDATE (stock = stock + delta WHERE stock >= -delta),
# so two buyers can never both take the last unit. the ledger row goes into the same
# session as the counter change; the caller commits both or neither.

from flask import current_app
from sqlalchemy import case, func, select, update

from sigmavie.catalog import match_variant, normalize, variant_label
from sigmavie.errors import InsufficientStockError, NotFoundError, ValidationError, VariantNotFoundError
from sigmavie.money import parse_optional_price, parse_price
from sigmavie.models import db, InventoryTransaction, Product, ProductVariant
from sigmavie.utils import new_id, now_ms

IMPORT = 'IMPORT'
EXPORT = 'EXPORT'


def get_product_or_404(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Sản phẩm không tồn tại.')
    return product


def find_variant(product, size=None, color=None):
    # None means the product has no variants and its own stock is the slot
    if not product.variants:
        return None
    index = match_variant([(v.size, v.color) for v in product.variants], size, color)
    if index is None:
        raise VariantNotFoundError()
    return product.variants[index]


def _conditional_update(model, row_id, delta):
    stmt = update(model).where(model.id == row_id)
    if delta < 0:
        stmt = stmt.where(model.stock >= -delta)
    stmt = stmt.values(stock=model.stock + delta).execution_options(synchronize_session=False)
    return db.session.execute(stmt).rowcount == 1


def record_transaction(product, kind, quantity, size='', color='', note=None,
                       order_id=None, transaction_id=None, timestamp=None):
    entry = InventoryTransaction(
        id=transaction_id or new_id('TX'),
        product_id=product.id,
        product_name=product.name + variant_label(size, color),
        type=kind,
        quantity=quantity,
        selected_size=normalize(size),
        selected_color=normalize(color),
        order_id=order_id,
        note=note,
        timestamp=timestamp or now_ms(),
    )
    db.session.add(entry)
    return entry


def adjust_stock(product_id, delta, size=None, color=None, note=None,
                 transaction_id=None, order_id=None, timestamp=None):
    # returns (new stock of the slot, ledger entry)
    delta = int(delta)
    if delta == 0:
        raise ValidationError('Số lượng thay đổi phải khác 0.')

    if transaction_id:
        existing = db.session.get(InventoryTransaction, transaction_id)
        if existing is not None:
            # replay of a request that already went through
            product = get_product_or_404(existing.product_id)
            variant = find_variant(product, existing.selected_size, existing.selected_color)
            return (variant.stock if variant else product.stock), existing

    product = get_product_or_404(product_id)
    variant = find_variant(product, size, color)

    if variant is None:
        applied = _conditional_update(Product, product.id, delta)
        model, row_id = Product, product.id
    else:
        applied = _conditional_update(ProductVariant, variant.id, delta)
        model, row_id = ProductVariant, variant.id
        if applied:
            # the aggregate follows the variants
            db.session.execute(
                update(Product).where(Product.id == product.id)
                .values(stock=Product.stock + delta)
                .execution_options(synchronize_session=False)
            )

    if not applied:
        available = db.session.scalar(select(model.stock).where(model.id == row_id))
        raise InsufficientStockError(available or 0)

    db.session.expire(product, ['stock'])
    if variant is not None:
        db.session.expire(variant, ['stock'])

    entry = record_transaction(
        product,
        IMPORT if delta > 0 else EXPORT,
        abs(delta),
        size=variant.size if variant is not None else '',
        color=variant.color if variant is not None else '',
        note=note,
        order_id=order_id,
        transaction_id=transaction_id,
        timestamp=timestamp,
    )
    new_stock = variant.stock if variant is not None else product.stock
    current_app.logger.info('stock %s product=%s slot=%r delta=%+d now=%d',
                            entry.type, product.id, (entry.selected_size, entry.selected_color),
                            delta, new_stock)
    return new_stock, entry


def sync_variants(product, incoming, creating=False):
    # catalog edits never overwrite the counters of existing variants (that would race with
    # checkouts); new variants are stocked with an IMPORT, dropped ones written off with an EXPORT
    had_variants = bool(product.variants)
    existing = {(v.size, v.color): v for v in product.variants}
    seen = []

    for position, item in enumerate(incoming or []):
        key = (normalize(item.get('size')), normalize(item.get('color')))
        if key in seen:
            raise ValidationError('Phân loại sản phẩm bị trùng lặp.')
        seen.append(key)
        variant = existing.get(key)
        if variant is not None:
            variant.position = position
            continue
        stock = int(item.get('stock') or 0)
        if stock < 0:
            raise ValidationError('Tồn kho không được âm.')
        product.variants.append(ProductVariant(size=key[0], color=key[1], stock=stock, position=position))
        if stock:
            record_transaction(product, IMPORT, stock, key[0], key[1], note='Tồn kho ban đầu của phân loại')

    for key, variant in existing.items():
        if key in seen:
            continue
        if variant.stock:
            record_transaction(product, EXPORT, variant.stock, key[0], key[1], note='Xoá phân loại khỏi sản phẩm')
        product.variants.remove(variant)

    if seen:
        if not had_variants and not creating and product.stock:
            # stock kept on the product itself is closed before variants take over
            record_transaction(product, EXPORT, product.stock, note='Chuyển sang quản lý tồn kho theo phân loại')
        product.stock = sum(v.stock for v in product.variants)
    elif had_variants:
        product.stock = 0


def open_ledger(note='Tồn kho đầu kỳ'):
    # after the ledger is wiped the counters stay, so each stocked slot starts with one IMPORT
    opened = 0
    for product in db.session.scalars(select(Product).order_by(Product.id)):
        slots = [(v.size, v.color, v.stock) for v in product.variants] or [('', '', product.stock)]
        for size, color, stock in slots:
            if stock > 0:
                record_transaction(product, IMPORT, stock, size, color, note=note)
                opened += 1
    return opened


def check_ledger_consistency():
    # every slot's counter must equal imports minus exports recorded for it
    signed = case((InventoryTransaction.type == IMPORT, InventoryTransaction.quantity),
                  else_=-InventoryTransaction.quantity)
    rows = db.session.execute(
        select(InventoryTransaction.product_id, InventoryTransaction.selected_size,
               InventoryTransaction.selected_color, func.sum(signed))
        .group_by(InventoryTransaction.product_id, InventoryTransaction.selected_size,
                  InventoryTransaction.selected_color)
    ).all()
    ledger = {(pid, size or '', color or ''): int(total or 0) for pid, size, color, total in rows}

    discrepancies = []
    for product in db.session.scalars(select(Product).order_by(Product.id)):
        slots = [(v.size, v.color, v.stock) for v in product.variants] or [('', '', product.stock)]
        for size, color, stock in slots:
            logged = ledger.pop((product.id, size, color), 0)
            if logged != stock:
                discrepancies.append(_discrepancy(product, size, color, stock, logged))
        for key in [k for k in ledger if k[0] == product.id]:
            logged = ledger.pop(key)
            if logged:
                discrepancies.append(_discrepancy(product, key[1], key[2], 0, logged))
    return discrepancies


def _discrepancy(product, size, color, stock, logged):
    return {
        'productId': product.id,
        'productName': product.name,
        'size': size or None,
        'color': color or None,
        'stock': stock,
        'ledgerStock': logged,
        'difference': stock - logged,
    }


def save_product(payload):
    # upsert by id; returns (product, created)
    if not payload.get('name'):
        raise ValidationError('Tên sản phẩm không được để trống.')
    product_id = payload.get('id')
    product = db.session.get(Product, product_id) if product_id is not None else None
    creating = product is None
    if creating:
        product = Product(id=product_id if product_id is not None else now_ms(), stock=0)
        db.session.add(product)

    product.name = payload['name']
    product.price = parse_price(payload.get('price'))
    product.sale_price = parse_optional_price(payload.get('salePrice'))
    product.is_flash_sale = bool(payload.get('isFlashSale'))
    product.flash_sale_start_time = payload.get('flashSaleStartTime')
    product.flash_sale_end_time = payload.get('flashSaleEndTime')
    product.import_price = parse_price(payload.get('importPrice'))
    product.description = payload.get('description') or ''
    product.image_url = payload.get('imageUrl') or ''
    product.sku = payload.get('sku') or ''
    product.category = payload.get('category') or ''
    product.brand = payload.get('brand') or ''
    product.status = payload.get('status') or 'active'

    variants = payload.get('variants') or []
    sync_variants(product, variants, creating=creating)

    if creating and not variants:
        opening = int(payload.get('stock') or 0)
        if opening < 0:
            raise ValidationError('Tồn kho không được âm.')
        product.stock = opening
        if opening:
            record_transaction(product, IMPORT, opening, note='Tồn kho ban đầu')
    return product, creating
