# order placement and status changes on the server
# a checkout batch is one transaction: every line takes its stock with the conditional
# update, writes its EXPORT ledger row and its order row, or none of them is kept.
# callers commit; the api error handler rolls the session back on any domain error.

from flask import current_app

from sigmavie.errors import ForbiddenError, NotFoundError, ValidationError
from sigmavie.inventory import adjust_stock, get_product_or_404
from sigmavie.models import db, Order
from sigmavie.money import effective_unit_price, order_total, parse_price
from sigmavie.utils import new_id, now_ms
from sigmavie.workflow import PAYMENT_METHODS, OrderStatus, check_transition, parse_status


def place_orders(payloads):
    if not payloads:
        raise ValidationError('Đơn hàng không có sản phẩm nào.')
    placed = []
    for payload in payloads:
        existing = db.session.get(Order, payload['id']) if payload.get('id') else None
        if existing is not None:
            # the client retried a batch that already went through
            placed.append(existing)
            continue
        placed.append(_place_line(payload))
    return placed


def _place_line(payload):
    try:
        quantity = int(payload.get('quantity') or 0)
    except (TypeError, ValueError):
        quantity = 0
    if quantity <= 0:
        raise ValidationError('Số lượng không hợp lệ.')

    payment_method = payload.get('paymentMethod') or 'COD'
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError('Phương thức thanh toán không hợp lệ.')

    product = get_product_or_404(payload.get('productId'))
    order_id = payload.get('id') or new_id('ORD')
    received = now_ms()
    # a client clock ahead of ours is not trusted
    timestamp = min(int(payload.get('timestamp') or received), received)
    customer_name = payload.get('customerName') or 'Khách vãng lai'

    # priced from the catalog as it is now, neither the client's price nor its clock count
    unit_price = effective_unit_price(product.to_dict(), received)
    shipping_fee = parse_price(payload.get('shippingFee'))

    _, entry = adjust_stock(
        product.id,
        -quantity,
        payload.get('productSize'),
        payload.get('productColor'),
        note=f'Đơn hàng trực tuyến từ {customer_name} ({order_id}) [{payment_method}]',
        transaction_id=f'{order_id}-EXPORT',
        order_id=order_id,
        timestamp=timestamp,
    )

    order = Order(
        id=order_id,
        customer_id=payload.get('customerId'),
        customer_name=customer_name,
        customer_contact=payload.get('customerContact') or 'N/A',
        customer_address=payload.get('customerAddress') or 'Chưa cung cấp',
        product_id=product.id,
        product_name=product.name,
        product_size=entry.selected_size,
        product_color=entry.selected_color,
        quantity=quantity,
        unit_price=unit_price,
        total_price=order_total(unit_price, quantity, shipping_fee),
        shipping_fee=shipping_fee,
        status=OrderStatus.PENDING.value,
        payment_method=payment_method,
        timestamp=timestamp,
    )
    db.session.add(order)
    current_app.logger.info('order %s placed: product=%s qty=%d total=%d',
                            order.id, product.id, quantity, order.total_price)
    return order


def change_order_status(order_id, status, is_admin=False):
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError('Không tìm thấy đơn hàng.')
    requested = parse_status(status)
    if not is_admin and requested is not OrderStatus.CANCELLED:
        raise ForbiddenError('Khách hàng chỉ có thể hủy đơn hàng.')
    if order.status == requested.value:
        return order

    check_transition(order.status, requested)
    if requested is OrderStatus.CANCELLED:
        # give back exactly what the order took, to the same variant
        adjust_stock(
            order.product_id,
            order.quantity,
            order.product_size,
            order.product_color,
            note=f'Hoàn trả tồn kho do hủy đơn hàng {order.id}',
            transaction_id=f'{order.id}-IMPORT',
            order_id=order.id,
        )
    order.status = requested.value
    current_app.logger.info('order %s -> %s', order.id, order.status)
    return order
