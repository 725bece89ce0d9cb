# order status machine
# PENDING -> CONFIRMED -> SHIPPED, or PENDING -> CANCELLED. SHIPPED and CANCELLED are final.

from enum import Enum

from sigmavie.errors import IllegalTransitionError, ValidationError


class OrderStatus(str, Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    SHIPPED = 'SHIPPED'
    CANCELLED = 'CANCELLED'


PAYMENT_METHODS = ('COD', 'BANK_TRANSFER')

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: set(),
    OrderStatus.CANCELLED: set(),
}


def parse_status(value):
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).upper())
    except ValueError:
        raise ValidationError(f'Trạng thái đơn hàng không hợp lệ: {value}')


def can_transition(current, requested):
    return parse_status(requested) in TRANSITIONS[parse_status(current)]


def check_transition(current, requested):
    current, requested = parse_status(current), parse_status(requested)
    if requested not in TRANSITIONS[current]:
        raise IllegalTransitionError(current.value, requested.value)
    return requested


def is_final(status):
    return not TRANSITIONS[parse_status(status)]
