# money is kept as whole vnd (no minor unit) and only formatted at the edge
# old catalog data still carries strings like "1.250.000₫", parse_price turns them back into integers

import re

_NON_DIGITS = re.compile(r'[^0-9]')


def parse_price(value):
    if value is None or value == '':
        return 0
    if isinstance(value, bool):
        raise TypeError('price cannot be a boolean')
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    digits = _NON_DIGITS.sub('', str(value))
    return int(digits) if digits else 0


def parse_optional_price(value):
    if value is None or value == '':
        return None
    return parse_price(value)


def format_vnd(amount):
    # 1250000 -> "1.250.000₫"
    return f'{int(amount):,}'.replace(',', '.') + '₫'


def is_flash_sale_active(product, now):
    if not product.get('isFlashSale') or not product.get('salePrice'):
        return False
    start = product.get('flashSaleStartTime')
    end = product.get('flashSaleEndTime')
    if start is not None and now < start:
        return False
    if end is not None and now > end:
        return False
    return True


def effective_unit_price(product, now):
    if is_flash_sale_active(product, now):
        return parse_price(product['salePrice'])
    return parse_price(product.get('price'))


def order_total(unit_price, quantity, shipping_fee=0):
    return unit_price * quantity + shipping_fee
