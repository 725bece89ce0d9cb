# variant lookup and stock arithmetic on catalog products
# a variant is one size x color cut of a product and is the real unit of stock;
# products without variants keep their stock on the product itself

from sigmavie.errors import InsufficientStockError, VariantNotFoundError

# seeded on the server and in an empty client cache
DEFAULT_CATEGORIES = [
    {'id': 'cat_1', 'name': 'Váy & Đầm', 'description': 'Thời trang váy đầm dự tiệc và dạo phố'},
    {'id': 'cat_2', 'name': 'Áo Sơ Mi', 'description': 'Áo sơ mi công sở, lụa satin'},
    {'id': 'cat_3', 'name': 'Quần & Chân Váy', 'description': 'Quần tây, chân váy bút chì'},
    {'id': 'cat_4', 'name': 'Áo Khoác', 'description': 'Blazer, Trench Coat, Jacket'},
    {'id': 'cat_5', 'name': 'Phụ Kiện', 'description': 'Túi xách, trang sức cao cấp'},
]


def normalize(value):
    return (value or '').strip()


def match_variant(pairs, size=None, color=None):
    # pairs is the product's [(size, color), ...] in catalog order
    pairs = [(normalize(s), normalize(c)) for s, c in pairs]
    wanted = (normalize(size), normalize(color))
    for index, pair in enumerate(pairs):
        if pair == wanted:
            return index

    # a dimension the product does not carry at all matches the empty value
    size, color = wanted
    if not any(s for s, _ in pairs):
        size = ''
    if not any(c for _, c in pairs):
        color = ''
    for index, pair in enumerate(pairs):
        if pair == (size, color):
            return index
    return None


def variant_pairs(product):
    return [(v.get('size'), v.get('color')) for v in product.get('variants') or []]


def resolve_stock(product, size=None, color=None):
    variants = product.get('variants') or []
    if not variants:
        return None, int(product.get('stock') or 0)
    index = match_variant(variant_pairs(product), size, color)
    if index is None:
        raise VariantNotFoundError()
    return index, int(variants[index].get('stock') or 0)


def available_stock(product, size=None, color=None):
    try:
        return resolve_stock(product, size, color)[1]
    except VariantNotFoundError:
        return 0


def apply_stock_delta(product, delta, size=None, color=None):
    # mutates the product dict in place and returns the new stock of the touched slot
    index, current = resolve_stock(product, size, color)
    new_stock = current + delta
    if new_stock < 0:
        raise InsufficientStockError(current)
    if index is None:
        product['stock'] = new_stock
    else:
        product['variants'][index]['stock'] = new_stock
        product['stock'] = total_variant_stock(product)
    return new_stock


def total_variant_stock(product):
    return sum(int(v.get('stock') or 0) for v in product.get('variants') or [])


def variant_label(size=None, color=None):
    parts = []
    if normalize(size):
        parts.append(f'Size: {normalize(size)}')
    if normalize(color):
        parts.append(f'Màu: {normalize(color)}')
    return f' ({", ".join(parts)})' if parts else ''
