# dashboard figures for the back office
# cancelled orders never count towards revenue or units sold

from datetime import datetime, timedelta

from sqlalchemy import func, select

from sigmavie.models import db, Order, Product
from sigmavie.workflow import OrderStatus


def _day_bounds(day):
    start = datetime(day.year, day.month, day.day)
    end = start + timedelta(days=1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


def dashboard(low_stock_threshold=5, today=None):
    today = today or datetime.now().date()
    valid = Order.status != OrderStatus.CANCELLED.value

    total_revenue = db.session.scalar(select(func.sum(Order.total_price)).where(valid)) or 0
    total_units = db.session.scalar(select(func.sum(Order.quantity)).where(valid)) or 0

    start, end = _day_bounds(today)
    revenue_today = db.session.scalar(
        select(func.sum(Order.total_price)).where(valid, Order.timestamp >= start, Order.timestamp < end)
    ) or 0

    low_stock = db.session.scalars(
        select(Product).where(Product.stock < low_stock_threshold).order_by(Product.stock)
    ).all()

    by_product = db.session.execute(
        select(Order.product_id, Order.product_name, func.sum(Order.quantity), func.sum(Order.total_price))
        .where(valid)
        .group_by(Order.product_id, Order.product_name)
        .order_by(func.sum(Order.quantity).desc())
    ).all()

    # last 7 days, oldest first, empty days included
    daily = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        day_start, day_end = _day_bounds(day)
        qty, revenue = db.session.execute(
            select(func.sum(Order.quantity), func.sum(Order.total_price))
            .where(valid, Order.timestamp >= day_start, Order.timestamp < day_end)
        ).one()
        daily.append({'name': day.strftime('%d/%m'), 'value': int(qty or 0), 'revenue': int(revenue or 0)})

    return {
        'totalRevenue': int(total_revenue),
        'totalUnits': int(total_units),
        'totalRevenueToday': int(revenue_today),
        'lowStockProducts': [
            {'id': p.id, 'name': p.name, 'stock': p.stock} for p in low_stock
        ],
        'salesByProduct': [
            {'productId': pid, 'name': name, 'value': int(qty or 0), 'revenue': int(revenue or 0)}
            for pid, name, qty, revenue in by_product
        ],
        'dailySales': daily,
    }
