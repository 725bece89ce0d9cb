# routes.py - the json api the storefront client syncs against
# catalog, stock, settings and reports are admin-only writes; shoppers register, log in,
# place orders and cancel them

import random

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy import or_, select
from werkzeug.security import check_password_hash, generate_password_hash

from sigmavie import reports
from sigmavie.errors import DuplicateCustomerError, NotFoundError, ValidationError
from sigmavie.inventory import adjust_stock, check_ledger_consistency, open_ledger, save_product
from sigmavie.models import (
    db, AdminLoginLog, AdminUser, Category, Customer, InventoryTransaction, Order,
    Product, Setting,
)
from sigmavie.notify import dispatch_otp
from sigmavie.orders import change_order_status, place_orders
from sigmavie.utils import now_ms

api = Blueprint('api', __name__)

RESET_SCOPES = ('FULL', 'ORDERS', 'PRODUCTS')


def _payload():
    return request.get_json(silent=True) or {}


def _ok(status=200, **data):
    return jsonify(success=True, **data), status


def _is_admin():
    return current_user.is_authenticated


# health check, used by the client to show an offline badge
@api.route('/health')
def health():
    try:
        db.session.execute(select(1))
    except Exception as err:
        current_app.logger.error('health check failed: %s', err)
        return jsonify(status='degraded', database='unavailable'), 503
    return jsonify(status='ok', database='connected', time=now_ms())


# products
@api.route('/products')
def list_products():
    products = db.session.scalars(select(Product).order_by(Product.id.desc())).all()
    return jsonify([p.to_dict() for p in products])


@api.route('/products', methods=['POST'])
@login_required
def upsert_product():
    product, created = save_product(_payload())
    db.session.commit()
    current_app.logger.info('product %s %s', product.id, 'created' if created else 'updated')
    return _ok(201 if created else 200, product=product.to_dict())


@api.route('/products/<int:product_id>', methods=['DELETE'])
@login_required
def delete_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Sản phẩm không tồn tại.')
    name = product.name
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info('product %s (%s) removed from the catalog', product_id, name)
    return _ok(id=product_id)


@api.route('/products/stock', methods=['POST'])
@login_required
def update_product_stock():
    data = _payload()
    if data.get('id') is None:
        raise ValidationError('Thiếu mã sản phẩm.')
    stock, entry = adjust_stock(
        data['id'],
        data.get('quantityChange') or 0,
        data.get('size'),
        data.get('color'),
        note=data.get('note'),
        transaction_id=data.get('transactionId'),
        timestamp=data.get('timestamp'),
    )
    db.session.commit()
    return _ok(stock=stock, transaction=entry.to_dict())


# categories
@api.route('/categories')
def list_categories():
    return jsonify([c.to_dict() for c in db.session.scalars(select(Category).order_by(Category.id))])


@api.route('/categories', methods=['POST'])
@login_required
def upsert_category():
    data = _payload()
    if not data.get('name'):
        raise ValidationError('Tên danh mục không được để trống.')
    category = db.session.get(Category, data.get('id')) if data.get('id') else None
    if category is None:
        category = Category(id=data.get('id') or f'cat_{now_ms()}')
        db.session.add(category)
    category.name = data['name']
    category.description = data.get('description')
    db.session.commit()
    return _ok(category=category.to_dict())


@api.route('/categories/<category_id>', methods=['DELETE'])
@login_required
def delete_category(category_id):
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError('Không tìm thấy danh mục.')
    db.session.delete(category)
    db.session.commit()
    return _ok(id=category_id)


# customers
CUSTOMER_FIELDS = {
    'fullName': 'full_name', 'email': 'email', 'phoneNumber': 'phone_number',
    'cccdNumber': 'cccd_number', 'gender': 'gender', 'dob': 'dob', 'issueDate': 'issue_date',
    'address': 'address', 'avatarUrl': 'avatar_url',
}


def _check_unique(email=None, phone=None, cccd=None, exclude_id=None):
    checks = [
        (Customer.email, email, 'Email này đã được đăng ký.'),
        (Customer.phone_number, phone, 'Số điện thoại này đã được đăng ký.'),
        (Customer.cccd_number, cccd, 'Số CCCD này đã được đăng ký.'),
    ]
    for column, value, message in checks:
        if not value:
            continue
        query = select(Customer.id).where(column == value)
        if exclude_id:
            query = query.where(Customer.id != exclude_id)
        if db.session.scalar(query) is not None:
            raise DuplicateCustomerError(message)


def _apply_customer_fields(customer, data):
    for key, column in CUSTOMER_FIELDS.items():
        if key in data:
            setattr(customer, column, data[key] or None)


def _get_customer_or_404(customer_id):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError('Không tìm thấy khách hàng.')
    return customer


@api.route('/customers')
@login_required
def list_customers():
    customers = db.session.scalars(select(Customer).order_by(Customer.created_at.desc())).all()
    return jsonify([c.to_dict() for c in customers])


@api.route('/customers', methods=['POST'])
@login_required
def upsert_customer():
    # admin side upsert, used when customers are recovered from order snapshots
    data = _payload()
    if not data.get('id') or not data.get('fullName'):
        raise ValidationError('Thiếu mã hoặc tên khách hàng.')
    customer = db.session.get(Customer, data['id'])
    if customer is None:
        _check_unique(data.get('email'), data.get('phoneNumber'), data.get('cccdNumber'))
        customer = Customer(id=data['id'], created_at=data.get('createdAt') or now_ms())
        db.session.add(customer)
    _apply_customer_fields(customer, data)
    db.session.commit()
    return _ok(customer=customer.to_dict())


@api.route('/customers/register', methods=['POST'])
def register_customer():
    data = _payload()
    required = ('fullName', 'password', 'email', 'phoneNumber')
    if any(not data.get(field) for field in required):
        raise ValidationError('Vui lòng điền đầy đủ thông tin.')
    if data.get('id') and db.session.get(Customer, data['id']) is not None:
        raise DuplicateCustomerError('Tài khoản đã tồn tại.')
    _check_unique(data.get('email'), data.get('phoneNumber'), data.get('cccdNumber'))

    customer = Customer(id=data.get('id') or f'CUST-{now_ms()}', created_at=now_ms())
    _apply_customer_fields(customer, data)
    customer.set_password(data['password'])
    db.session.add(customer)
    db.session.commit()
    current_app.logger.info('customer %s registered', customer.id)
    return _ok(201, message='Đăng ký thành công!', customer=customer.to_dict())


@api.route('/customers/login', methods=['POST'])
def login_customer():
    data = _payload()
    identifier = (data.get('identifier') or '').strip()
    customer = None
    if identifier:
        customer = db.session.scalars(
            select(Customer).where(or_(Customer.email == identifier, Customer.phone_number == identifier))
        ).first()
    if customer is None or not customer.check_password(data.get('password') or ''):
        current_app.logger.warning('customer login failed for %s', identifier)
        return jsonify(success=False, message='Tài khoản hoặc mật khẩu không đúng.'), 401
    return _ok(message='Đăng nhập thành công!', customer=customer.to_dict())


@api.route('/customers/<customer_id>')
def get_customer(customer_id):
    return jsonify(_get_customer_or_404(customer_id).to_dict())


@api.route('/customers/<customer_id>', methods=['POST', 'PUT'])
def update_customer(customer_id):
    data = _payload()
    customer = _get_customer_or_404(customer_id)
    _check_unique(data.get('email'), data.get('phoneNumber'), data.get('cccdNumber'), exclude_id=customer.id)
    _apply_customer_fields(customer, data)
    if data.get('password'):
        customer.set_password(data['password'])
    db.session.commit()
    return _ok(customer=customer.to_dict())


@api.route('/customers/<customer_id>', methods=['DELETE'])
@login_required
def delete_customer(customer_id):
    customer = _get_customer_or_404(customer_id)
    db.session.delete(customer)
    db.session.commit()
    current_app.logger.info('customer %s deleted', customer_id)
    return _ok(id=customer_id)


# orders
@api.route('/orders')
def list_orders():
    query = select(Order).order_by(Order.timestamp.desc())
    customer_id = request.args.get('customerId')
    if customer_id:
        query = query.where(Order.customer_id == customer_id)
    elif not _is_admin():
        return current_app.login_manager.unauthorized()
    return jsonify([o.to_dict() for o in db.session.scalars(query)])


@api.route('/orders', methods=['POST'])
def create_orders():
    data = request.get_json(silent=True)
    if isinstance(data, dict) and 'orders' in data:
        data = data['orders']
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValidationError('Dữ liệu đơn hàng không hợp lệ.')
    orders = place_orders(data)
    db.session.commit()
    return _ok(201, orders=[o.to_dict() for o in orders])


@api.route('/orders/<order_id>/status', methods=['POST'])
def update_order_status(order_id):
    order = change_order_status(order_id, _payload().get('status'), is_admin=_is_admin())
    db.session.commit()
    return _ok(order=order.to_dict())


# inventory ledger
@api.route('/inventory')
@login_required
def list_transactions():
    query = select(InventoryTransaction).order_by(InventoryTransaction.timestamp.desc())
    if request.args.get('productId'):
        query = query.where(InventoryTransaction.product_id == int(request.args['productId']))
    return jsonify([t.to_dict() for t in db.session.scalars(query)])


@api.route('/inventory/audit')
@login_required
def audit_inventory():
    discrepancies = check_ledger_consistency()
    if discrepancies:
        current_app.logger.warning('ledger audit found %d discrepancies', len(discrepancies))
    return jsonify(consistent=not discrepancies, discrepancies=discrepancies)


# settings blobs
@api.route('/settings/<key>')
def get_setting(key):
    setting = db.session.get(Setting, key)
    return jsonify(setting.value if setting else {})


@api.route('/settings/<key>', methods=['POST'])
@login_required
def save_setting(key):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Dữ liệu cài đặt không hợp lệ.')
    setting = db.session.get(Setting, key)
    if setting is None:
        setting = Setting(key=key, version=0)
        db.session.add(setting)
    setting.value = data
    setting.version = (setting.version or 0) + 1
    db.session.commit()
    return _ok(version=setting.version)


# admin back office
def _log_login(username, method, success):
    db.session.add(AdminLoginLog(
        username=username,
        method=method,
        status='SUCCESS' if success else 'FAILED',
        ip_address=request.remote_addr,
        user_agent=(request.user_agent.string or '')[:300],
        timestamp=now_ms(),
    ))


@api.route('/admin/login', methods=['POST'])
def admin_login():
    data = _payload()
    username = data.get('username') or ''
    user = AdminUser.query.filter_by(username=username).first()
    success = user is not None and user.check_password(data.get('password') or '')
    _log_login(username, 'PASSWORD', success)
    db.session.commit()
    if not success:
        current_app.logger.warning('admin login failed for %r', username)
        return jsonify(success=False, message='Sai tên đăng nhập hoặc mật khẩu.'), 401
    login_user(user)
    return _ok(username=user.username)


@api.route('/admin/logout', methods=['POST'])
def admin_logout():
    logout_user()
    return _ok()


@api.route('/admin/send-otp', methods=['POST'])
def send_otp():
    username = _payload().get('username') or current_app.config['ADMIN_USERNAME']
    user = AdminUser.query.filter_by(username=username).first()
    if user is None:
        raise NotFoundError('Không tìm thấy tài khoản quản trị.')
    code = f'{random.SystemRandom().randint(0, 999999):06d}'
    user.otp_hash = generate_password_hash(code)
    user.otp_expires_at = now_ms() + current_app.config['OTP_TTL_SECONDS'] * 1000
    db.session.commit()

    delivered = dispatch_otp(
        current_app.extensions['sigmavie_notifier'], code,
        current_app.config['ADMIN_EMAILS'], user.phone_number,
    )
    if not delivered:
        return jsonify(success=False, message='Không gửi được mã OTP.'), 502
    return _ok(delivered=delivered)


@api.route('/admin/verify-otp', methods=['POST'])
def verify_otp():
    data = _payload()
    username = data.get('username') or current_app.config['ADMIN_USERNAME']
    user = AdminUser.query.filter_by(username=username).first()
    code = (data.get('code') or '').replace(' ', '')
    success = (
        user is not None and user.otp_hash is not None
        and (user.otp_expires_at or 0) >= now_ms()
        and check_password_hash(user.otp_hash, code)
    )
    _log_login(username, 'EMAIL_OTP', success)
    if success:
        # a code works once
        user.otp_hash = None
        user.otp_expires_at = None
    db.session.commit()
    if not success:
        return jsonify(success=False, message='Mã OTP không đúng hoặc đã hết hạn.'), 401
    login_user(user)
    return _ok(username=user.username)


@api.route('/admin/logs')
@login_required
def admin_logs():
    logs = db.session.scalars(select(AdminLoginLog).order_by(AdminLoginLog.timestamp.desc()).limit(200))
    return jsonify([log.to_dict() for log in logs])


@api.route('/admin/dashboard')
@login_required
def admin_dashboard():
    return jsonify(reports.dashboard(current_app.config['LOW_STOCK_THRESHOLD']))


@api.route('/admin/reset', methods=['POST'])
@login_required
def factory_reset():
    scope = (_payload().get('scope') or '').upper()
    if scope not in RESET_SCOPES:
        raise ValidationError('Phạm vi xoá dữ liệu không hợp lệ.')

    InventoryTransaction.query.delete()
    Order.query.delete()
    if scope in ('PRODUCTS', 'FULL'):
        # delete one by one so variants go with their product
        for product in Product.query.all():
            db.session.delete(product)
        Category.query.delete()
    if scope == 'FULL':
        Customer.query.delete()
        Setting.query.delete()
    if scope == 'ORDERS':
        db.session.flush()
        open_ledger('Tồn kho đầu kỳ sau khi xoá dữ liệu đơn hàng')
    db.session.commit()

    current_app.logger.warning('factory reset %s done', scope)
    return _ok(scope=scope, message='Dữ liệu đã được xóa.')
