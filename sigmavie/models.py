# this file defines the database structure for the storefront
# products and their variants hold the live stock counters, inventory_transaction is the
# append-only ledger next to them, orders keep a snapshot of what was bought

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from sigmavie.utils import now_ms

db = SQLAlchemy()


# admin accounts for the back office (flask-login session)
class AdminUser(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    phone_number = db.Column(db.String(30))
    otp_hash = db.Column(db.String(200))
    otp_expires_at = db.Column(db.BigInteger)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class AdminLoginLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), nullable=False)
    method = db.Column(db.String(30), nullable=False)  # PASSWORD / EMAIL_OTP
    status = db.Column(db.String(20), nullable=False)  # SUCCESS / FAILED
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(300))
    timestamp = db.Column(db.BigInteger, default=now_ms)

    def to_dict(self):
        return {
            'id': self.id, 'username': self.username, 'method': self.method,
            'status': self.status, 'ip_address': self.ip_address,
            'user_agent': self.user_agent, 'timestamp': self.timestamp,
        }


class Category(db.Model):
    id = db.Column(db.String(100), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(500))

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'description': self.description}


# prices are whole vnd, stock on the product is the sum of its variants when it has any
class Product(db.Model):
    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    name = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Integer, nullable=False, default=0)
    sale_price = db.Column(db.Integer)
    is_flash_sale = db.Column(db.Boolean, default=False)
    flash_sale_start_time = db.Column(db.BigInteger)
    flash_sale_end_time = db.Column(db.BigInteger)
    import_price = db.Column(db.Integer, default=0)
    description = db.Column(db.Text, default='')
    image_url = db.Column(db.String(500), default='')
    stock = db.Column(db.Integer, nullable=False, default=0)
    sku = db.Column(db.String(100), default='')
    category = db.Column(db.String(200), default='')
    brand = db.Column(db.String(200), default='')
    status = db.Column(db.String(20), default='active')  # active / draft / archived

    variants = db.relationship(
        'ProductVariant', backref='product', lazy=True,
        cascade='all, delete-orphan', order_by='ProductVariant.position',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'salePrice': self.sale_price,
            'isFlashSale': bool(self.is_flash_sale),
            'flashSaleStartTime': self.flash_sale_start_time,
            'flashSaleEndTime': self.flash_sale_end_time,
            'importPrice': self.import_price,
            'description': self.description,
            'imageUrl': self.image_url,
            'stock': self.stock,
            'sku': self.sku,
            'category': self.category,
            'brand': self.brand,
            'status': self.status,
            'variants': [v.to_dict() for v in self.variants],
        }

    def __repr__(self):
        return f'<Product {self.name}>'


class ProductVariant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.BigInteger, db.ForeignKey('product.id'), nullable=False)
    size = db.Column(db.String(50), nullable=False, default='')
    color = db.Column(db.String(50), nullable=False, default='')
    stock = db.Column(db.Integer, nullable=False, default=0)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('product_id', 'size', 'color', name='uq_variant_size_color'),
        db.CheckConstraint('stock >= 0', name='ck_variant_stock_non_negative'),
    )

    def to_dict(self):
        return {'size': self.size, 'color': self.color, 'stock': self.stock}


class Customer(db.Model):
    id = db.Column(db.String(100), primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), index=True)
    phone_number = db.Column(db.String(30), index=True)
    cccd_number = db.Column(db.String(30), index=True)
    gender = db.Column(db.String(20))
    dob = db.Column(db.String(20))
    issue_date = db.Column(db.String(20))
    password_hash = db.Column(db.String(200))
    address = db.Column(db.String(500))
    avatar_url = db.Column(db.String(500))
    created_at = db.Column(db.BigInteger, default=now_ms)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    # the password hash never leaves the server
    def to_dict(self):
        return {
            'id': self.id,
            'fullName': self.full_name,
            'email': self.email,
            'phoneNumber': self.phone_number,
            'cccdNumber': self.cccd_number,
            'gender': self.gender,
            'dob': self.dob,
            'issueDate': self.issue_date,
            'address': self.address,
            'avatarUrl': self.avatar_url,
            'createdAt': self.created_at,
        }


# one order is one product line; customer and product fields are copied at checkout time
class Order(db.Model):
    id = db.Column(db.String(100), primary_key=True)
    customer_id = db.Column(db.String(100), index=True)
    customer_name = db.Column(db.String(200))
    customer_contact = db.Column(db.String(200))
    customer_address = db.Column(db.String(500))
    product_id = db.Column(db.BigInteger, nullable=False)
    product_name = db.Column(db.String(300))
    product_size = db.Column(db.String(50), default='')
    product_color = db.Column(db.String(50), default='')
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False, default=0)
    total_price = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='PENDING')
    payment_method = db.Column(db.String(30), default='COD')
    timestamp = db.Column(db.BigInteger, default=now_ms, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'customerId': self.customer_id,
            'customerName': self.customer_name,
            'customerContact': self.customer_contact,
            'customerAddress': self.customer_address,
            'productId': self.product_id,
            'productName': self.product_name,
            'productSize': self.product_size or None,
            'productColor': self.product_color or None,
            'quantity': self.quantity,
            'unitPrice': self.unit_price,
            'totalPrice': self.total_price,
            'shippingFee': self.shipping_fee,
            'status': self.status,
            'paymentMethod': self.payment_method,
            'timestamp': self.timestamp,
        }


# the ledger: written in the same transaction as the counter it explains, never updated
# product_id is not a foreign key so rows outlive a product removed from the catalog
class InventoryTransaction(db.Model):
    id = db.Column(db.String(100), primary_key=True)
    product_id = db.Column(db.BigInteger, nullable=False, index=True)
    product_name = db.Column(db.String(300))
    type = db.Column(db.String(10), nullable=False)  # IMPORT / EXPORT
    quantity = db.Column(db.Integer, nullable=False)
    selected_size = db.Column(db.String(50), default='')
    selected_color = db.Column(db.String(50), default='')
    order_id = db.Column(db.String(100), index=True)
    note = db.Column(db.String(500))
    timestamp = db.Column(db.BigInteger, default=now_ms, index=True)

    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_ledger_quantity_positive'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'productName': self.product_name,
            'type': self.type,
            'quantity': self.quantity,
            'selectedSize': self.selected_size or None,
            'selectedColor': self.selected_color or None,
            'orderId': self.order_id,
            'note': self.note,
            'timestamp': self.timestamp,
        }


# site settings: one json blob per key, every write bumps the version, last write wins
class Setting(db.Model):
    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.JSON, nullable=False, default=dict)
    version = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.BigInteger, default=now_ms, onupdate=now_ms)
