# app.py - builds the api: config, database, admin login and error handling
# run the server: python -m sigmavie.app

import os

from flask import Flask, jsonify
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException

from sigmavie.catalog import DEFAULT_CATEGORIES
from sigmavie.config import Config
from sigmavie.errors import SigmaVieError
from sigmavie.inventory import save_product
from sigmavie.models import db, AdminUser, Category, Product
from sigmavie.notify import LogNotifier
from sigmavie.routes import api

# login manager setup, only the back office logs in through it
login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(AdminUser, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'success': False, 'message': 'Vui lòng đăng nhập quản trị.'}), 401


# starter collection for a fresh boutique
SAMPLE_PRODUCTS = [
    {
        'id': 1, 'name': 'Đầm Lụa Satin Dáng Suông', 'price': 1250000, 'importPrice': 600000,
        'sku': 'SV-DRESS-01', 'category': 'Váy & Đầm', 'brand': 'Sigma Vie',
        'variants': [
            {'size': 'S', 'color': 'Đen', 'stock': 5},
            {'size': 'M', 'color': 'Đen', 'stock': 8},
            {'size': 'M', 'color': 'Trắng', 'stock': 4},
        ],
    },
    {
        'id': 2, 'name': 'Áo Sơ Mi Lụa Công Sở', 'price': 690000, 'importPrice': 300000,
        'sku': 'SV-SHIRT-01', 'category': 'Áo Sơ Mi', 'brand': 'Sigma Vie',
        'variants': [
            {'size': 'S', 'color': 'Kem', 'stock': 6},
            {'size': 'M', 'color': 'Kem', 'stock': 6},
        ],
    },
    {
        'id': 3, 'name': 'Túi Xách Da Mini', 'price': 1890000, 'importPrice': 950000,
        'sku': 'SV-BAG-01', 'category': 'Phụ Kiện', 'brand': 'Sigma Vie', 'stock': 3,
    },
]


def seed_defaults(app):
    # make sure the configured admin exists with the configured password
    admin = AdminUser.query.filter_by(username=app.config['ADMIN_USERNAME']).first()
    if not admin:
        admin = AdminUser(username=app.config['ADMIN_USERNAME'])
        db.session.add(admin)
    admin.set_password(app.config['ADMIN_PASSWORD'])
    admin.phone_number = app.config['ADMIN_PHONE']

    if Category.query.count() == 0:
        db.session.add_all([Category(**c) for c in DEFAULT_CATEGORIES])

    if app.config['SEED_SAMPLE_PRODUCTS'] and Product.query.count() == 0:
        for sample in SAMPLE_PRODUCTS:
            save_product(sample)
    db.session.commit()


def register_error_handlers(app):
    @app.errorhandler(SigmaVieError)
    def handle_domain_error(err):
        db.session.rollback()
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({'success': False, 'message': err.description}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        db.session.rollback()
        app.logger.exception('unexpected error: %s', err)
        return jsonify({'success': False, 'message': 'Lỗi hệ thống. Vui lòng thử lại sau.'}), 500


def create_app(config_object=Config, notifier=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    login_manager.init_app(app)
    app.extensions['sigmavie_notifier'] = notifier or LogNotifier()

    app.register_blueprint(api, url_prefix='/api')
    register_error_handlers(app)

    # setup database and default data
    with app.app_context():
        db.create_all()
        seed_defaults(app)
    return app


if __name__ == '__main__':
    create_app().run(debug=True, port=int(os.getenv('PORT', 5000)))
