# configuration for the api (flask app.config) and for the client sync layer
# every value can be overridden from the environment

import os


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name, default):
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///sigmavie.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.getenv('SECRET_KEY', 'sigma-vie-dev-key')

    # seeded admin account, the password is stored as a werkzeug hash
    ADMIN_USERNAME = os.getenv('ADMIN_USERNAME', 'admin')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin')
    ADMIN_EMAILS = _env_list('ADMIN_EMAILS', ['sigmavieshop@gmail.com'])
    ADMIN_PHONE = os.getenv('ADMIN_PHONE', '')

    OTP_TTL_SECONDS = int(os.getenv('OTP_TTL_SECONDS', '300'))
    LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', '5'))
    SEED_SAMPLE_PRODUCTS = _env_bool('SEED_SAMPLE_PRODUCTS', True)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'test'
    ADMIN_PASSWORD = 'admin'
    SEED_SAMPLE_PRODUCTS = False


class ClientConfig:
    def __init__(self, api_url=None, cache_dir=None, timeout=None,
                 customer_poll_seconds=None, outbox_poll_seconds=None,
                 retry_base_seconds=None, retry_max_seconds=None):
        self.api_url = (api_url or os.getenv('SIGMA_VIE_API_URL', 'http://localhost:5000/api')).rstrip('/')
        self.cache_dir = cache_dir or os.getenv('SIGMA_VIE_CACHE_DIR', os.path.expanduser('~/.sigmavie'))
        # no timeout by default, a hung request just never resolves
        self.timeout = timeout
        self.customer_poll_seconds = customer_poll_seconds or int(os.getenv('SIGMA_VIE_CUSTOMER_POLL', '30'))
        self.outbox_poll_seconds = outbox_poll_seconds or int(os.getenv('SIGMA_VIE_OUTBOX_POLL', '15'))
        self.retry_base_seconds = retry_base_seconds or 2
        self.retry_max_seconds = retry_max_seconds or 300
