import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///restaurant.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.getenv('SECRET_KEY', 'change-me')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Caching
    CACHE_TYPE = os.getenv('CACHE_TYPE', 'SimpleCache')
    MENU_CACHE_TIMEOUT = int(os.getenv('MENU_CACHE_TIMEOUT', '60'))  # seconds

    # Reconciliation policy
    ALLOW_UNCOSTED_SALES = _env_flag('ALLOW_UNCOSTED_SALES', True)  # sell items with no recipe at zero cost
    DEFAULT_PAYMENT_METHOD = os.getenv('DEFAULT_PAYMENT_METHOD', 'Kitchen Order')

    # Notification configuration
    LOW_STOCK_THRESHOLD = float(os.getenv('LOW_STOCK_THRESHOLD', '0'))  # used when an ingredient has no min_stock
    LOW_STOCK_WEBHOOK_URL = os.getenv('LOW_STOCK_WEBHOOK_URL')
    NOTIFICATION_TIMEOUT = float(os.getenv('NOTIFICATION_TIMEOUT', '3.0'))

    # Audit log
    AUDIT_USER_HEADER = os.getenv('AUDIT_USER_HEADER', 'X-User')
