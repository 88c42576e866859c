import logging
import os

from flask import Flask, jsonify
from sqlalchemy.exc import IntegrityError

from api import api
from config import Config
from errors import RestaurantError
from extensions import cache, db
from notifications import LowStockNotifier

logger = logging.getLogger(__name__)


def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)
    app.config.setdefault('CACHE_DEFAULT_TIMEOUT', app.config['MENU_CACHE_TIMEOUT'])

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)

    app.extensions['low_stock_notifier'] = LowStockNotifier(
        webhook_url=app.config['LOW_STOCK_WEBHOOK_URL'],
        timeout=app.config['NOTIFICATION_TIMEOUT'],
    )

    app.register_blueprint(api)
    register_error_handlers(app)

    @app.route('/')
    def index():
        return jsonify({'message': 'Restaurant Back Office API is running!'})

    return app


def register_error_handlers(app):
    @app.errorhandler(RestaurantError)
    def handle_restaurant_error(error):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        logger.warning("Integrity error: %s", error.orig)
        return jsonify({'message': 'A record with this name already exists or a reference is invalid.'}), 409


# Database initialization function
def initialize_database(app):
    """Create any missing tables."""
    with app.app_context():
        uri = app.config['SQLALCHEMY_DATABASE_URI']
        if uri.startswith('sqlite:///') and not uri.startswith('sqlite:////'):
            full_db_path = os.path.join(app.instance_path, uri[len('sqlite:///'):])
            if not os.path.exists(full_db_path):
                print(f"Database not found at {full_db_path}. Creating new database...")
        db.create_all()
        print("Database initialized successfully!")


if __name__ == '__main__':
    application = create_app()
    initialize_database(application)
    application.run(debug=True, host='0.0.0.0', port=int(os.getenv('PORT', '5000')))
