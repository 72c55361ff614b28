from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy.exc import OperationalError
import logging
import os
from dotenv import load_dotenv

load_dotenv()

db = SQLAlchemy()
migrate = Migrate()
limiter = Limiter(key_func=get_remote_address)

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    from chama_disputes.config import CONFIGS

    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(CONFIGS.get(config_name, CONFIGS['development']))

    logging.basicConfig(level=logging.INFO)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    CORS(app)

    # Import models so their tables are registered on db.metadata
    from chama_disputes import models  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            logger.warning(f'Could not create database tables: {e}')

    from chama_disputes.routes import register_routes
    register_routes(app)

    register_error_handlers(app)

    from chama_disputes.cli import disputes_cli
    app.cli.add_command(disputes_cli)

    @app.route('/health', methods=['GET'])
    def health():
        return {'status': 'ok'}, 200

    return app


def register_error_handlers(app):
    """Map service-layer errors onto the JSON error shape used by every route."""
    from chama_disputes.services.errors import DisputeError

    @app.errorhandler(DisputeError)
    def handle_dispute_error(error):
        return jsonify({'error': error.message}), error.status_code

    @app.errorhandler(OperationalError)
    def handle_storage_unavailable(error):
        db.session.rollback()
        logger.error(f'Database unavailable: {error}')
        return jsonify({'error': 'Service temporarily unavailable'}), 503
