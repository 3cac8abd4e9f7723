import os
import sys
import logging
import traceback

import click
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from models import db
from crypto import MappingCipher
from keyvault_client import keyvault_client
from security import apply_security_headers, limiter
from log_forwarding import setup_log_forwarding
from version import get_version_string

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)
logger = logging.getLogger(__name__)


def _redact_database_url(database_url):
    return database_url.split('@')[1] if '@' in database_url else database_url


def create_app(test_config=None):
    """
    Create the pseudonymization API application.

    Configuration priority: test_config -> Key Vault -> environment variable -> default.

    Raises:
        EncryptionKeyError: If no valid mapping encryption key is configured
    """
    app = Flask(__name__)
    testing = os.environ.get('FLASK_ENV') == 'testing'

    # ==================== Secure Configuration via Azure Key Vault ====================

    # IMPORTANT: When FLASK_ENV=testing, use an in-memory SQLite database to protect production
    if testing:
        database_url = 'sqlite:///:memory:'
        logger.info("TESTING MODE: Using in-memory SQLite database")
    else:
        database_url = keyvault_client.get_database_url()

    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Rate limiting configuration - disabled in testing mode
    app.config['RATELIMIT_ENABLED'] = not testing
    app.config['RATELIMIT_STORAGE_URI'] = os.environ.get('REDIS_URL', 'memory://')
    app.config['RATELIMIT_DEFAULT'] = '200 per minute'
    app.config['RATELIMIT_HEADERS_ENABLED'] = True

    if test_config:
        app.config.update(test_config)

    if not app.config.get('MAPPING_ENCRYPTION_KEY'):
        app.config['MAPPING_ENCRYPTION_KEY'] = keyvault_client.get_mapping_encryption_key()
    if not app.config.get('PSEUDONYMIZATION_API_KEYS'):
        app.config['PSEUDONYMIZATION_API_KEYS'] = keyvault_client.get_api_keys_config()

    logger.info(f"Database URL configured: {_redact_database_url(app.config['SQLALCHEMY_DATABASE_URI'])}")

    # Fail fast: without a key no mapping can be written or read
    cipher = MappingCipher(app.config['MAPPING_ENCRYPTION_KEY'])
    app.extensions['mapping_cipher'] = cipher
    logger.info(f"Mapping encryption configured with {cipher.key_count} key(s)")

    if not app.config['PSEUDONYMIZATION_API_KEYS']:
        logger.warning("No API keys configured; every API request will be rejected")

    db.init_app(app)
    limiter.init_app(app)
    if app.config['RATELIMIT_ENABLED']:
        logger.info("Rate limiting enabled")
    else:
        logger.info("Rate limiting disabled")

    from ai.api import pseudonymization_api
    app.register_blueprint(pseudonymization_api)

    _register_error_handlers(app)
    _register_cli(app)

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        response = apply_security_headers(response)
        response.headers.pop('Server', None)
        return response

    with app.app_context():
        db.create_all()
        setup_log_forwarding(app)

    logger.info(f"Pseudonymization service {get_version_string()} initialized")
    return app


# ==================== Global Error Handlers ====================
# SECURITY: Prevent stack traces and sensitive values from leaking to clients

def _register_error_handlers(app):

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({
            'error': e.name.lower().replace(' ', '-'),
            'message': e.description,
        }), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Global exception handler to prevent stack trace leakage."""
        logger.error(f"Unhandled exception on {request.path}: {type(e).__name__}")
        logger.error(traceback.format_exc())
        return jsonify({'error': 'internal', 'message': 'An internal server error occurred'}), 500


# ==================== CLI Commands ====================

def _register_cli(app):

    @app.cli.command('cleanup-mappings')
    @click.option('--dry-run', is_flag=True, help='Only count expired mappings.')
    def cleanup_mappings_command(dry_run):
        """Delete pseudonym mappings past their expiry (run daily)."""
        from ai.services import build_expiry_sweeper

        sweeper = build_expiry_sweeper()
        if dry_run:
            click.echo(f"{sweeper.count_expired()} expired mappings would be deleted")
            return
        click.echo(f"Deleted {sweeper.sweep()} expired mappings")
