"""
API key authentication for the pseudonymization API.

Keys are never stored. The registry holds SHA-256 hashes per actor:

    {"audit-assistant": {"key_hash": "<sha256 hex>", "scopes": ["pseudonymize", "depseudonymize"]}}

It is read from app.config['PSEUDONYMIZATION_API_KEYS'] (dict or JSON string),
which the app factory fills from Key Vault / environment.
"""
from functools import wraps
from flask import current_app, g, jsonify, request
import hashlib
import hmac
import json
import logging
import secrets

from security import log_security_event

logger = logging.getLogger(__name__)

SCOPE_PSEUDONYMIZE = 'pseudonymize'
SCOPE_DEPSEUDONYMIZE = 'depseudonymize'
SCOPE_CLEANUP = 'cleanup'
ALL_SCOPES = (SCOPE_PSEUDONYMIZE, SCOPE_DEPSEUDONYMIZE, SCOPE_CLEANUP)

# Key format: psn_<random_32_chars>
KEY_PREFIX = 'psn_'
KEY_LENGTH = 32


def generate_key():
    """Generate a new API key (shown once, only its hash is configured)."""
    return f"{KEY_PREFIX}{secrets.token_urlsafe(KEY_LENGTH)}"


def hash_key(key):
    """SHA256 hash of an API key."""
    return hashlib.sha256(key.encode()).hexdigest()


def parse_api_keys(raw):
    """
    Parse the API key registry.

    Args:
        raw: dict, JSON string, or None

    Returns:
        dict of actor_id -> {'key_hash': str, 'scopes': set}; malformed
        entries are skipped with a warning
    """
    if not raw:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.error("PSEUDONYMIZATION_API_KEYS is not valid JSON; no API keys loaded")
            return {}
    if not isinstance(raw, dict):
        logger.error("PSEUDONYMIZATION_API_KEYS must be a JSON object; no API keys loaded")
        return {}

    registry = {}
    for actor_id, entry in raw.items():
        if not isinstance(entry, dict) or not entry.get('key_hash'):
            logger.warning(f"Skipping API key entry for '{actor_id}': missing key_hash")
            continue
        scopes = set(entry.get('scopes') or ALL_SCOPES)
        registry[actor_id] = {'key_hash': entry['key_hash'].lower(), 'scopes': scopes}
    return registry


def authenticate_api_key(key, registry):
    """
    Find the actor owning an API key.

    Every entry is compared in constant time.

    Returns:
        (actor_id, scopes) or (None, None)
    """
    candidate = hash_key(key)
    match = None
    for actor_id, entry in registry.items():
        if hmac.compare_digest(candidate, entry['key_hash']):
            match = (actor_id, entry['scopes'])
    return match or (None, None)


def get_api_key_registry():
    registry = current_app.extensions.get('pseudonymization_api_keys')
    if registry is None:
        registry = parse_api_keys(current_app.config.get('PSEUDONYMIZATION_API_KEYS'))
        current_app.extensions['pseudonymization_api_keys'] = registry
    return registry


def api_key_required(scope):
    """
    Decorator to require a Bearer API key carrying the given scope.

    Sets g.actor_id for the wrapped view.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            auth_header = request.headers.get('Authorization', '')
            if not auth_header.startswith('Bearer '):
                log_security_event('auth', 'Missing or invalid Authorization header', severity='WARNING')
                return jsonify({
                    'error': 'unauthenticated',
                    'message': 'Missing or invalid Authorization header. Use: Authorization: Bearer <api_key>'
                }), 401

            actor_id, scopes = authenticate_api_key(auth_header[7:], get_api_key_registry())
            if not actor_id:
                log_security_event('auth', 'Invalid API key', severity='WARNING')
                return jsonify({'error': 'unauthenticated', 'message': 'Invalid API key'}), 401

            if scope not in scopes:
                log_security_event('access', f"API key lacks scope '{scope}'", actor_id=actor_id,
                                   severity='WARNING')
                return jsonify({
                    'error': 'permission-denied',
                    'message': f'API key does not have required scope: {scope}'
                }), 403

            g.actor_id = actor_id
            return f(*args, **kwargs)
        return decorated_function
    return decorator
