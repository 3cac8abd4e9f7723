"""
Pytest fixtures for pseudonymization tests.
"""
import os
import sys
from datetime import datetime, timedelta

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import db
from flask import Flask
from audit import AuditSink
from auth import hash_key
from crypto import MappingCipher, generate_encryption_key
from ai.anonymization.mapping_store import MappingStore
from ai.anonymization.service import PseudonymizationService


class RecordingAuditSink(AuditSink):
    """In-memory audit sink capturing every event."""

    def __init__(self):
        self.events = []

    def record(self, actor_id, action, resource_type='mapping', resource_id=None, details=None):
        self.events.append({
            'actor_id': actor_id,
            'action': action,
            'resource_type': resource_type,
            'resource_id': resource_id,
            'details': details or {},
        })

    def actions(self):
        return [e['action'] for e in self.events]

    def of(self, action):
        return [e for e in self.events if e['action'] == action]


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def app():
    """Create application for testing."""
    app = Flask(__name__)
    app.config['TESTING'] = True
    app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    db.init_app(app)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    """Create database session for testing."""
    with app.app_context():
        yield db.session


@pytest.fixture
def encryption_key():
    return generate_encryption_key()


@pytest.fixture
def cipher(encryption_key):
    return MappingCipher(encryption_key)


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 1, 9, 0, 0))


@pytest.fixture
def store(session, cipher, audit, clock):
    return MappingStore(cipher=cipher, audit=audit, session=session, clock=clock)


@pytest.fixture
def service(store):
    return PseudonymizationService(store=store)


# ============================================================================
# API FIXTURES
# ============================================================================

API_KEYS = {
    'assistant': 'psn_assistant-test-key',
    'reader': 'psn_reader-test-key',
    'ops': 'psn_ops-test-key',
}


@pytest.fixture
def api_app(encryption_key):
    """Full application from the factory, with in-memory database and test API keys."""
    from app import create_app

    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'RATELIMIT_ENABLED': False,
        'MAPPING_ENCRYPTION_KEY': encryption_key,
        'PSEUDONYMIZATION_API_KEYS': {
            'assistant': {
                'key_hash': hash_key(API_KEYS['assistant']),
                'scopes': ['pseudonymize', 'depseudonymize'],
            },
            'reader': {
                'key_hash': hash_key(API_KEYS['reader']),
                'scopes': ['depseudonymize'],
            },
            'ops': {
                'key_hash': hash_key(API_KEYS['ops']),
                'scopes': ['cleanup'],
            },
        },
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(api_app):
    return api_app.test_client()


@pytest.fixture
def auth_headers():
    """Build an Authorization header for one of the test actors."""
    def _headers(actor='assistant'):
        return {'Authorization': f'Bearer {API_KEYS[actor]}'}
    return _headers
