"""
Tests for the pseudonymization REST API and its API key authentication.
"""
import json
from datetime import datetime

from auth import authenticate_api_key, hash_key, parse_api_keys
from models import db, AuditLog, PseudonymMapping


FINDINGS = [{'responsiblePerson': 'John Doe', 'description': 'Issue ID12345 cost $5,000'}]


# ============================================================================
# API KEY TESTS
# ============================================================================

class TestApiKeyRegistry:

    def test_parse_json_string(self):
        raw = json.dumps({'bot': {'key_hash': hash_key('psn_x'), 'scopes': ['pseudonymize']}})
        registry = parse_api_keys(raw)
        assert registry == {'bot': {'key_hash': hash_key('psn_x'), 'scopes': {'pseudonymize'}}}

    def test_scopes_default_to_all(self):
        registry = parse_api_keys({'bot': {'key_hash': hash_key('psn_x')}})
        assert registry['bot']['scopes'] == {'pseudonymize', 'depseudonymize', 'cleanup'}

    def test_malformed_registry(self):
        assert parse_api_keys(None) == {}
        assert parse_api_keys('{not json') == {}
        assert parse_api_keys('["list"]') == {}
        assert parse_api_keys({'bot': {'scopes': ['cleanup']}}) == {}

    def test_authenticate(self):
        registry = parse_api_keys({'bot': {'key_hash': hash_key('psn_x'), 'scopes': ['cleanup']}})
        assert authenticate_api_key('psn_x', registry) == ('bot', {'cleanup'})
        assert authenticate_api_key('psn_y', registry) == (None, None)


class TestAuthentication:

    def test_missing_header(self, client):
        response = client.post('/api/pseudonymization/pseudonymize', json={'findings': FINDINGS, 'sessionId': 's1'})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'unauthenticated'

    def test_invalid_key(self, client):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers={'Authorization': 'Bearer psn_wrong'}
        )
        assert response.status_code == 401

    def test_missing_scope(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers=auth_headers('reader')
        )
        assert response.status_code == 403
        assert response.get_json()['error'] == 'permission-denied'


# ============================================================================
# ENDPOINT TESTS
# ============================================================================

class TestPseudonymizeEndpoint:

    def test_pseudonymize(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers=auth_headers()
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data['sessionId'] == 's1'
        assert data['mappingsCreated'] == 3
        assert data['pseudonymizedFindings'][0]['description'] == 'Issue ID_001 cost Amount_001'

    def test_batch_id_alias(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'batchId': 'legacy-batch'},
            headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.get_json()['sessionId'] == 'legacy-batch'

    def test_operation_is_audited(self, api_app, client, auth_headers):
        client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers=auth_headers()
        )

        entry = AuditLog.query.filter_by(action=AuditLog.ACTION_PSEUDONYMIZE).one()
        assert entry.actor_id == 'assistant'
        assert entry.resource_type == AuditLog.RESOURCE_FINDING
        assert entry.details['findings_count'] == 1
        assert entry.details['mappings_created'] == 3
        assert AuditLog.query.filter_by(action=AuditLog.ACTION_MAPPING_CREATE).count() == 3

    def test_empty_findings(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': [], 'sessionId': 's1'},
            headers=auth_headers()
        )
        assert response.status_code == 400
        assert response.get_json() == {'error': 'invalid-argument', 'message': 'findings array cannot be empty'}

    def test_missing_session_id(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS},
            headers=auth_headers()
        )
        assert response.status_code == 400
        assert PseudonymMapping.query.count() == 0

    def test_padded_session_id(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': ' s1'},
            headers=auth_headers()
        )
        assert response.status_code == 400
        assert PseudonymMapping.query.count() == 0

    def test_non_json_body(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/pseudonymize',
            data='findings',
            headers=auth_headers()
        )
        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid-argument'


class TestDepseudonymizeEndpoint:

    def test_round_trip(self, client, auth_headers):
        pseudonymized = client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers=auth_headers()
        ).get_json()['pseudonymizedFindings']

        response = client.post(
            '/api/pseudonymization/depseudonymize',
            json={'data': {'findings': pseudonymized}, 'sessionId': 's1'},
            headers=auth_headers('reader')
        )

        assert response.status_code == 200
        assert response.get_json() == {'depseudonymizedData': {'findings': FINDINGS}}
        assert AuditLog.query.filter_by(action=AuditLog.ACTION_DEPSEUDONYMIZE).count() == 1

    def test_unknown_session(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/depseudonymize',
            json={'data': 'Person_A', 'sessionId': 's2'},
            headers=auth_headers()
        )

        assert response.status_code == 404
        data = response.get_json()
        assert data['error'] == 'not-found'
        assert '30 days' in data['message']

    def test_missing_data(self, client, auth_headers):
        client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers=auth_headers()
        )

        response = client.post(
            '/api/pseudonymization/depseudonymize',
            json={'sessionId': 's1'},
            headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.get_json() == {'error': 'invalid-argument', 'message': 'data is required'}
        assert AuditLog.query.filter_by(action=AuditLog.ACTION_MAPPING_ACCESS).count() == 0
        assert AuditLog.query.filter_by(action=AuditLog.ACTION_DEPSEUDONYMIZE).count() == 0

    def test_null_data_is_allowed(self, client, auth_headers):
        client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers=auth_headers()
        )

        response = client.post(
            '/api/pseudonymization/depseudonymize',
            json={'data': None, 'sessionId': 's1'},
            headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.get_json() == {'depseudonymizedData': None}

    def test_missing_session_id(self, client, auth_headers):
        response = client.post(
            '/api/pseudonymization/depseudonymize',
            json={'data': 'Person_A'},
            headers=auth_headers()
        )
        assert response.status_code == 400


class TestCleanupEndpoint:

    def test_requires_cleanup_scope(self, client, auth_headers):
        response = client.post('/api/pseudonymization/cleanup', headers=auth_headers())
        assert response.status_code == 403

    def test_cleanup(self, api_app, client, auth_headers):
        client.post(
            '/api/pseudonymization/pseudonymize',
            json={'findings': FINDINGS, 'sessionId': 's1'},
            headers=auth_headers()
        )
        PseudonymMapping.query.update({PseudonymMapping.expires_at: datetime(2000, 1, 1)})
        db.session.commit()

        dry_run = client.post('/api/pseudonymization/cleanup', json={'dryRun': True}, headers=auth_headers('ops'))
        assert dry_run.get_json() == {'expiredCount': 3, 'dryRun': True}

        response = client.post('/api/pseudonymization/cleanup', headers=auth_headers('ops'))
        assert response.status_code == 200
        assert response.get_json() == {'deletedCount': 3}
        assert PseudonymMapping.query.count() == 0


class TestHealthAndHeaders:

    def test_health(self, client):
        response = client.get('/api/pseudonymization/health')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['build']['version']

    def test_security_headers(self, client):
        response = client.get('/api/pseudonymization/health')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['Cache-Control'] == 'no-store'

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/pseudonymization/nope')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'not-found'


class TestTestingMode:

    def test_testing_env_uses_in_memory_database(self, monkeypatch, encryption_key):
        from app import create_app

        monkeypatch.setenv('FLASK_ENV', 'testing')
        app = create_app({
            'MAPPING_ENCRYPTION_KEY': encryption_key,
            'PSEUDONYMIZATION_API_KEYS': {'ops': {'key_hash': hash_key('psn_ops'), 'scopes': ['cleanup']}},
        })

        assert app.config['SQLALCHEMY_DATABASE_URI'] == 'sqlite:///:memory:'
        assert app.config['RATELIMIT_ENABLED'] is False
