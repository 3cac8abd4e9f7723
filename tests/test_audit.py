"""
Tests for the audit sink.
"""
from audit import DatabaseAuditSink, log_mapping_event
from models import AuditLog, MappingCategory


class TestDatabaseAuditSink:

    def test_records_event(self, session):
        sink = DatabaseAuditSink(session)
        entry = sink.record(
            actor_id='alice',
            action=AuditLog.ACTION_PSEUDONYMIZE,
            resource_type=AuditLog.RESOURCE_FINDING,
            resource_id='s1',
            details={'findings_count': 2}
        )

        assert entry is not None
        stored = session.query(AuditLog).one()
        assert stored.actor_id == 'alice'
        assert stored.action == 'pseudonymize'
        assert stored.resource_type == 'finding'
        assert stored.details == {'findings_count': 2}

    def test_missing_actor_defaults_to_system(self, session):
        DatabaseAuditSink(session).record(actor_id=None, action=AuditLog.ACTION_MAPPING_CLEANUP)
        assert session.query(AuditLog).one().actor_id == AuditLog.SYSTEM_ACTOR

    def test_failure_is_swallowed(self, session):
        sink = DatabaseAuditSink(session)

        result = sink.record(actor_id='alice', action='mapping_create', details={'bad': object()})

        assert result is None
        assert session.query(AuditLog).count() == 0

        # The session is still usable afterwards
        assert sink.record(actor_id='alice', action='mapping_create') is not None
        assert session.query(AuditLog).count() == 1


class TestLogMappingEvent:

    def test_standard_payload(self, audit):
        log_mapping_event(
            audit, AuditLog.ACTION_MAPPING_CREATE, 's1', MappingCategory.IDENTIFIER, 'alice',
            mapping_id='m-1', pseudonym_value='ID_001'
        )

        assert audit.events == [{
            'actor_id': 'alice',
            'action': 'mapping_create',
            'resource_type': 'mapping',
            'resource_id': 'm-1',
            'details': {'session_id': 's1', 'category': 'identifier', 'pseudonym_value': 'ID_001'},
        }]
