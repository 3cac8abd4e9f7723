"""
Tests for expired mapping cleanup.
"""
import pytest

from ai.anonymization.sweeper import ExpirySweeper
from models import AuditLog, MappingCategory, MappingSequence, PseudonymMapping


@pytest.fixture
def sweeper(session, audit, clock):
    return ExpirySweeper(audit=audit, session=session, batch_size=500, clock=clock)


class TestSweep:

    def test_nothing_expired(self, store, sweeper, audit):
        store.create_or_reuse_mappings(['Jane Roe'], MappingCategory.NAME, 's1', 'alice')
        audit.events.clear()

        assert sweeper.sweep() == 0
        assert audit.events == []

    def test_boundary_to_the_second(self, store, sweeper, session, clock):
        store.create_or_reuse_mappings(['Jane Roe'], MappingCategory.NAME, 's1', 'alice')

        clock.advance(days=30, seconds=-1)
        assert sweeper.count_expired() == 0
        assert sweeper.sweep() == 0
        assert session.query(PseudonymMapping).count() == 1

        clock.advance(seconds=1)
        assert sweeper.count_expired() == 1
        assert sweeper.sweep() == 1
        assert session.query(PseudonymMapping).count() == 0

    def test_only_expired_mappings_deleted(self, store, sweeper, session, clock):
        store.create_or_reuse_mappings(['Old Value'], MappingCategory.NAME, 's1', 'alice')
        clock.advance(days=1)
        store.create_or_reuse_mappings(['New Value'], MappingCategory.NAME, 's2', 'alice')
        clock.advance(days=29)

        assert sweeper.sweep() == 1
        remaining = session.query(PseudonymMapping).all()
        assert [m.session_id for m in remaining] == ['s2']

    def test_summary_audit_event(self, store, sweeper, audit, clock):
        store.create_or_reuse_mappings(['Jane Roe', 'John Doe'], MappingCategory.NAME, 's1', 'alice')
        ids = {e['resource_id'] for e in audit.of(AuditLog.ACTION_MAPPING_CREATE)}
        audit.events.clear()
        clock.advance(days=31)

        sweeper.sweep()

        assert len(audit.events) == 1
        event = audit.events[0]
        assert event['action'] == AuditLog.ACTION_MAPPING_CLEANUP
        assert event['actor_id'] == AuditLog.SYSTEM_ACTOR
        assert event['details']['deleted_count'] == 2
        assert {m['id'] for m in event['details']['deleted_mappings']} == ids
        assert {m['session_id'] for m in event['details']['deleted_mappings']} == {'s1'}
        assert {m['category'] for m in event['details']['deleted_mappings']} == {'name'}

    def test_paginated(self, store, session, audit, clock):
        values = [f'PO{n:06d}' for n in range(5)]
        store.create_or_reuse_mappings(values, MappingCategory.IDENTIFIER, 's1', 'alice')
        audit.events.clear()
        clock.advance(days=31)

        sweeper = ExpirySweeper(audit=audit, session=session, batch_size=2, clock=clock)
        assert sweeper.sweep() == 5
        assert session.query(PseudonymMapping).count() == 0
        assert len(audit.events) == 1

    def test_idempotent(self, store, sweeper, clock):
        store.create_or_reuse_mappings(['Jane Roe'], MappingCategory.NAME, 's1', 'alice')
        clock.advance(days=31)

        assert sweeper.sweep() == 1
        assert sweeper.sweep() == 0

    def test_sequences_survive(self, store, sweeper, session, clock):
        store.create_or_reuse_mappings(['Jane Roe'], MappingCategory.NAME, 's1', 'alice')
        clock.advance(days=31)
        sweeper.sweep()

        sequence = session.query(MappingSequence).filter_by(session_id='s1').one()
        assert sequence.next_ordinal == 1

    def test_invalid_batch_size(self, audit, session):
        with pytest.raises(ValueError):
            ExpirySweeper(audit=audit, session=session, batch_size=0)
