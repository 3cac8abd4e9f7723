"""
Session-scoped, encrypted storage of plaintext <-> pseudonym mappings.

Each call runs as one transaction on the injected SQLAlchemy session:
- create_or_reuse_mappings: read a session/category, decrypt, reuse or
  allocate, commit all creates and usage updates together
- load_reverse_mappings: read a whole session, decrypt, bump usage counters

Ordinals come from a MappingSequence row that is locked (SELECT ... FOR
UPDATE) before the mappings are read, and pseudonyms are unique per
(session, category), so a lost race shows up as an IntegrityError and the
call is retried from a fresh read. On backends without row locks two
concurrent calls introducing the same new value can still both create a
mapping for it; both remain restorable.

Audit events are emitted after commit. A mapping whose ciphertext cannot be
decrypted is skipped and audited; it never aborts the call.
"""

import logging
import uuid
from collections import namedtuple
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from audit import log_mapping_event
from crypto import DecryptionError
from models import db, utcnow, AuditLog, MappingCategory, MappingSequence, PseudonymMapping
from ai.anonymization.errors import MappingStoreError, MappingsNotFoundError
from ai.anonymization.pseudonyms import generate_pseudonym

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

_Event = namedtuple('_Event', 'action session_id category mapping_id details')


@dataclass
class MappingResult:
    """Outcome of create_or_reuse_mappings for one category."""

    pseudonyms: Dict[str, str] = field(default_factory=dict)
    created: int = 0
    reused: int = 0


@dataclass
class ReverseLookup:
    """Pseudonym -> plaintext for a session, plus how many mappings failed to decrypt."""

    mappings: Dict[str, str] = field(default_factory=dict)
    decryption_errors: int = 0


class MappingStore:
    """Persistence for pseudonym mappings, scoped by session."""

    def __init__(self, cipher, audit, session=None, retention_days=30, clock=utcnow):
        """
        Args:
            cipher: Object with encrypt(str) -> str and decrypt(str) -> str,
                    raising DecryptionError on bad ciphertext
            audit: AuditSink receiving lifecycle events
            session: SQLAlchemy session (defaults to the Flask-SQLAlchemy one)
            retention_days: Lifetime of a new mapping
            clock: Callable returning the current naive UTC datetime
        """
        self.cipher = cipher
        self.audit = audit
        self.session = session or db.session
        self.retention_days = retention_days
        self.clock = clock

    @property
    def retention(self):
        return timedelta(days=self.retention_days)

    # =========================================================================
    # Pseudonymization
    # =========================================================================

    def create_or_reuse_mappings(self, values: Iterable[str], category, session_id: str,
                                 actor_id: str) -> MappingResult:
        """
        Return the pseudonym of every value, creating mappings for new ones.

        Args:
            values: Plaintext values of one category
            category: MappingCategory (or its value)
            session_id: Isolation scope
            actor_id: Requester identity, stored as created_by on new mappings

        Returns:
            MappingResult with the plaintext -> pseudonym map for these values

        Raises:
            MappingStoreError: If the batch cannot be committed
        """
        category = MappingCategory(category)
        values = {value for value in values if value}
        if not values:
            return MappingResult()

        last_error = None
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                result, events = self._create_or_reuse_once(values, category, session_id, actor_id)
                break
            except IntegrityError as e:
                self.session.rollback()
                last_error = e
                logger.warning(
                    f"Mapping write conflict for session {session_id} ({category.value}), "
                    f"attempt {attempt}/{MAX_WRITE_ATTEMPTS}"
                )
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(f"Failed to store mappings for session {session_id} ({category.value}): "
                             f"{type(e).__name__}")
                raise MappingStoreError("Failed to store pseudonym mappings") from e
        else:
            raise MappingStoreError(
                "Failed to store pseudonym mappings after concurrent write conflicts"
            ) from last_error

        self._emit(events, actor_id)
        logger.info(
            f"Session {session_id} {category.value}: {result.created} mappings created, "
            f"{result.reused} reused"
        )
        return result

    def _create_or_reuse_once(self, values, category, session_id, actor_id):
        now = self.clock()
        events: List[_Event] = []

        sequence = self._lock_sequence(session_id, category)
        existing = (
            self.session.query(PseudonymMapping)
            .filter_by(session_id=session_id, category=category)
            .order_by(PseudonymMapping.ordinal)
            .all()
        )

        floor = max((m.ordinal for m in existing), default=-1) + 1
        if sequence.next_ordinal is None or sequence.next_ordinal < floor:
            sequence.next_ordinal = floor

        lookup = {}
        for mapping in existing:
            plaintext = self._try_decrypt(mapping, events)
            if plaintext is not None and plaintext not in lookup:
                lookup[plaintext] = mapping

        result = MappingResult()
        for value in sorted(values):
            mapping = lookup.get(value)
            if mapping is not None:
                mapping.last_accessed_at = now
                mapping.usage_count = PseudonymMapping.usage_count + 1
                result.pseudonyms[value] = mapping.pseudonym_value
                result.reused += 1
                events.append(_Event(AuditLog.ACTION_MAPPING_REUSE, session_id, category, mapping.id,
                                     {'pseudonym_value': mapping.pseudonym_value}))
                continue

            ordinal = sequence.next_ordinal
            sequence.next_ordinal = ordinal + 1
            pseudonym = generate_pseudonym(category, ordinal)
            mapping = PseudonymMapping(
                id=str(uuid.uuid4()),
                session_id=session_id,
                category=category,
                original_value_encrypted=self.cipher.encrypt(value),
                pseudonym_value=pseudonym,
                ordinal=ordinal,
                created_at=now,
                expires_at=now + self.retention,
                last_accessed_at=now,
                usage_count=0,
                created_by=actor_id,
            )
            self.session.add(mapping)
            result.pseudonyms[value] = pseudonym
            result.created += 1
            events.append(_Event(AuditLog.ACTION_MAPPING_CREATE, session_id, category, mapping.id,
                                 {'pseudonym_value': pseudonym}))

        self.session.commit()
        return result, events

    def _lock_sequence(self, session_id, category):
        sequence = (
            self.session.query(MappingSequence)
            .filter_by(session_id=session_id, category=category)
            .with_for_update()
            .first()
        )
        if sequence is None:
            sequence = MappingSequence(session_id=session_id, category=category, next_ordinal=0)
            self.session.add(sequence)
        return sequence

    # =========================================================================
    # Depseudonymization
    # =========================================================================

    def load_all_mappings(self, session_id: str) -> List[PseudonymMapping]:
        """
        Return every mapping of a session.

        Raises:
            MappingsNotFoundError: If the session has no mappings
        """
        mappings = (
            self.session.query(PseudonymMapping)
            .filter_by(session_id=session_id)
            .order_by(PseudonymMapping.category, PseudonymMapping.ordinal)
            .all()
        )
        if not mappings:
            raise MappingsNotFoundError(session_id, self.retention_days)
        return mappings

    def load_reverse_mappings(self, session_id: str, actor_id: str) -> ReverseLookup:
        """
        Decrypt a session's mappings into pseudonym -> plaintext.

        Mappings that fail to decrypt are left out and audited. Usage counters
        of the others are incremented in one commit.

        Raises:
            MappingsNotFoundError: If the session has no mappings
            MappingStoreError: If the usage update cannot be committed
        """
        mappings = self.load_all_mappings(session_id)
        now = self.clock()
        events: List[_Event] = []
        lookup = ReverseLookup()

        for mapping in mappings:
            plaintext = self._try_decrypt(mapping, events)
            if plaintext is None:
                lookup.decryption_errors += 1
                continue
            lookup.mappings[mapping.pseudonym_value] = plaintext
            mapping.usage_count = PseudonymMapping.usage_count + 1
            mapping.last_accessed_at = now
            events.append(_Event(AuditLog.ACTION_MAPPING_ACCESS, session_id, mapping.category, mapping.id,
                                 {'pseudonym_value': mapping.pseudonym_value}))

        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to record mapping access for session {session_id}: {type(e).__name__}")
            raise MappingStoreError("Failed to update mapping usage") from e

        self._emit(events, actor_id)
        if lookup.decryption_errors:
            logger.warning(f"Session {session_id}: {lookup.decryption_errors} mappings could not be decrypted")
        return lookup

    def count_mappings(self, session_id: str) -> int:
        return (
            self.session.query(func.count(PseudonymMapping.id))
            .filter_by(session_id=session_id)
            .scalar()
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _try_decrypt(self, mapping, events):
        try:
            return self.cipher.decrypt(mapping.original_value_encrypted)
        except DecryptionError as e:
            logger.warning(f"Could not decrypt mapping {mapping.id} in session {mapping.session_id}: {e}")
            events.append(_Event(AuditLog.ACTION_MAPPING_DECRYPTION_ERROR, mapping.session_id,
                                 mapping.category, mapping.id, {'error': str(e)}))
            return None

    def _emit(self, events, actor_id):
        for event in events:
            log_mapping_event(
                self.audit,
                event.action,
                event.session_id,
                event.category,
                actor_id,
                mapping_id=event.mapping_id,
                **event.details
            )
