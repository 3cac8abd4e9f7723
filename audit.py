"""
Audit Sink

Write-only record of mapping lifecycle events (create, reuse, access,
decryption error, cleanup) and of the API operations that trigger them.

Recording is best-effort: a failure to write an audit entry is logged and
swallowed so it can never abort the operation being audited. Callers emit
events after their own transaction has committed.
"""
import logging

from models import db, AuditLog

logger = logging.getLogger(__name__)


class AuditSink:
    """Interface for audit event recording."""

    def record(self, actor_id, action, resource_type=AuditLog.RESOURCE_MAPPING,
               resource_id=None, details=None):
        """
        Record one audit event. Must never raise.

        Args:
            actor_id: Identity of the requester ('system' for scheduled jobs)
            action: Event type (use AuditLog.ACTION_* constants)
            resource_type: Type of resource affected
            resource_id: ID of the affected resource
            details: Additional context as dict (no plaintext, no ciphertext)
        """
        raise NotImplementedError


class DatabaseAuditSink(AuditSink):
    """Persists audit events to the audit_logs table, one commit per event."""

    def __init__(self, session=None):
        self.session = session or db.session

    def record(self, actor_id, action, resource_type=AuditLog.RESOURCE_MAPPING,
               resource_id=None, details=None):
        try:
            entry = AuditLog(
                actor_id=actor_id or AuditLog.SYSTEM_ACTOR,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details or {}
            )
            self.session.add(entry)
            self.session.commit()
            return entry
        except Exception as e:
            logger.warning(f"Failed to record audit event '{action}' ({type(e).__name__})")
            try:
                self.session.rollback()
            except Exception:
                logger.exception("Rollback after audit failure also failed")
            return None


def log_mapping_event(sink, action, session_id, category, actor_id, mapping_id=None, **details):
    """
    Record a per-mapping event with the standard detail fields.

    Args:
        sink: AuditSink to write to
        action: AuditLog.ACTION_MAPPING_* constant
        session_id: Session owning the mapping
        category: MappingCategory of the mapping
        actor_id: Identity of the requester
        mapping_id: ID of the mapping, used as resource_id
        **details: Extra detail fields (e.g. pseudonym_value, error)
    """
    payload = {
        'session_id': session_id,
        'category': category.value if hasattr(category, 'value') else category,
    }
    payload.update(details)
    sink.record(
        actor_id=actor_id,
        action=action,
        resource_type=AuditLog.RESOURCE_MAPPING,
        resource_id=mapping_id,
        details=payload
    )
