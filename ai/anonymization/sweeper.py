"""
Expiry Sweeper.

Deletes pseudonym mappings whose expires_at has passed. Meant to run daily
from `flask cleanup-mappings` or scripts/cleanup_expired_mappings.py.
Mapping sequences are kept so ordinals are never reused.
"""

import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db, utcnow, AuditLog, PseudonymMapping
from ai.anonymization.errors import MappingStoreError

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Paginated deletion of expired mappings."""

    def __init__(self, audit, session=None, batch_size=500, clock=utcnow):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.audit = audit
        self.session = session or db.session
        self.batch_size = batch_size
        self.clock = clock

    def _expired_query(self, now):
        return self.session.query(PseudonymMapping).filter(PseudonymMapping.expires_at <= now)

    def count_expired(self) -> int:
        """Number of mappings a sweep run now would delete."""
        now = self.clock()
        return (
            self.session.query(func.count(PseudonymMapping.id))
            .filter(PseudonymMapping.expires_at <= now)
            .scalar()
        )

    def sweep(self) -> int:
        """
        Delete every mapping with expires_at <= now.

        Each page of batch_size rows is committed on its own. A single
        summary audit event lists what was deleted; nothing is audited when
        nothing expired.

        Returns:
            Number of mappings deleted

        Raises:
            MappingStoreError: If a page cannot be committed (earlier pages
                               stay deleted)
        """
        now = self.clock()
        deleted = []

        while True:
            page = (
                self._expired_query(now)
                .order_by(PseudonymMapping.expires_at, PseudonymMapping.id)
                .limit(self.batch_size)
                .all()
            )
            if not page:
                break

            page_info = [
                {'id': m.id, 'session_id': m.session_id, 'category': m.category.value}
                for m in page
            ]
            try:
                for mapping in page:
                    self.session.delete(mapping)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(f"Expired mapping cleanup failed after {len(deleted)} deletions: {type(e).__name__}")
                self._record(deleted, now)
                raise MappingStoreError('Failed to delete expired mappings') from e

            deleted.extend(page_info)
            logger.debug(f"Deleted page of {len(page_info)} expired mappings")

            if len(page) < self.batch_size:
                break

        self._record(deleted, now)
        if deleted:
            logger.info(f"Deleted {len(deleted)} expired pseudonym mappings")
        return len(deleted)

    def _record(self, deleted, now):
        if not deleted:
            return
        self.audit.record(
            actor_id=AuditLog.SYSTEM_ACTOR,
            action=AuditLog.ACTION_MAPPING_CLEANUP,
            resource_type=AuditLog.RESOURCE_MAPPING,
            details={
                'deleted_count': len(deleted),
                'cutoff': now.isoformat(),
                'deleted_mappings': deleted,
            }
        )
