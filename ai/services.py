"""
Per-request construction of the pseudonymization collaborators.

The cipher is built once at start-up and kept in app.extensions; stores,
services and sweepers are cheap and bound to the current db.session, so they
are built on demand inside an app context.
"""

from flask import current_app

from audit import DatabaseAuditSink
from ai.anonymization.mapping_store import MappingStore
from ai.anonymization.service import PseudonymizationService
from ai.anonymization.sweeper import ExpirySweeper
from ai.config import PseudonymizationConfig

CIPHER_EXTENSION = 'mapping_cipher'


def get_mapping_cipher():
    return current_app.extensions[CIPHER_EXTENSION]


def build_mapping_store(audit=None) -> MappingStore:
    return MappingStore(
        cipher=get_mapping_cipher(),
        audit=audit or DatabaseAuditSink(),
        retention_days=PseudonymizationConfig.get_retention_days(),
    )


def build_pseudonymization_service(audit=None) -> PseudonymizationService:
    return PseudonymizationService(
        store=build_mapping_store(audit),
        rules=PseudonymizationConfig.get_detection_rules(),
    )


def build_expiry_sweeper(audit=None) -> ExpirySweeper:
    return ExpirySweeper(
        audit=audit or DatabaseAuditSink(),
        batch_size=PseudonymizationConfig.get_sweep_batch_size(),
    )
