"""
Exceptions raised by the pseudonymization engine.

Messages are safe to return to callers: they never contain plaintext
values or ciphertext.
"""


class PseudonymizationError(Exception):
    """Base error. Unexpected failures surface as 'internal'."""

    code = 'internal'
    status = 500

    def __init__(self, message='Pseudonymization operation failed'):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.code, 'message': self.message}


class InvalidArgumentError(PseudonymizationError):
    """Request failed validation; no work was performed."""

    code = 'invalid-argument'
    status = 400


class MappingsNotFoundError(PseudonymizationError):
    """A session has no stored mappings (never pseudonymized, or expired)."""

    code = 'not-found'
    status = 404

    def __init__(self, session_id, retention_days=30):
        super().__init__(
            f"Mappings not found for session ID: {session_id}. "
            f"Mappings may have expired ({retention_days} days)."
        )
        self.session_id = session_id


class MappingStoreError(PseudonymizationError):
    """Mapping storage failed after retries."""
