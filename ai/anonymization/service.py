"""
Pseudonymization Service.

Entry points used by the API layer and chat clients:
- pseudonymize_findings: extract sensitive values from finding records,
  map them to session-scoped pseudonyms and rewrite the records
- depseudonymize_data: restore original values in arbitrary AI output
  using the mappings of the same session
- pseudonymize_text / depseudonymize_text: the same for one chat string

Collaborators (mapping store, extractor) are injected so the service can be
exercised without Flask.
"""

import logging
from typing import Any, Dict, List

from ai.anonymization.detector import DetectionRules, SensitiveDataExtractor
from ai.anonymization.errors import InvalidArgumentError, PseudonymizationError
from ai.anonymization.replacement import apply_reverse, pseudonymize_records

logger = logging.getLogger(__name__)


def _require_session_id(session_id):
    if not isinstance(session_id, str) or not session_id.strip():
        raise InvalidArgumentError('sessionId is required')
    # Ids are compared verbatim, never normalized
    if session_id != session_id.strip():
        raise InvalidArgumentError('sessionId must not have leading or trailing whitespace')
    return session_id


class PseudonymizationService:
    """Session-scoped pseudonymization and depseudonymization of findings."""

    def __init__(self, store, extractor: SensitiveDataExtractor = None, rules: DetectionRules = None):
        """
        Args:
            store: MappingStore bound to the current database session
            extractor: Extractor to use (defaults to one built from rules)
            rules: Detection rules; replacement fields are taken from here
        """
        self.rules = rules or (extractor.rules if extractor else DetectionRules())
        self.extractor = extractor or SensitiveDataExtractor(self.rules)
        self.store = store

    def pseudonymize_findings(self, findings: List[Dict], session_id: str, actor_id: str) -> Dict[str, Any]:
        """
        Replace sensitive values in findings with session-scoped pseudonyms.

        Args:
            findings: Non-empty list of finding records
            session_id: Mapping scope
            actor_id: Requester identity

        Returns:
            Dict with pseudonymizedFindings, sessionId and mappingsCreated
            (mappings newly created by this call)

        Raises:
            InvalidArgumentError: Validation failed; nothing was written
            PseudonymizationError: Storage or unexpected failure
        """
        if not isinstance(findings, list):
            raise InvalidArgumentError('findings must be an array')
        if not findings:
            raise InvalidArgumentError('findings array cannot be empty')
        session_id = _require_session_id(session_id)

        try:
            extracted = self.extractor.extract(findings)

            mappings = {}
            created = 0
            for category, values in extracted.by_category():
                if not values:
                    continue
                result = self.store.create_or_reuse_mappings(values, category, session_id, actor_id)
                mappings.update(result.pseudonyms)
                created += result.created

            pseudonymized = pseudonymize_records(findings, mappings, self.rules.replacement_fields)
        except PseudonymizationError:
            raise
        except Exception as e:
            logger.error(f"pseudonymize_findings failed for session {session_id}: {type(e).__name__}")
            raise PseudonymizationError('Failed to pseudonymize findings') from e

        logger.info(
            f"Pseudonymized {len(findings)} findings for session {session_id}: "
            f"{len(mappings)} values, {created} new mappings"
        )
        return {
            'pseudonymizedFindings': pseudonymized,
            'sessionId': session_id,
            'mappingsCreated': created,
        }

    def depseudonymize_data(self, data: Any, session_id: str, actor_id: str) -> Dict[str, Any]:
        """
        Restore original values in data using the session's mappings.

        Raises:
            InvalidArgumentError: session_id is empty
            MappingsNotFoundError: The session has no mappings
            PseudonymizationError: Storage or unexpected failure
        """
        session_id = _require_session_id(session_id)

        try:
            lookup = self.store.load_reverse_mappings(session_id, actor_id)
            restored = apply_reverse(data, lookup.mappings)
        except PseudonymizationError:
            raise
        except Exception as e:
            logger.error(f"depseudonymize_data failed for session {session_id}: {type(e).__name__}")
            raise PseudonymizationError('Failed to depseudonymize results') from e

        logger.info(
            f"Depseudonymized data for session {session_id} with {len(lookup.mappings)} mappings"
            + (f" ({lookup.decryption_errors} undecryptable)" if lookup.decryption_errors else "")
        )
        return {'depseudonymizedData': restored}

    def pseudonymize_text(self, text: str, session_id: str, actor_id: str) -> Dict[str, Any]:
        """
        Pseudonymize a single free-text string, such as a chat question.

        The text is treated as the description of a one-off finding, so only
        pattern-detected values (identifiers, amounts) create mappings.
        """
        if not isinstance(text, str):
            raise InvalidArgumentError('text must be a string')

        result = self.pseudonymize_findings([{'findingDescription': text}], session_id, actor_id)
        return {
            'pseudonymizedText': result['pseudonymizedFindings'][0]['findingDescription'],
            'sessionId': result['sessionId'],
            'mappingsCreated': result['mappingsCreated'],
        }

    def depseudonymize_text(self, text: str, session_id: str, actor_id: str) -> str:
        """Restore original values in a single string of AI output."""
        if not isinstance(text, str):
            raise InvalidArgumentError('text must be a string')
        return self.depseudonymize_data(text, session_id, actor_id)['depseudonymizedData']
