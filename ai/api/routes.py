"""
Pseudonymization API Routes.

REST endpoints used by the findings assistant before and after calling the
external AI service. Authentication is via API key in Authorization header.
"""

import logging

from flask import Blueprint, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from audit import DatabaseAuditSink
from auth import SCOPE_CLEANUP, SCOPE_DEPSEUDONYMIZE, SCOPE_PSEUDONYMIZE, api_key_required
from models import db, utcnow, AuditLog
from security import get_client_ip, limiter
from version import get_build_info
from ai.anonymization.errors import InvalidArgumentError, PseudonymizationError
from ai.services import build_expiry_sweeper, build_pseudonymization_service

logger = logging.getLogger(__name__)

# Create Blueprint for pseudonymization API routes
pseudonymization_api = Blueprint('pseudonymization_api', __name__, url_prefix='/api/pseudonymization')


@pseudonymization_api.errorhandler(PseudonymizationError)
def handle_pseudonymization_error(e):
    if e.status >= 500:
        logger.error(f"{request.path} failed: {e.message}")
    return jsonify(e.to_dict()), e.status


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidArgumentError('Request body must be a JSON object')
    return data


def _session_id(data):
    # batchId is the deprecated name of sessionId
    return data.get('sessionId') or data.get('batchId')


def _record_operation(action, resource_type, session_id, **details):
    DatabaseAuditSink().record(
        actor_id=g.actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=session_id,
        details=dict(details, session_id=session_id, ip_address=get_client_ip())
    )


# --- Pseudonymize Endpoint ---

@pseudonymization_api.route('/pseudonymize', methods=['POST'])
@limiter.limit("60 per minute")
@api_key_required(SCOPE_PSEUDONYMIZE)
def api_pseudonymize():
    """
    Replace sensitive values in findings with session-scoped pseudonyms.

    Request body:
    {
        "findings": [{...}, ...],   // non-empty list of finding records
        "sessionId": "chat-42"      // "batchId" is accepted for older clients
    }
    """
    data = _json_body()
    findings = data.get('findings')

    result = build_pseudonymization_service().pseudonymize_findings(findings, _session_id(data), g.actor_id)

    _record_operation(
        AuditLog.ACTION_PSEUDONYMIZE,
        AuditLog.RESOURCE_FINDING,
        result['sessionId'],
        findings_count=len(findings),
        mappings_created=result['mappingsCreated'],
    )
    return jsonify(result)


# --- Depseudonymize Endpoint ---

@pseudonymization_api.route('/depseudonymize', methods=['POST'])
@limiter.limit("60 per minute")
@api_key_required(SCOPE_DEPSEUDONYMIZE)
def api_depseudonymize():
    """
    Restore original values in AI output.

    Request body:
    {
        "data": <any JSON>,
        "sessionId": "chat-42"
    }
    """
    data = _json_body()
    if 'data' not in data:
        raise InvalidArgumentError('data is required')

    result = build_pseudonymization_service().depseudonymize_data(
        data.get('data'), _session_id(data), g.actor_id
    )

    _record_operation(
        AuditLog.ACTION_DEPSEUDONYMIZE,
        AuditLog.RESOURCE_AI_RESULT,
        _session_id(data),
        data_type=type(data.get('data')).__name__,
    )
    return jsonify(result)


# --- Cleanup Endpoint ---

@pseudonymization_api.route('/cleanup', methods=['POST'])
@limiter.limit("5 per minute")
@api_key_required(SCOPE_CLEANUP)
def api_cleanup():
    """
    Delete expired mappings now instead of waiting for the daily job.

    Request body (optional):
    {
        "dryRun": true    // only count what would be deleted
    }
    """
    data = request.get_json(silent=True) or {}
    sweeper = build_expiry_sweeper()

    if data.get('dryRun'):
        return jsonify({'expiredCount': sweeper.count_expired(), 'dryRun': True})

    deleted = sweeper.sweep()
    logger.info(f"Cleanup requested by {g.actor_id}: {deleted} mappings deleted")
    return jsonify({'deletedCount': deleted})


# --- Health Endpoint ---

@pseudonymization_api.route('/health', methods=['GET'])
@limiter.exempt
def api_health():
    """Health check reporting database connectivity and build info."""
    try:
        db.session.execute(db.text('SELECT 1'))
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Health check database error: {type(e).__name__}")
        return jsonify({
            'status': 'unhealthy',
            'database': 'unavailable',
            'timestamp': utcnow().isoformat(),
        }), 503

    return jsonify({
        'status': 'healthy',
        'database': 'connected',
        'timestamp': utcnow().isoformat(),
        'build': get_build_info(),
    })
