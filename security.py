"""
Security module for the pseudonymization API.

This module provides:
1. Rate limiting (Flask-Limiter instance and key function)
2. Security headers
3. Security event logging
"""

from flask import g, request, has_request_context
from flask_limiter import Limiter
import logging
import time

logger = logging.getLogger(__name__)


# ==================== Request Helpers ====================

def get_client_ip():
    """Client IP, honouring the first X-Forwarded-For hop behind a proxy."""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr


# ==================== Rate Limiting Helpers ====================

def get_rate_limit_key():
    """
    Get a unique key for rate limiting.
    Uses the API key's actor if authenticated, otherwise IP address.
    """
    actor_id = getattr(g, 'actor_id', None)
    if actor_id:
        return f"actor:{actor_id}"
    return f"ip:{get_client_ip()}"


# Storage, defaults and the enabled switch come from app.config (RATELIMIT_*)
limiter = Limiter(key_func=get_rate_limit_key)


# ==================== Security Headers ====================

def get_security_headers():
    """Return security headers to be applied to all responses."""
    return {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'Referrer-Policy': 'no-referrer',
        'Cache-Control': 'no-store',
        'Permissions-Policy': 'geolocation=(), microphone=(), camera=()',
    }


def apply_security_headers(response):
    """Apply security headers to a response object."""
    for header, value in get_security_headers().items():
        response.headers[header] = value
    return response


# ==================== Logging Helpers ====================

def log_security_event(event_type, message, actor_id=None, severity='INFO'):
    """
    Log a security-related event for auditing.

    Event types: 'auth', 'access', 'rate_limit'
    """
    in_request = has_request_context()
    log_data = {
        'event_type': event_type,
        'message': message,
        'actor_id': actor_id or (getattr(g, 'actor_id', None) if in_request else None),
        'ip': get_client_ip() if in_request else None,
        'path': request.path if in_request else None,
        'method': request.method if in_request else None,
        'timestamp': time.time(),
    }

    log_message = f"[SECURITY:{event_type.upper()}] {message} | {log_data}"

    if severity == 'WARNING':
        logger.warning(log_message)
    elif severity == 'ERROR':
        logger.error(log_message)
    else:
        logger.info(log_message)
