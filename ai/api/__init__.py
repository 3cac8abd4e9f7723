"""
Pseudonymization API Module.

Provides REST API endpoints used around calls to the external AI service.

Components:
- routes.py: Flask Blueprint with REST API endpoints
"""

from ai.api.routes import pseudonymization_api

__all__ = [
    'pseudonymization_api',
]
