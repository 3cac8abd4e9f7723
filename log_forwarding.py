"""
OpenTelemetry Log Forwarding Module

Forwards application logs to an OTLP-compatible backend (Grafana Loki,
Datadog, New Relic, etc.) when enabled in SystemConfig.

- Non-blocking export via batch processor
- Multiple authentication methods (API key, Bearer, custom header, none)
- Stdout logging is unaffected whether or not forwarding is enabled
"""

import logging
import os
from threading import Lock

from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION

logger = logging.getLogger(__name__)

_state = {
    'logger_provider': None,
    'handler': None,
}
_state_lock = Lock()

# Log level mapping
LOG_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
}

# Valid auth types
VALID_AUTH_TYPES = ['api_key', 'bearer', 'header', 'none']


def get_log_forwarding_config():
    """Read log forwarding settings from SystemConfig (requires app context)."""
    from models import SystemConfig

    return {
        'enabled': SystemConfig.get_bool(
            SystemConfig.KEY_LOG_FORWARDING_ENABLED,
            SystemConfig.DEFAULT_LOG_FORWARDING_ENABLED
        ),
        'endpoint_url': SystemConfig.get(SystemConfig.KEY_LOG_FORWARDING_ENDPOINT_URL),
        'auth_type': SystemConfig.get(
            SystemConfig.KEY_LOG_FORWARDING_AUTH_TYPE,
            SystemConfig.DEFAULT_LOG_FORWARDING_AUTH_TYPE
        ),
        'auth_header_name': SystemConfig.get(
            SystemConfig.KEY_LOG_FORWARDING_AUTH_HEADER_NAME,
            'Authorization'
        ),
        'log_level_threshold': SystemConfig.get(
            SystemConfig.KEY_LOG_FORWARDING_LOG_LEVEL,
            SystemConfig.DEFAULT_LOG_FORWARDING_LOG_LEVEL
        ),
        'service_name': SystemConfig.get(
            SystemConfig.KEY_LOG_FORWARDING_SERVICE_NAME,
            SystemConfig.DEFAULT_LOG_FORWARDING_SERVICE_NAME
        ),
        'environment': SystemConfig.get(
            SystemConfig.KEY_LOG_FORWARDING_ENVIRONMENT,
            SystemConfig.DEFAULT_LOG_FORWARDING_ENVIRONMENT
        ),
    }


def _get_otlp_api_key():
    """
    Get the OTLP API key.
    Priority: Key Vault > SystemConfig > Environment variable
    """
    from keyvault_client import keyvault_client
    from models import SystemConfig

    api_key = keyvault_client.get_log_forwarding_api_key()
    if api_key:
        return api_key

    api_key = SystemConfig.get(SystemConfig.KEY_LOG_FORWARDING_API_KEY)
    if api_key:
        return api_key

    return os.environ.get('LOG_FORWARDING_API_KEY')


def build_auth_headers(config, api_key):
    """
    Build authentication headers based on auth type.

    Auth types:
    - api_key: Authorization: Api-Key <key>
    - bearer: Authorization: Bearer <key>
    - header: <custom_header_name>: <key>
    - none: No auth headers
    """
    auth_type = config.get('auth_type') or 'api_key'
    headers = {}

    if auth_type == 'none' or not api_key:
        pass
    elif auth_type == 'api_key':
        headers['Authorization'] = f'Api-Key {api_key}'
    elif auth_type == 'bearer':
        headers['Authorization'] = f'Bearer {api_key}'
    elif auth_type == 'header':
        headers[config.get('auth_header_name') or 'Authorization'] = api_key

    return headers


def setup_log_forwarding(app):
    """
    Attach an OTLP handler to the root logger if forwarding is enabled.
    Called during app initialization, inside an app context.

    Returns:
        True if a handler was attached
    """
    config = get_log_forwarding_config()

    if not config['enabled']:
        logger.debug("Log forwarding is disabled, skipping setup")
        return False

    if not config['endpoint_url']:
        logger.warning("Log forwarding enabled but no endpoint URL configured")
        return False

    if config['auth_type'] not in VALID_AUTH_TYPES:
        logger.warning(f"Unknown log forwarding auth type '{config['auth_type']}', sending no credentials")

    from version import __version__

    resource = Resource.create({
        SERVICE_NAME: config['service_name'],
        SERVICE_VERSION: __version__,
        'deployment.environment': config['environment'],
    })
    exporter = OTLPLogExporter(
        endpoint=config['endpoint_url'],
        headers=build_auth_headers(config, _get_otlp_api_key()),
    )

    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    log_level = LOG_LEVELS.get(config['log_level_threshold'], logging.INFO)
    handler = LoggingHandler(level=log_level, logger_provider=provider)

    shutdown()
    logging.getLogger().addHandler(handler)
    with _state_lock:
        _state['logger_provider'] = provider
        _state['handler'] = handler

    logger.info(f"Log forwarding initialized: {config['endpoint_url']} (level: {config['log_level_threshold']})")
    return True


def shutdown():
    """
    Gracefully shutdown the log forwarding provider.
    Flushes any pending logs before shutdown.
    """
    with _state_lock:
        provider = _state.get('logger_provider')
        handler = _state.get('handler')
        if handler:
            logging.getLogger().removeHandler(handler)
        if provider:
            try:
                provider.force_flush(timeout_millis=5000)
                provider.shutdown()
                logger.info("Log forwarding shut down gracefully")
            except Exception as e:
                logger.error(f"Error shutting down log forwarding: {e}")

        _state['logger_provider'] = None
        _state['handler'] = None
