"""
Structured logging with PHI protection.

Student health data (names, allergy reactions, dosage instructions, clinical
notes) must never reach log sinks. Every logger obtained through
get_sanitized_logger() carries the correlation filter, and the JSON
formatter redacts SENSITIVE_FIELDS wherever they appear in `extra`.
"""
import logging
import json
from datetime import datetime, timezone
from .correlation import get_request_id, get_user_id


# Fields that should NEVER be logged (PHI/PII)
SENSITIVE_FIELDS = {
    'password',
    'token',
    'secret',
    'display_name',
    'patient_name',
    'full_name',
    'actor_name',
    'email',
    'symptoms',
    'clinical_notes',
    'notes',
    'reaction_note',
    'dosage_instructions',
    'diagnosed_by',
    'referral_destination',
    'user_agent',
    'ip_address',
}

_STANDARD_RECORD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
}


class CorrelationFilter(logging.Filter):
    """
    Logging filter that injects correlation context into log records.
    """

    def filter(self, record):
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        return True


class SanitizedJSONFormatter(logging.Formatter):
    """
    JSON formatter that sanitizes sensitive fields.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': getattr(record, 'request_id', '-'),
            'user_id': getattr(record, 'user_id', '-'),
        }

        for key, value in record.__dict__.items():
            if key in log_data or key.startswith('_') or key in _STANDARD_RECORD_ATTRS:
                continue
            if key.lower() in SENSITIVE_FIELDS:
                log_data[key] = '[REDACTED]'
            else:
                log_data[key] = self._sanitize_value(value)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)

    def _sanitize_value(self, value):
        if isinstance(value, dict):
            return {
                k: '[REDACTED]' if str(k).lower() in SENSITIVE_FIELDS else self._sanitize_value(v)
                for k, v in value.items()
            }
        elif isinstance(value, (list, tuple)):
            return [self._sanitize_value(v) for v in value]
        else:
            return value


def get_sanitized_logger(name):
    """
    Get a logger with correlation filter applied.

    Usage:
        logger = get_sanitized_logger(__name__)
        logger.info('Lot received', extra={'event': 'lot_received', 'lot_id': str(lot.id)})
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationFilter) for f in logger.filters):
        logger.addFilter(CorrelationFilter())

    return logger


def sanitize_dict(data):
    """
    Return a copy of data with SENSITIVE_FIELDS redacted at any depth.

    Non-dict input is returned unchanged.
    """
    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        if str(key).lower() in SENSITIVE_FIELDS:
            sanitized[key] = '[REDACTED]'
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value)
        elif isinstance(value, (list, tuple)):
            sanitized[key] = [
                sanitize_dict(v) if isinstance(v, dict) else v
                for v in value
            ]
        else:
            sanitized[key] = value

    return sanitized
