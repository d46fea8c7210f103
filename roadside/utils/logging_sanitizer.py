"""
Logging Sanitizer Utility

Provides utilities to sanitize sensitive data before logging.
Prevents accidental logging of gateway signatures, secrets, bearer tokens
and payment instrument details.
"""

from typing import Any, Dict, Iterable, Tuple
from werkzeug.datastructures import Headers


# Fields that should never be logged
SENSITIVE_FIELDS = {
    'secret',
    'key_secret',
    'razorpay_key_secret',
    'webhook_secret',
    'token',
    'api_key',
    'apikey',
    'auth_token',
    'access_token',
    'refresh_token',
    'authorization',
    'signature',
    'gateway_signature',
    'razorpay_signature',
    'card',
    'card_number',
    'cvv',
    'vpa',
    'bank_account',
}


def sanitize_dict(data: Dict[str, Any], redact_text: str = '[REDACTED]') -> Dict[str, Any]:
    """
    Sanitize a dictionary by replacing sensitive field values with redaction text.

    Args:
        data: Dictionary to sanitize
        redact_text: Text to use for redacted values (default: '[REDACTED]')

    Returns:
        Sanitized dictionary with sensitive values replaced

    Example:
        >>> data = {'order_id': 'order_1', 'signature': 'abc123'}
        >>> sanitize_dict(data)
        {'order_id': 'order_1', 'signature': '[REDACTED]'}
    """
    if not data:
        return data

    sanitized = {}
    for key, value in data.items():
        if str(key).lower() in SENSITIVE_FIELDS:
            sanitized[key] = redact_text
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, redact_text)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_dict(item, redact_text) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


def sanitize_gateway_payload(payload: Dict[str, Any], redact_text: str = '[REDACTED]') -> Dict[str, Any]:
    """
    Sanitize a payment gateway request/response body for safe logging.

    Gateway entities nest instrument details (card, vpa, bank) under the
    payment entity; those are dropped as a whole.
    """
    return sanitize_dict(payload or {}, redact_text)


def sanitize_headers(headers: Headers, redact_text: str = '[REDACTED]') -> Dict[str, str]:
    """Sanitize HTTP headers (werkzeug Headers or httpx headers) for logging"""
    items: Iterable[Tuple[str, str]] = headers.items()
    return sanitize_dict({k: v for k, v in items}, redact_text)


def sanitize_exception_message(exception: Exception) -> str:
    """
    Sanitize exception messages to ensure they don't contain sensitive data.

    Args:
        exception: Exception to sanitize

    Returns:
        Sanitized exception message
    """
    message = str(exception)

    if any(field in message.lower() for field in SENSITIVE_FIELDS):
        return f"{type(exception).__name__}: [Message contains sensitive data]"

    return message
