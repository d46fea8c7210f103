"""
Domain error to HTTP response mapping for the JSON API
"""

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from roadside.buisness.dispatching.errors import (
    DispatchConflictError,
    DispatchConsistencyError,
    DispatchDomainError,
    DispatchPolicyViolation,
    DispatchTransitionError,
    DispatchValidationError,
    GatewayVerificationFailedError,
    NotFoundError,
    PaymentGatewayError,
    UnauthorizedError,
)
from roadside.logger import get_logger
from roadside.utils.logging_sanitizer import sanitize_exception_message, sanitize_headers

logger = get_logger("roadside.routes.errors")

# Most specific first; the first isinstance match wins
STATUS_CODES = (
    (DispatchValidationError, 400),
    (GatewayVerificationFailedError, 400),
    (UnauthorizedError, 403),
    (NotFoundError, 404),
    (DispatchTransitionError, 409),
    (DispatchConflictError, 409),
    (DispatchPolicyViolation, 409),
    (PaymentGatewayError, 502),
    (DispatchConsistencyError, 500),
)


def status_for(error: DispatchDomainError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


def domain_error_response(error: DispatchDomainError):
    status = status_for(error)
    if status >= 500:
        logger.error(f"{request.method} {request.path} failed: "
                     f"{type(error).__name__}: {sanitize_exception_message(error)} "
                     f"headers={sanitize_headers(request.headers)}")
    else:
        logger.debug(f"{request.method} {request.path} -> {status} {type(error).__name__}")

    body = {'success': False, 'error': error.message, 'error_type': type(error).__name__}
    if error.details:
        body['details'] = error.details
    return jsonify(body), status


def http_error_response(error: HTTPException):
    return jsonify({'success': False, 'error': error.description, 'error_type': error.name}), error.code


def register_error_handlers(app):
    app.register_error_handler(DispatchDomainError, domain_error_response)
    app.register_error_handler(HTTPException, http_error_response)
