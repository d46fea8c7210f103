"""
Domain exceptions for dispatching business logic

These exceptions represent business rule violations and domain-specific errors.
They should be raised by the business layer when invariants are violated and
are mapped to HTTP responses in roadside.presentation.routes.errors.

Every exception carries a `details` dict with the structured fields the
presentation layer renders next to the message.
"""


class DispatchDomainError(Exception):
    """Base exception for all dispatching domain errors"""

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}


class NotFoundError(DispatchDomainError):
    """Raised when a request, conversation or payment does not exist"""

    def __init__(self, entity, entity_id):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class UnauthorizedError(DispatchDomainError):
    """Raised when an actor is unknown, inactive or not a party to the resource"""

    def __init__(self, message="Actor is not authorized for this operation", actor_id=None):
        super().__init__(message, actor_id=actor_id)
        self.actor_id = actor_id


class DispatchValidationError(DispatchDomainError):
    """Raised when caller-supplied data is malformed or out of range"""

    def __init__(self, message, field=None):
        super().__init__(message, field=field)
        self.field = field


class DispatchTransitionError(DispatchDomainError):
    """Raised when a state transition is invalid or not allowed"""
    pass


class InvalidTransitionError(DispatchTransitionError):
    """Raised when the (state, event, actor) triple is not in the lifecycle table"""

    def __init__(self, current_state, requested_event, requested_state=None, actor_id=None, reason=None):
        target = requested_state or '?'
        message = f"Invalid transition: {current_state} --{requested_event}--> {target}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            current_state=current_state,
            requested_event=requested_event,
            requested_state=requested_state,
            actor_id=actor_id,
            reason=reason,
        )
        self.current_state = current_state
        self.requested_event = requested_event
        self.requested_state = requested_state
        self.actor_id = actor_id


class DispatchPolicyViolation(DispatchDomainError):
    """Raised when a business policy/rule is violated"""
    pass


class RequestIntentLockError(DispatchPolicyViolation):
    """Raised when attempting to modify request fields locked in the current state"""
    pass


class ConversationClosedError(DispatchPolicyViolation):
    """Raised when posting to a deactivated conversation"""
    pass


class ReviewNotAllowedError(DispatchPolicyViolation):
    """Raised when a review is attempted on a request that cannot be reviewed"""
    pass


class DispatchConflictError(DispatchDomainError):
    """Raised when resource conflicts occur (e.g., two writers on one row)"""
    pass


class AlreadyClaimedError(DispatchConflictError):
    """Raised when another provider won the claim"""

    def __init__(self, request_id, provider_id=None):
        super().__init__(f"Service request {request_id} has already been claimed", request_id=request_id)
        self.request_id = request_id
        # Not rendered; only the winner and the customer may learn who claimed it
        self.provider_id = provider_id


class ConcurrentModificationError(DispatchConflictError):
    """Raised when an optimistic version check fails on write"""
    pass


class DuplicateSettlementError(DispatchConflictError):
    """Raised when a request already has a successful payment"""

    def __init__(self, request_id, original_payment=None):
        original_id = original_payment.id if original_payment is not None else None
        super().__init__(
            f"Service request {request_id} has already been settled",
            request_id=request_id,
            original_payment_id=original_id,
        )
        self.request_id = request_id
        self.original_payment = original_payment


class DuplicateReviewError(DispatchConflictError):
    """Raised when a request already has a review"""
    pass


class DispatchConsistencyError(DispatchDomainError):
    """Raised when data consistency invariants are violated"""
    pass


class GatewayVerificationFailedError(DispatchDomainError):
    """Raised when a gateway callback fails order or signature verification"""

    def __init__(self, payment_id, reason):
        super().__init__(f"Payment {payment_id} verification failed: {reason}", payment_id=payment_id, reason=reason)
        self.payment_id = payment_id
        self.reason = reason


class PaymentGatewayError(DispatchDomainError):
    """Raised when the payment gateway cannot be reached or rejects a call"""
    pass
