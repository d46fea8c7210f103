"""
State machines for service request and payment lifecycles

Encodes valid transitions and the actor guards on each edge.
Keeps "what is allowed" separate from "how persistence occurs".
"""

from typing import Dict, Optional, Set, Tuple
from roadside.buisness.dispatching.errors import InvalidTransitionError


class RequestStateMachine:
    """
    State machine for ServiceRequest.status.

    Transitions are keyed by (from_status, event). Each event also names who
    may fire it:

    - claimant: any mechanic (only through the claim coordinator)
    - target: the provider a direct booking was addressed to
    - provider: the assigned provider
    - customer_or_admin: the request's customer, or any admin
    """

    # Statuses
    PENDING = 'pending'
    ASSIGNED = 'assigned'
    ENROUTE = 'enroute'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    STATUSES = (PENDING, ASSIGNED, ENROUTE, IN_PROGRESS, COMPLETED, CANCELLED)
    TERMINAL_STATES = {COMPLETED, CANCELLED}

    # Events
    CLAIM = 'claim'
    DECLINE = 'decline'
    REJECT = 'reject'
    START_TRAVEL = 'start_travel'
    START_WORK = 'start_work'
    COMPLETE = 'complete'
    CANCEL = 'cancel'

    EVENTS = (CLAIM, DECLINE, REJECT, START_TRAVEL, START_WORK, COMPLETE, CANCEL)

    # Actor guards
    CLAIMANT = 'claimant'
    TARGET = 'target'
    PROVIDER = 'provider'
    CUSTOMER_OR_ADMIN = 'customer_or_admin'

    TRANSITIONS: Dict[Tuple[str, str], str] = {
        (PENDING, CLAIM): ASSIGNED,
        (PENDING, DECLINE): PENDING,
        (ASSIGNED, REJECT): PENDING,
        (ASSIGNED, START_TRAVEL): ENROUTE,
        (ENROUTE, START_WORK): IN_PROGRESS,
        (IN_PROGRESS, COMPLETE): COMPLETED,
        (PENDING, CANCEL): CANCELLED,
        (ASSIGNED, CANCEL): CANCELLED,
        (ENROUTE, CANCEL): CANCELLED,
    }

    ACTOR_GUARDS: Dict[str, str] = {
        CLAIM: CLAIMANT,
        DECLINE: TARGET,
        REJECT: PROVIDER,
        START_TRAVEL: PROVIDER,
        START_WORK: PROVIDER,
        COMPLETE: PROVIDER,
        CANCEL: CUSTOMER_OR_ADMIN,
    }

    # Statuses in which the provider may still revise the quotation
    QUOTATION_REVISABLE = {ENROUTE, IN_PROGRESS}

    @classmethod
    def can_transition(cls, from_status: str, event: str) -> bool:
        """Check whether (from_status, event) is an edge of the lifecycle"""
        if from_status in cls.TERMINAL_STATES:
            return False
        return (from_status, event) in cls.TRANSITIONS

    @classmethod
    def target_state(cls, from_status: str, event: str) -> Optional[str]:
        return cls.TRANSITIONS.get((from_status, event))

    @classmethod
    def get_allowed_events(cls, from_status: str) -> Set[str]:
        """Get set of events that may fire from the current status"""
        if from_status in cls.TERMINAL_STATES:
            return set()
        return {event for (status, event) in cls.TRANSITIONS if status == from_status}

    @classmethod
    def actor_allowed(cls, request, event: str, actor_id: int, actor_role: str) -> bool:
        """
        Check the actor guard for an event against a request.

        Args:
            request: ServiceRequest being transitioned
            event: Lifecycle event name
            actor_id: User firing the event
            actor_role: Role reported by the identity service

        Returns:
            bool: True if this actor may fire the event on this request
        """
        guard = cls.ACTOR_GUARDS.get(event)
        if guard == cls.CLAIMANT:
            return actor_role == 'mechanic'
        if guard == cls.TARGET:
            return actor_role == 'mechanic' and request.target_provider_id == actor_id
        if guard == cls.PROVIDER:
            return actor_role == 'mechanic' and request.provider_id == actor_id
        if guard == cls.CUSTOMER_OR_ADMIN:
            return actor_role == 'admin' or (actor_role == 'customer' and request.customer_id == actor_id)
        return False

    @classmethod
    def validate(cls, request, event: str, actor_id: int, actor_role: str) -> str:
        """
        Validate a transition and return the status it leads to.

        Raises:
            InvalidTransitionError: If the edge does not exist or the actor may not fire it
        """
        from_status = request.status
        to_status = cls.target_state(from_status, event)

        if event not in cls.EVENTS or not cls.can_transition(from_status, event):
            raise InvalidTransitionError(from_status, event, to_status, actor_id)

        if not cls.actor_allowed(request, event, actor_id, actor_role):
            raise InvalidTransitionError(
                from_status, event, to_status, actor_id,
                reason=f"actor not permitted ({cls.ACTOR_GUARDS[event]} only)",
            )

        return to_status


class PaymentStateMachine:
    """
    State machine for Payment.status.

    Payments only move forward; failed and refunded are terminal.
    """

    PENDING = 'pending'
    SUCCESS = 'success'
    FAILED = 'failed'
    REFUNDED = 'refunded'

    TERMINAL_STATES = {FAILED, REFUNDED}

    TRANSITIONS: Dict[str, Set[str]] = {
        PENDING: {SUCCESS, FAILED},
        SUCCESS: {REFUNDED},
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        if from_status in cls.TERMINAL_STATES:
            return False
        return to_status in cls.TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """
        Raises:
            InvalidTransitionError: If the payment cannot move to to_status
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, f"payment:{to_status}", to_status)
