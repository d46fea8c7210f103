"""
Request Intent Lock Policy

Controls which request fields a lifecycle transition may write.

Field Categories:
- ALWAYS_LOCKED: Fixed at creation (customer, location, vehicle snapshot, issue)
- QUOTATION: Revisable by the provider while travelling or working
- COMPLETION: Written only by the complete event
"""

from typing import Any, Dict, Set, TYPE_CHECKING

from roadside.buisness.dispatching.errors import RequestIntentLockError, DispatchValidationError
from roadside.buisness.dispatching.state_machine import RequestStateMachine

if TYPE_CHECKING:
    from roadside.data.dispatching.service_request import ServiceRequest


class RequestIntentLockPolicy:
    """
    Enforces request intent immutability across the lifecycle.

    What the customer asked for never changes after creation; the provider
    can only revise the price once on the way, and the final amount is
    written exactly once, by the complete event.
    """

    ALWAYS_LOCKED: Set[str] = {
        'customer_id',
        'issue_type',
        'description',
        'vehicle_type',
        'vehicle_model',
        'vehicle_plate',
        'vehicle_year',
        'latitude',
        'longitude',
        'address',
        'broadcast_radius_km',
    }

    QUOTATION: Set[str] = {'quotation'}

    COMPLETION: Set[str] = {'final_amount'}

    # Payload keys a transition may carry besides field updates
    ANNOTATIONS: Set[str] = {'note', 'reason'}

    @classmethod
    def check(cls, request: 'ServiceRequest', event: str, updates: Dict[str, Any]) -> None:
        """
        Check that a transition payload only writes fields open for this event.

        Args:
            request: The service request being transitioned
            event: Lifecycle event being fired
            updates: Field updates supplied with the event (None values ignored)

        Raises:
            RequestIntentLockError: If a locked field is being modified
            DispatchValidationError: If an unknown field is supplied
        """
        fields = {k for k, v in updates.items() if v is not None} - cls.ANNOTATIONS

        locked = fields & cls.ALWAYS_LOCKED
        if locked:
            raise RequestIntentLockError(
                f"Cannot modify request fields fixed at creation. "
                f"Attempted to modify: {', '.join(sorted(locked))}."
            )

        unknown = fields - cls.QUOTATION - cls.COMPLETION
        if unknown:
            raise DispatchValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        target = RequestStateMachine.target_state(request.status, event)
        if fields & cls.QUOTATION and target not in RequestStateMachine.QUOTATION_REVISABLE:
            raise RequestIntentLockError(
                f"Quotation can only be revised while the provider is en route or working "
                f"(event {event} from {request.status})."
            )

        if fields & cls.COMPLETION and event != RequestStateMachine.COMPLETE:
            raise RequestIntentLockError("final_amount can only be set when completing the request.")

