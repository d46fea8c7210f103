"""
ServiceRequestContext - Domain facade for the service request aggregate

Loads a request once and hands lifecycle mutations to LifecycleManager.
"""

from typing import List

from roadside import db
from roadside.buisness.dispatching.errors import NotFoundError
from roadside.buisness.dispatching.lifecycle_manager import LifecycleManager
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.data.dispatching.status_history import StatusHistory


class ServiceRequestContext:
    """
    Domain Facade for the service request aggregate.

    Pattern: Domain Facade / Aggregate Controller
    """

    def __init__(self, request_id: int, binder=None):
        """
        Raises:
            NotFoundError: If request_id does not exist
        """
        self.request_id = request_id
        self.request = db.session.get(ServiceRequest, request_id)
        if self.request is None:
            raise NotFoundError('ServiceRequest', request_id)

        self.lifecycle = LifecycleManager(self, binder=binder)

    @classmethod
    def load(cls, request_id: int, binder=None) -> 'ServiceRequestContext':
        return cls(request_id, binder=binder)

    @property
    def released_provider_ids(self) -> List[int]:
        """Providers who declined or handed back this request"""
        rows = db.session.query(StatusHistory.actor_id).filter(
            StatusHistory.request_id == self.request_id,
            StatusHistory.event.in_((RequestStateMachine.DECLINE, RequestStateMachine.REJECT)),
        ).distinct().all()
        return [row[0] for row in rows if row[0] is not None]

    def is_party(self, actor_id: int, actor_role: str) -> bool:
        """Customer, assigned provider, direct-booking target, or admin"""
        if actor_role == 'admin':
            return True
        request = self.request
        return actor_id in (request.customer_id, request.provider_id, request.target_provider_id)
