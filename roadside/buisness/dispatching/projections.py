"""
Role projections of a service request

Each viewer gets its own typed view instead of one record with fields that
are sometimes blank. A provider who has not been assigned sees where
roughly the job is, never who the customer is or the exact address.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from roadside.buisness.dispatching.candidate_finder import haversine_km
from roadside.buisness.dispatching.errors import UnauthorizedError
from roadside.buisness.dispatching.state_machine import RequestStateMachine

# ~1.1 km precision for unassigned providers
APPROXIMATE_DECIMALS = 2


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class PartySummary:
    id: int
    name: str
    phone: Optional[str] = None
    rating: Optional[float] = None


@dataclass(frozen=True)
class RequestCore:
    id: int
    status: str
    issue_type: str
    description: str
    vehicle_type: str
    vehicle_model: str
    priority: str
    quotation: Optional[float]
    estimated_duration_min: Optional[int]
    created_at: Optional[str]


@dataclass(frozen=True)
class CustomerView:
    role: str
    request: RequestCore
    vehicle_plate: str
    latitude: float
    longitude: float
    address: Optional[str]
    final_amount: Optional[float]
    assigned_at: Optional[str]
    completed_at: Optional[str]
    cancelled_at: Optional[str]
    cancellation_reason: Optional[str]
    provider: Optional[PartySummary]
    target_provider_id: Optional[int]
    allowed_events: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class ProviderView:
    role: str
    request: RequestCore
    is_assigned: bool
    latitude: float
    longitude: float
    distance_km: Optional[float]
    # Only populated once this provider holds the request
    customer: Optional[PartySummary] = None
    address: Optional[str] = None
    vehicle_plate: Optional[str] = None
    final_amount: Optional[float] = None
    allowed_events: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class AdminView:
    role: str
    request: RequestCore
    customer_id: int
    provider_id: Optional[int]
    target_provider_id: Optional[int]
    vehicle_plate: str
    latitude: float
    longitude: float
    address: Optional[str]
    broadcast_radius_km: float
    final_amount: Optional[float]
    version: int
    assigned_at: Optional[str]
    started_at: Optional[str]
    completed_at: Optional[str]
    cancelled_at: Optional[str]
    cancellation_reason: Optional[str]
    response_time_min: Optional[int]
    actual_duration_min: Optional[int]
    history: List[dict] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


RequestView = Union[CustomerView, ProviderView, AdminView]


def _core(request) -> RequestCore:
    return RequestCore(
        id=request.id,
        status=request.status,
        issue_type=request.issue_type,
        description=request.description,
        vehicle_type=request.vehicle_type,
        vehicle_model=request.vehicle_model,
        priority=request.priority,
        quotation=request.quotation,
        estimated_duration_min=request.estimated_duration_min,
        created_at=_iso(request.created_at),
    )


def _summary(user, with_rating=False) -> Optional[PartySummary]:
    if user is None:
        return None
    return PartySummary(
        id=user.id,
        name=user.name,
        phone=user.phone,
        rating=user.rating if with_rating else None,
    )


def _allowed_events(request, viewer_id, viewer_role) -> List[str]:
    events = [
        event for event in RequestStateMachine.get_allowed_events(request.status)
        if event != RequestStateMachine.CLAIM
        and RequestStateMachine.actor_allowed(request, event, viewer_id, viewer_role)
    ]
    if viewer_role == 'mechanic' and request.status == RequestStateMachine.PENDING \
            and request.target_provider_id in (None, viewer_id):
        events.append(RequestStateMachine.CLAIM)
    return sorted(events)


def project_request(request, viewer_id: int, viewer_role: str, viewer_position=None) -> RequestView:
    """
    Build the view of a request for one viewer.

    Args:
        request: ServiceRequest
        viewer_id: Actor id
        viewer_role: customer, mechanic or admin
        viewer_position: Optional (lat, lng) of a provider, for distance

    Raises:
        UnauthorizedError: If the viewer may not see the request at all
    """
    if viewer_role == 'admin':
        return AdminView(
            role=viewer_role,
            request=_core(request),
            customer_id=request.customer_id,
            provider_id=request.provider_id,
            target_provider_id=request.target_provider_id,
            vehicle_plate=request.vehicle_plate,
            latitude=request.latitude,
            longitude=request.longitude,
            address=request.address,
            broadcast_radius_km=request.broadcast_radius_km,
            final_amount=request.final_amount,
            version=request.version,
            assigned_at=_iso(request.assigned_at),
            started_at=_iso(request.started_at),
            completed_at=_iso(request.completed_at),
            cancelled_at=_iso(request.cancelled_at),
            cancellation_reason=request.cancellation_reason,
            response_time_min=request.response_time_min,
            actual_duration_min=request.actual_duration_min,
            history=[h.to_dict() for h in request.history],
        )

    if viewer_role == 'customer':
        if request.customer_id != viewer_id:
            raise UnauthorizedError("Not your service request", actor_id=viewer_id)
        return CustomerView(
            role=viewer_role,
            request=_core(request),
            vehicle_plate=request.vehicle_plate,
            latitude=request.latitude,
            longitude=request.longitude,
            address=request.address,
            final_amount=request.final_amount,
            assigned_at=_iso(request.assigned_at),
            completed_at=_iso(request.completed_at),
            cancelled_at=_iso(request.cancelled_at),
            cancellation_reason=request.cancellation_reason,
            provider=_summary(request.provider, with_rating=True),
            target_provider_id=request.target_provider_id,
            allowed_events=_allowed_events(request, viewer_id, viewer_role),
        )

    if viewer_role == 'mechanic':
        assigned = request.provider_id == viewer_id
        open_to_viewer = (
            request.status == RequestStateMachine.PENDING
            and request.target_provider_id in (None, viewer_id)
        )
        if not assigned and not open_to_viewer:
            raise UnauthorizedError("Service request is not available to this provider", actor_id=viewer_id)

        distance = None
        if viewer_position is not None and None not in viewer_position:
            distance = round(haversine_km(viewer_position[0], viewer_position[1],
                                          request.latitude, request.longitude), 2)

        if assigned:
            return ProviderView(
                role=viewer_role,
                request=_core(request),
                is_assigned=True,
                latitude=request.latitude,
                longitude=request.longitude,
                distance_km=distance,
                customer=_summary(request.customer),
                address=request.address,
                vehicle_plate=request.vehicle_plate,
                final_amount=request.final_amount,
                allowed_events=_allowed_events(request, viewer_id, viewer_role),
            )
        return ProviderView(
            role=viewer_role,
            request=_core(request),
            is_assigned=False,
            latitude=round(request.latitude, APPROXIMATE_DECIMALS),
            longitude=round(request.longitude, APPROXIMATE_DECIMALS),
            distance_km=distance,
            allowed_events=_allowed_events(request, viewer_id, viewer_role),
        )

    raise UnauthorizedError(f"Unknown role: {viewer_role}", actor_id=viewer_id)
