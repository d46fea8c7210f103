"""
Service Request Query Service
Presentation service for service request list retrieval and filtering.
"""

from typing import Dict, List, Optional, Tuple
from datetime import datetime
from flask import Request
from flask_sqlalchemy.pagination import Pagination
from roadside import db
from roadside.buisness.dispatching.candidate_finder import bounding_box, haversine_km
from roadside.buisness.dispatching.errors import DispatchValidationError
from roadside.buisness.dispatching.projections import project_request
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.data.dispatching.status_history import StatusHistory
from roadside.data.settlement.payment import Payment


class ServiceRequestQueryService:
    """
    Service for service request presentation data.

    Provides methods for:
    - Building filtered customer request queries
    - Paginating customer request lists
    - Listing a provider's open and assigned tasks
    - Payment history per request
    """

    SORTABLE = {
        'created_at': ServiceRequest.created_at,
        'updated_at': ServiceRequest.updated_at,
        'status': ServiceRequest.status,
        'priority': ServiceRequest.priority,
    }
    MAX_TASK_RADIUS_KM = 50.0

    @staticmethod
    def build_customer_query(
        customer_id: int,
        statuses: Optional[List[str]] = None,
        issue_type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        sort_by: str = 'created_at',
        sort_order: str = 'desc'
    ):
        """
        Build a filtered query over one customer's requests.

        Args:
            customer_id: Owner of the requests
            statuses: Filter by any of these statuses
            issue_type: Filter by issue type
            date_from: created_at >= this date
            date_to: created_at <= this date
            sort_by: created_at, updated_at, status or priority
            sort_order: asc or desc

        Returns:
            SQLAlchemy query object
        """
        query = ServiceRequest.query.filter(ServiceRequest.customer_id == customer_id)

        if statuses:
            query = query.filter(ServiceRequest.status.in_(statuses))

        if issue_type:
            query = query.filter(ServiceRequest.issue_type == issue_type)

        if date_from:
            query = query.filter(ServiceRequest.created_at >= date_from)

        if date_to:
            query = query.filter(ServiceRequest.created_at <= date_to)

        column = ServiceRequestQueryService.SORTABLE.get(sort_by, ServiceRequest.created_at)
        query = query.order_by(column.asc() if sort_order == 'asc' else column.desc(), ServiceRequest.id.desc())

        return query

    @staticmethod
    def get_customer_list(
        request: Request,
        customer_id: int,
        page: int = 1,
        per_page: int = 10
    ) -> Tuple[Pagination, Dict]:
        """
        Get a customer's paginated request list with filters from the query string.

        Returns:
            Tuple of (pagination object, applied filters dict)
        """
        statuses = request.args.getlist('status') or None
        issue_type = request.args.get('issue_type')
        date_from = ServiceRequestQueryService._parse_date(request.args.get('start_date'), 'start_date')
        date_to = ServiceRequestQueryService._parse_date(request.args.get('end_date'), 'end_date')
        sort_by = request.args.get('sort_by', 'created_at')
        sort_order = request.args.get('sort_order', 'desc')

        query = ServiceRequestQueryService.build_customer_query(
            customer_id,
            statuses=statuses,
            issue_type=issue_type,
            date_from=date_from,
            date_to=date_to,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        requests_page = query.paginate(page=page, per_page=per_page, error_out=False)

        filters = {
            'status': statuses,
            'issue_type': issue_type,
            'start_date': date_from.isoformat() if date_from else None,
            'end_date': date_to.isoformat() if date_to else None,
            'sort_by': sort_by,
            'sort_order': sort_order,
        }
        return requests_page, filters

    @staticmethod
    def get_provider_tasks(provider, status: Optional[str] = None, limit: int = 50) -> List[dict]:
        """
        A provider's task board: its own requests plus open pending requests
        it could claim, nearest first.

        Open requests count when the provider is within the request's own
        broadcast radius and has not already declined or handed it back.
        """
        position = (provider.latitude, provider.longitude) if provider.has_position else None
        tasks = []

        if status != RequestStateMachine.PENDING:
            own = ServiceRequest.query.filter(ServiceRequest.provider_id == provider.id)
            if status:
                own = own.filter(ServiceRequest.status == status)
            for req in own.order_by(ServiceRequest.created_at.desc()).limit(limit).all():
                tasks.append(project_request(req, provider.id, provider.role, position).to_dict())

        if status in (None, RequestStateMachine.PENDING):
            for req in ServiceRequestQueryService._open_requests_for(provider, position, limit):
                tasks.append(project_request(req, provider.id, provider.role, position).to_dict())

        return tasks

    @staticmethod
    def _open_requests_for(provider, position, limit):
        released = db.session.query(StatusHistory.request_id).filter(
            StatusHistory.actor_id == provider.id,
            StatusHistory.event.in_((RequestStateMachine.DECLINE, RequestStateMachine.REJECT)),
        )

        query = ServiceRequest.query.filter(
            ServiceRequest.status == ServiceRequest.STATUS_PENDING,
            ServiceRequest.provider_id.is_(None),
            db.or_(
                ServiceRequest.target_provider_id.is_(None),
                ServiceRequest.target_provider_id == provider.id,
            ),
            ServiceRequest.id.notin_(released),
        )

        if position is None:
            # Without a position only direct bookings are visible
            return query.filter(ServiceRequest.target_provider_id == provider.id) \
                .order_by(ServiceRequest.created_at.desc()).limit(limit).all()

        min_lat, max_lat, min_lng, max_lng = bounding_box(position[0], position[1],
                                                          ServiceRequestQueryService.MAX_TASK_RADIUS_KM)
        query = query.filter(
            db.or_(
                ServiceRequest.target_provider_id == provider.id,
                db.and_(
                    ServiceRequest.latitude.between(min_lat, max_lat),
                    ServiceRequest.longitude.between(min_lng, max_lng),
                ),
            )
        )

        nearby = []
        for req in query.all():
            distance = haversine_km(position[0], position[1], req.latitude, req.longitude)
            if req.target_provider_id == provider.id or distance <= req.broadcast_radius_km:
                nearby.append((distance, req))

        nearby.sort(key=lambda pair: (pair[0], pair[1].id))
        return [req for _, req in nearby[:limit]]

    @staticmethod
    def get_payment_history(request_id: int) -> List[Payment]:
        return Payment.query.filter_by(request_id=request_id).order_by(Payment.id.asc()).all()

    @staticmethod
    def _parse_date(value: Optional[str], field: str) -> Optional[datetime]:
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            raise DispatchValidationError(f"{field} must be an ISO date", field=field)
