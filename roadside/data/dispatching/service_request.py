from roadside import db
from roadside.data.core.user_created_base import UserCreatedBase


class ServiceRequest(UserCreatedBase):
    __tablename__ = 'service_requests'

    # Constants
    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned'
    STATUS_ENROUTE = 'enroute'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUSES = (
        STATUS_PENDING, STATUS_ASSIGNED, STATUS_ENROUTE,
        STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED,
    )
    # Statuses in which provider_id must be set
    PROVIDER_BOUND_STATUSES = (STATUS_ASSIGNED, STATUS_ENROUTE, STATUS_IN_PROGRESS, STATUS_COMPLETED)

    ISSUE_TYPES = (
        'flat_tire', 'battery_dead', 'engine_trouble', 'fuel_empty', 'key_locked',
        'accident', 'overheating', 'brake_failure', 'transmission_issue', 'other',
    )
    VEHICLE_TYPES = ('car', 'motorcycle', 'truck', 'bus', 'other')
    PRIORITIES = ('low', 'medium', 'high', 'emergency')

    # Actors
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    target_provider_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # Descriptive
    issue_type = db.Column(db.String(30), nullable=False)
    description = db.Column(db.Text, nullable=False)
    vehicle_type = db.Column(db.String(20), nullable=False)
    vehicle_model = db.Column(db.String(100), nullable=False)
    vehicle_plate = db.Column(db.String(20), nullable=False)
    vehicle_year = db.Column(db.Integer, nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)
    priority = db.Column(db.String(20), nullable=False, default='medium')

    # Geospatial
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    address = db.Column(db.String(200), nullable=True)
    broadcast_radius_km = db.Column(db.Float, nullable=False, default=10.0)

    # Commercial
    quotation = db.Column(db.Float, nullable=True)
    estimated_duration_min = db.Column(db.Integer, nullable=True)
    final_amount = db.Column(db.Float, nullable=True)

    # Lifecycle
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    assigned_at = db.Column(db.DateTime, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    # Optimistic concurrency; the claim compare-and-set bumps it explicitly
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        db.Index('ix_service_requests_customer_status', 'customer_id', 'status'),
        db.Index('ix_service_requests_provider_status', 'provider_id', 'status'),
        db.Index('ix_service_requests_status_created', 'status', 'created_at'),
        db.Index('ix_service_requests_lat_lng', 'latitude', 'longitude'),
    )

    # Relationships
    customer = db.relationship('User', foreign_keys=[customer_id])
    provider = db.relationship('User', foreign_keys=[provider_id])
    history = db.relationship(
        'StatusHistory',
        order_by='StatusHistory.id',
        back_populates='request',
        lazy='select',
    )
    notes = db.relationship('RequestNote', order_by='RequestNote.id', lazy='select')

    # Note: use ServiceRequestContext / DispatchEngine to change status

    @property
    def is_targeted(self):
        return self.target_provider_id is not None

    @property
    def settlement_amount(self):
        return self.final_amount if self.final_amount is not None else self.quotation

    @property
    def actual_duration_min(self):
        if self.started_at and self.completed_at:
            return round((self.completed_at - self.started_at).total_seconds() / 60)
        return None

    @property
    def response_time_min(self):
        if self.created_at and self.assigned_at:
            return round((self.assigned_at - self.created_at).total_seconds() / 60)
        return None

    def is_participant(self, user_id):
        return user_id is not None and user_id in (self.customer_id, self.provider_id)

    def __repr__(self):
        return f'<ServiceRequest {self.id} {self.status}>'
