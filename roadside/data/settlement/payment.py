from roadside import db
from datetime import datetime
import secrets
import string
from roadside.data.core.user_created_base import UserCreatedBase

_RECEIPT_ALPHABET = string.ascii_uppercase + string.digits


def generate_receipt(now=None):
    """Receipt number in the RG<yyyymmdd><6 upper alnum> format"""
    now = now or datetime.utcnow()
    suffix = ''.join(secrets.choice(_RECEIPT_ALPHABET) for _ in range(6))
    return f"RG{now.strftime('%Y%m%d')}{suffix}"


class Payment(UserCreatedBase):
    __tablename__ = 'payments'

    STATUS_PENDING = 'pending'
    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'
    STATUS_REFUNDED = 'refunded'
    STATUSES = (STATUS_PENDING, STATUS_SUCCESS, STATUS_FAILED, STATUS_REFUNDED)
    CURRENCIES = ('INR', 'USD')

    MIN_AMOUNT = 1
    MAX_AMOUNT = 100000

    PRIVATE_FIELDS = ('gateway_signature',)

    request_id = db.Column(db.Integer, db.ForeignKey('service_requests.id'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    provider_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    amount = db.Column(db.Float, nullable=False)
    processing_fee = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(3), nullable=False, default='INR')
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)

    # Gateway references
    gateway_order_id = db.Column(db.String(100), unique=True, nullable=True)
    gateway_payment_id = db.Column(db.String(100), unique=True, nullable=True)
    gateway_signature = db.Column(db.String(200), nullable=True)
    receipt = db.Column(db.String(20), unique=True, nullable=False, default=generate_receipt)
    failure_reason = db.Column(db.String(500), nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    # Refund
    refund_id = db.Column(db.String(100), nullable=True)
    refund_amount = db.Column(db.Float, nullable=True)
    refund_reason = db.Column(db.String(500), nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        # Second line of defence behind the conditional promote in SettlementCoordinator
        db.Index(
            'uq_payments_one_success_per_request',
            'request_id',
            unique=True,
            sqlite_where=db.text("status = 'success'"),
            postgresql_where=db.text("status = 'success'"),
        ),
        db.Index('ix_payments_customer_status', 'customer_id', 'status'),
        db.Index('ix_payments_provider_status', 'provider_id', 'status'),
    )

    request = db.relationship('ServiceRequest')

    @property
    def total_amount(self):
        return (self.amount or 0) + (self.processing_fee or 0)

    @property
    def net_amount(self):
        return (self.amount or 0) - (self.processing_fee or 0)

    def to_dict(self, include_audit_fields=True):
        result = super().to_dict(include_audit_fields)
        result['total_amount'] = self.total_amount
        result['net_amount'] = self.net_amount
        return result

    def __repr__(self):
        return f'<Payment {self.id} request={self.request_id} {self.status}>'
