"""
Settlement Coordinator

Creates payment intents for completed requests, verifies gateway callbacks
and guarantees that a request is settled successfully at most once.

The at-most-once guarantee sits at the storage boundary: promotion to
success is one conditional UPDATE that also checks no other success exists
for the request, backed by the partial unique index on payments.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from roadside import db
from roadside.buisness.dispatching import events
from roadside.buisness.dispatching.errors import (
    ConcurrentModificationError,
    DispatchValidationError,
    DuplicateSettlementError,
    GatewayVerificationFailedError,
    InvalidTransitionError,
    NotFoundError,
    PaymentGatewayError,
    UnauthorizedError,
)
from roadside.buisness.dispatching.narrator import DispatchNarrator
from roadside.buisness.dispatching.state_machine import PaymentStateMachine, RequestStateMachine
from roadside.buisness.settlement.fees import FeeSchedule
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.data.settlement.payment import Payment
from roadside.logger import get_logger

if TYPE_CHECKING:
    from roadside.buisness.dispatching.events import DispatchEventBus
    from roadside.buisness.dispatching.identity import IdentityService
    from roadside.buisness.settlement.gateway import PaymentGatewayClient

logger = get_logger("roadside.domain.settlement.coordinator")

SETTLE_EVENT = 'settle'


@dataclass(frozen=True)
class SettlementOrder:
    """What the customer's checkout needs to pay one payment intent"""
    payment_id: int
    request_id: int
    order_id: str
    amount: float
    processing_fee: float
    total_amount: float
    currency: str
    receipt: str
    key_id: str

    def to_dict(self):
        return asdict(self)


class SettlementCoordinator:

    def __init__(self, gateway: 'PaymentGatewayClient', identity: 'IdentityService',
                 fees: Optional[FeeSchedule] = None, currency: str = 'INR', key_id: str = '',
                 event_bus: Optional['DispatchEventBus'] = None):
        self.gateway = gateway
        self.identity = identity
        self.fees = fees or FeeSchedule()
        self.currency = currency
        self.key_id = key_id
        self.event_bus = event_bus

    # ========== Initiate ==========

    def initiate(self, request_id: int, actor_id: Optional[int] = None) -> SettlementOrder:
        """
        Create a pending payment for a completed request and open a gateway order.

        Args:
            request_id: Completed service request
            actor_id: Customer or admin asking for checkout; None when the
                engine settles automatically after completion

        Raises:
            NotFoundError, UnauthorizedError
            InvalidTransitionError: Request is not completed
            DuplicateSettlementError: Request already has a successful payment
            PaymentGatewayError: Gateway refused or was unreachable (payment marked failed)
        """
        request = db.session.get(ServiceRequest, request_id)
        if request is None:
            raise NotFoundError('ServiceRequest', request_id)

        if actor_id is not None:
            actor = self.identity.get_actor(actor_id)
            if not actor.is_admin and actor.id != request.customer_id:
                raise UnauthorizedError("Only the customer can pay for this request", actor_id=actor_id)

        if request.status != RequestStateMachine.COMPLETED:
            raise InvalidTransitionError(
                request.status, SETTLE_EVENT, actor_id=actor_id,
                reason="payment can only be made for completed requests",
            )

        existing = self._successful_payment(request_id)
        if existing is not None:
            logger.warning(f"Settlement requested for already settled request {request_id} (payment {existing.id})")
            raise DuplicateSettlementError(request_id, existing)

        amount = request.settlement_amount
        if amount is None or not Payment.MIN_AMOUNT <= amount <= Payment.MAX_AMOUNT:
            raise DispatchValidationError(
                f"Settlement amount must be between {Payment.MIN_AMOUNT} and {Payment.MAX_AMOUNT}",
                field='amount',
            )

        payment = Payment(
            request_id=request.id,
            customer_id=request.customer_id,
            provider_id=request.provider_id,
            amount=amount,
            processing_fee=self.fees.fee_for(amount),
            currency=self.currency,
            status=Payment.STATUS_PENDING,
        )
        db.session.add(payment)
        db.session.commit()

        try:
            order = self.gateway.create_order(
                payment.total_amount,
                payment.currency,
                payment.receipt,
                notes={
                    'request_id': str(request.id),
                    'customer_id': str(request.customer_id),
                    'provider_id': str(request.provider_id),
                    'issue_type': request.issue_type,
                },
            )
        except PaymentGatewayError as e:
            payment.status = Payment.STATUS_FAILED
            payment.failure_reason = str(e)[:500]
            db.session.commit()
            logger.error(f"Order creation failed for payment {payment.id} (request {request_id}): {e}")
            self._emit(events.PAYMENT_FAILED, payment)
            raise

        payment.gateway_order_id = order.order_id
        db.session.commit()
        logger.info(f"Payment order created: {DispatchNarrator.payment_details(payment)}")

        return SettlementOrder(
            payment_id=payment.id,
            request_id=request.id,
            order_id=order.order_id,
            amount=payment.amount,
            processing_fee=payment.processing_fee,
            total_amount=payment.total_amount,
            currency=payment.currency,
            receipt=payment.receipt,
            key_id=self.key_id,
        )

    # ========== Verify ==========

    def verify(self, payment_id: int, callback: dict) -> Payment:
        """
        Verify a gateway checkout callback and promote the payment to success.

        Args:
            payment_id: Payment the checkout was opened for
            callback: order_id, payment_id and signature from the gateway
                (razorpay_* key names are accepted as well)

        Raises:
            NotFoundError
            GatewayVerificationFailedError: Order mismatch or bad signature (payment marked failed)
            DuplicateSettlementError: The request is already settled
            InvalidTransitionError: Payment already failed
        """
        payment = db.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError('Payment', payment_id)

        callback = callback or {}
        order_id = callback.get('order_id') or callback.get('razorpay_order_id')
        gateway_payment_id = callback.get('payment_id') or callback.get('razorpay_payment_id')
        signature = callback.get('signature') or callback.get('razorpay_signature')

        if payment.status in (Payment.STATUS_SUCCESS, Payment.STATUS_REFUNDED):
            original = self._successful_payment(payment.request_id) or payment
            logger.warning(f"Replayed verification for settled payment {payment.id} (request {payment.request_id})")
            raise DuplicateSettlementError(payment.request_id, original)

        PaymentStateMachine.validate_transition(payment.status, Payment.STATUS_SUCCESS)

        if not order_id or order_id != payment.gateway_order_id:
            self._fail_verification(payment, "order id does not match")
        if not self.gateway.verify_signature(order_id, gateway_payment_id, signature):
            self._fail_verification(payment, "invalid signature")

        now = datetime.utcnow()
        other = aliased(Payment)
        already_settled = (
            select(other.id)
            .where(other.request_id == payment.request_id, other.status == Payment.STATUS_SUCCESS)
            .exists()
        )
        stmt = (
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.status == Payment.STATUS_PENDING,
                ~already_settled,
            )
            .values(
                status=Payment.STATUS_SUCCESS,
                gateway_payment_id=gateway_payment_id,
                gateway_signature=signature,
                paid_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        try:
            promoted = db.session.execute(stmt).rowcount == 1
            if promoted:
                db.session.commit()
        except IntegrityError:
            # Partial unique index caught a concurrent promotion
            db.session.rollback()
            promoted = False

        if not promoted:
            db.session.rollback()
            return self._resolve_lost_promotion(payment_id)

        payment = db.session.get(Payment, payment_id)
        logger.info(f"Payment verified: {DispatchNarrator.payment_details(payment)}")
        self._emit(events.PAYMENT_SUCCEEDED, payment)
        return payment

    def _resolve_lost_promotion(self, payment_id: int):
        payment = db.session.get(Payment, payment_id)
        original = self._successful_payment(payment.request_id)

        if original is not None and original.id != payment.id:
            if payment.status == Payment.STATUS_PENDING:
                db.session.execute(
                    update(Payment)
                    .where(Payment.id == payment.id, Payment.status == Payment.STATUS_PENDING)
                    .values(status=Payment.STATUS_FAILED, failure_reason="duplicate settlement",
                            updated_at=datetime.utcnow())
                    .execution_options(synchronize_session=False)
                )
                db.session.commit()
            logger.warning(
                f"Duplicate settlement for request {payment.request_id}: payment {payment_id} "
                f"lost to payment {original.id}"
            )
            raise DuplicateSettlementError(payment.request_id, original)

        if payment.status == Payment.STATUS_SUCCESS:
            logger.warning(f"Payment {payment_id} was verified concurrently")
            raise DuplicateSettlementError(payment.request_id, payment)

        raise InvalidTransitionError(payment.status, f"payment:{Payment.STATUS_SUCCESS}", Payment.STATUS_SUCCESS)

    def _fail_verification(self, payment: Payment, reason: str):
        db.session.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == Payment.STATUS_PENDING)
            .values(status=Payment.STATUS_FAILED, failure_reason=f"verification failed: {reason}",
                    updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        logger.info(f"Payment {payment.id} verification failed: {reason}")
        self._emit(events.PAYMENT_FAILED, payment)
        raise GatewayVerificationFailedError(payment.id, reason)

    # ========== Refund ==========

    def refund(self, payment_id: int, actor_id: int, reason: str, amount: Optional[float] = None) -> Payment:
        """
        Refund a successful payment, fully or partially (admin only).

        Raises:
            UnauthorizedError: Actor is not an admin
            InvalidTransitionError: Payment is not success
            DispatchValidationError: Missing reason or amount above the net amount
            PaymentGatewayError: Gateway refused the refund (payment unchanged)
        """
        actor = self.identity.get_actor(actor_id)
        if not actor.is_admin:
            raise UnauthorizedError("Only admins can issue refunds", actor_id=actor_id)

        payment = db.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError('Payment', payment_id)

        PaymentStateMachine.validate_transition(payment.status, Payment.STATUS_REFUNDED)

        reason = (reason or '').strip()
        if not reason:
            raise DispatchValidationError("Refund reason is required", field='reason')

        max_refund = payment.net_amount
        refund_amount = max_refund if amount is None else amount
        if refund_amount <= 0 or refund_amount > max_refund:
            raise DispatchValidationError(
                f"Refund amount must be between 0 and the net amount {max_refund:g}", field='amount'
            )

        result = self.gateway.refund(
            payment.gateway_payment_id,
            refund_amount,
            notes={'reason': reason, 'request_id': str(payment.request_id)},
        )

        now = datetime.utcnow()
        changed = db.session.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == Payment.STATUS_SUCCESS)
            .values(
                status=Payment.STATUS_REFUNDED,
                refund_id=result.refund_id,
                refund_amount=refund_amount,
                refund_reason=reason[:500],
                refunded_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if changed != 1:
            db.session.rollback()
            logger.error(f"Refund {result.refund_id} issued but payment {payment_id} changed concurrently")
            raise ConcurrentModificationError(f"Payment {payment_id} was modified concurrently", payment_id=payment_id)

        db.session.commit()
        payment = db.session.get(Payment, payment_id)
        logger.info(f"Refund processed for payment {payment_id}: {refund_amount:g} ({result.refund_id})")
        self._emit(events.PAYMENT_REFUNDED, payment)
        return payment

    # ========== Helpers ==========

    def _successful_payment(self, request_id: int) -> Optional[Payment]:
        return Payment.query.filter_by(request_id=request_id, status=Payment.STATUS_SUCCESS).first()

    def _emit(self, name: str, payment: Payment):
        if self.event_bus is None:
            return
        self.event_bus.emit(
            name, payment.request_id,
            audience=(payment.customer_id, payment.provider_id),
            payload={'payment_id': payment.id, 'status': payment.status, 'amount': payment.amount},
        )
