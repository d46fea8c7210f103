"""
Settlement: payment intents, signature verification, at most one success, refunds
"""
import pytest

from roadside.buisness.dispatching.errors import (
    DuplicateSettlementError,
    GatewayVerificationFailedError,
    InvalidTransitionError,
    PaymentGatewayError,
    UnauthorizedError,
)
from roadside.buisness.settlement.fees import FeeSchedule
from roadside.buisness.settlement.gateway import RazorpayGatewayClient, expected_signature
from roadside.data.settlement.payment import Payment


@pytest.fixture
def completed(engine, make_request, mechanic):
    """A request the mechanic finished for 1000, settled automatically on completion"""
    request = make_request()
    engine.claim(request.id, mechanic.id)
    engine.transition(request.id, mechanic.id, 'start_travel')
    engine.transition(request.id, mechanic.id, 'start_work')
    engine.transition(request.id, mechanic.id, 'complete', final_amount=1000)
    return request


def test_fee_schedule_clamps():
    fees = FeeSchedule(rate=0.02, minimum=5, maximum=200)
    assert fees.fee_for(100) == 5
    assert fees.fee_for(1000) == 20
    assert fees.fee_for(50000) == 200


def test_signature_matches_gateway_scheme():
    client = RazorpayGatewayClient('rzp_test_key', 'secret')
    good = expected_signature('secret', 'order_1', 'pay_1')
    assert client.verify_signature('order_1', 'pay_1', good)
    assert not client.verify_signature('order_1', 'pay_2', good)
    assert not client.verify_signature('order_1', 'pay_1', '')


def test_gateway_without_credentials_fails_cleanly():
    with pytest.raises(PaymentGatewayError):
        RazorpayGatewayClient('', '').create_order(100, 'INR', 'RG1')


def test_completion_opens_payment_intent(completed, gateway):
    payment = Payment.query.filter_by(request_id=completed.id).one()
    assert payment.status == 'pending'
    assert payment.amount == 1000
    assert payment.processing_fee == 20
    assert payment.total_amount == 1020
    assert payment.gateway_order_id == gateway.orders[0].order_id
    assert gateway.orders[0].amount_minor == 102000


def test_cannot_settle_unfinished_request(engine, make_request, customer):
    request = make_request()
    with pytest.raises(InvalidTransitionError):
        engine.initiate_settlement(request.id, customer.id)


def test_only_customer_or_admin_may_initiate(engine, completed, mechanic):
    with pytest.raises(UnauthorizedError):
        engine.initiate_settlement(completed.id, mechanic.id)


def test_verify_promotes_payment(engine, completed, gateway):
    payment = Payment.query.filter_by(request_id=completed.id).one()
    verified = engine.verify_settlement(payment.id, gateway.callback_for(payment.gateway_order_id))

    assert verified.status == 'success'
    assert verified.gateway_payment_id == 'pay_test_1'
    assert verified.paid_at is not None
    assert 'gateway_signature' not in verified.to_dict()


def test_bad_signature_fails_payment(engine, completed, gateway, db):
    payment = Payment.query.filter_by(request_id=completed.id).one()
    callback = gateway.callback_for(payment.gateway_order_id)
    callback['razorpay_signature'] = '0' * 64

    with pytest.raises(GatewayVerificationFailedError):
        engine.verify_settlement(payment.id, callback)

    db.session.expire_all()
    assert db.session.get(Payment, payment.id).status == 'failed'


def test_order_mismatch_fails_payment(engine, completed, gateway):
    payment = Payment.query.filter_by(request_id=completed.id).one()
    with pytest.raises(GatewayVerificationFailedError):
        engine.verify_settlement(payment.id, gateway.callback_for('order_someone_else'))


def test_at_most_one_successful_payment(engine, completed, customer, gateway, db):
    """Two intents for one request: the first verified wins, the second is a duplicate"""
    first = Payment.query.filter_by(request_id=completed.id).one()
    second_order = engine.initiate_settlement(completed.id, customer.id)

    engine.verify_settlement(first.id, gateway.callback_for(first.gateway_order_id, 'pay_a'))

    with pytest.raises(DuplicateSettlementError) as exc:
        engine.verify_settlement(second_order.payment_id, gateway.callback_for(second_order.order_id, 'pay_b'))
    assert exc.value.original_payment.id == first.id

    db.session.expire_all()
    statuses = {p.id: p.status for p in Payment.query.filter_by(request_id=completed.id)}
    assert statuses == {first.id: 'success', second_order.payment_id: 'failed'}


def test_replayed_callback_is_duplicate(engine, completed, gateway):
    payment = Payment.query.filter_by(request_id=completed.id).one()
    callback = gateway.callback_for(payment.gateway_order_id)
    engine.verify_settlement(payment.id, callback)

    with pytest.raises(DuplicateSettlementError):
        engine.verify_settlement(payment.id, callback)


def test_settled_request_refuses_new_intent(engine, completed, customer, gateway):
    payment = Payment.query.filter_by(request_id=completed.id).one()
    engine.verify_settlement(payment.id, gateway.callback_for(payment.gateway_order_id))

    with pytest.raises(DuplicateSettlementError):
        engine.initiate_settlement(completed.id, customer.id)


def test_gateway_outage_marks_payment_failed(engine, completed, customer, gateway):
    gateway.fail_orders = True
    with pytest.raises(PaymentGatewayError):
        engine.initiate_settlement(completed.id, customer.id)

    failed = Payment.query.filter_by(request_id=completed.id, status='failed').one()
    assert 'unreachable' in failed.failure_reason


def test_refund_by_admin(engine, completed, admin, customer, gateway):
    payment = Payment.query.filter_by(request_id=completed.id).one()
    engine.verify_settlement(payment.id, gateway.callback_for(payment.gateway_order_id))

    with pytest.raises(UnauthorizedError):
        engine.refund(payment.id, customer.id, 'Customer asked')

    refunded = engine.refund(payment.id, admin.id, 'Service not delivered', amount=500)
    assert refunded.status == 'refunded'
    assert refunded.refund_amount == 500
    assert refunded.refund_id == gateway.refunds[0].refund_id

    with pytest.raises(InvalidTransitionError):
        engine.refund(payment.id, admin.id, 'Again')
