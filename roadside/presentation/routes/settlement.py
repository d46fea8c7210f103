"""
Settlement routes: payment intents, gateway callbacks and refunds
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from roadside.buisness.dispatching.errors import DispatchValidationError
from roadside.presentation.routes.dispatching import get_engine, json_body

bp = Blueprint('settlement', __name__)


@bp.post('/requests/<int:request_id>/settlement')
@login_required
def settlement_initiate(request_id):
    """Open a payment intent for a completed request"""
    order = get_engine().initiate_settlement(request_id, current_user.id)
    return jsonify({'success': True, 'order': order.to_dict()}), 201


@bp.post('/payments/<int:payment_id>/verify')
@login_required
def settlement_verify(payment_id):
    """
    Verify the checkout callback.

    Body carries order_id, payment_id and signature, with or without the
    razorpay_ prefix the checkout widget uses.
    """
    payment = get_engine().verify_settlement(payment_id, json_body())
    return jsonify({'success': True, 'payment': payment.to_dict()})


@bp.post('/payments/<int:payment_id>/refund')
@login_required
def settlement_refund(payment_id):
    data = json_body()
    amount = data.get('amount')
    if amount is not None and (isinstance(amount, bool) or not isinstance(amount, (int, float))):
        raise DispatchValidationError("amount must be a number", field='amount')

    payment = get_engine().refund(payment_id, current_user.id, data.get('reason'), amount)
    return jsonify({'success': True, 'payment': payment.to_dict()})
