"""
Service request routes for dispatching module
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from roadside import limiter
from roadside.buisness.dispatching.context import ServiceRequestContext
from roadside.buisness.dispatching.errors import DispatchValidationError, UnauthorizedError
from roadside.logger import get_logger
from roadside.presentation.routes.dispatching import dispatching_bp, get_engine, json_body
from roadside.services.dispatching.request_service import ServiceRequestQueryService

logger = get_logger("roadside.routes.dispatching.requests")


@dispatching_bp.post('/requests')
@login_required
def requests_create():
    """Create a service request for the calling customer"""
    engine = get_engine()
    service_request = engine.create_request(current_user.id, json_body())
    view = engine.view(service_request.id, current_user.id)
    return jsonify({'success': True, 'request': view.to_dict()}), 201


@dispatching_bp.get('/requests')
@login_required
def requests_list():
    """List the calling customer's requests with filtering and pagination"""
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 10, type=int), 50)

    customer_id = current_user.id
    if current_user.is_admin and request.args.get('customer_id'):
        customer_id = request.args.get('customer_id', type=int)
    elif current_user.is_mechanic:
        raise UnauthorizedError("Providers list their work under /tasks", actor_id=current_user.id)

    requests_page, filters = ServiceRequestQueryService.get_customer_list(
        request=request,
        customer_id=customer_id,
        page=page,
        per_page=per_page,
    )

    engine = get_engine()
    return jsonify({
        'success': True,
        'requests': [engine.view(r.id, current_user.id).to_dict() for r in requests_page.items],
        'pagination': {
            'page': requests_page.page,
            'per_page': requests_page.per_page,
            'total': requests_page.total,
            'pages': requests_page.pages,
        },
        'filters': filters,
    })


@dispatching_bp.get('/requests/<int:request_id>')
@login_required
def requests_view(request_id):
    view = get_engine().view(request_id, current_user.id)
    return jsonify({'success': True, 'request': view.to_dict()})


@dispatching_bp.post('/requests/<int:request_id>/broadcast')
@login_required
def requests_broadcast(request_id):
    """Compute the candidate providers for a pending request"""
    engine = get_engine()
    service_request = engine.get_request(request_id)
    if not current_user.is_admin and current_user.id != service_request.customer_id:
        raise UnauthorizedError("Only the customer can broadcast this request", actor_id=current_user.id)

    candidates = engine.broadcast(request_id)
    return jsonify({'success': True, 'broadcast': candidates.to_dict()})


@dispatching_bp.post('/requests/<int:request_id>/claim')
@login_required
@limiter.limit("10 per minute")
def requests_claim(request_id):
    """Accept a pending request; exactly one provider wins"""
    data = json_body()
    engine = get_engine()
    result = engine.claim(
        request_id,
        current_user.id,
        quotation=data.get('quotation'),
        estimated_duration_min=data.get('estimated_duration_min'),
    )
    result.raise_for_outcome()

    view = engine.view(request_id, current_user.id)
    return jsonify({'success': True, 'claim': result.to_dict(), 'request': view.to_dict()})


@dispatching_bp.post('/requests/<int:request_id>/transitions')
@login_required
def requests_transition(request_id):
    """
    Fire a lifecycle event.

    Body: {"event": "...", "note"?, "reason"?, "quotation"?, "final_amount"?}
    """
    data = json_body()
    event = data.pop('event', None)
    if not event:
        raise DispatchValidationError("event is required", field='event')

    engine = get_engine()
    engine.transition(request_id, current_user.id, event, **data)
    view = engine.view(request_id, current_user.id)
    return jsonify({'success': True, 'request': view.to_dict()})


@dispatching_bp.post('/requests/<int:request_id>/notes')
@login_required
def requests_add_note(request_id):
    note = get_engine().add_note(request_id, current_user.id, json_body().get('text'))
    return jsonify({'success': True, 'note': note.to_dict()}), 201


@dispatching_bp.get('/requests/<int:request_id>/payments')
@login_required
def requests_payments(request_id):
    """Payment history for one request (parties and admins)"""
    ctx = ServiceRequestContext.load(request_id)
    if not ctx.is_party(current_user.id, current_user.role):
        raise UnauthorizedError("Not a participant in this request", actor_id=current_user.id)

    payments = ServiceRequestQueryService.get_payment_history(request_id)
    return jsonify({'success': True, 'payments': [p.to_dict() for p in payments]})
