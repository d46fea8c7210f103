"""
Lifecycle transitions: the table is closed and failures change nothing
"""
import pytest

from roadside.buisness.dispatching.errors import (
    DispatchDomainError,
    DispatchValidationError,
    InvalidTransitionError,
    RequestIntentLockError,
)
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.data.conversations.conversation import Conversation
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.data.dispatching.status_history import StatusHistory

PATH = ['pending', 'assigned', 'enroute', 'in_progress', 'completed']


def advance(engine, request_id, mechanic, customer, status):
    """Drive a fresh request to the given status through the engine"""
    if status == 'cancelled':
        engine.transition(request_id, customer.id, 'cancel', reason='No longer needed')
        return
    steps = {
        'assigned': lambda: engine.claim(request_id, mechanic.id),
        'enroute': lambda: engine.transition(request_id, mechanic.id, 'start_travel'),
        'in_progress': lambda: engine.transition(request_id, mechanic.id, 'start_work'),
        'completed': lambda: engine.transition(request_id, mechanic.id, 'complete', final_amount=800),
    }
    for step in PATH[1:PATH.index(status) + 1]:
        steps[step]()


def actor_for(event, mechanic, customer):
    if event == 'cancel':
        return customer
    return mechanic


def assert_provider_binding(request):
    """provider_id is set exactly while a provider is bound to the request"""
    bound = request.status in ServiceRequest.PROVIDER_BOUND_STATUSES
    assert (request.provider_id is not None) == bound, \
        f"{request.status} request has provider_id={request.provider_id}"
    assert (request.assigned_at is not None) == bound


@pytest.mark.parametrize('status', RequestStateMachine.STATUSES)
def test_transition_table_is_closed(engine, make_request, mechanic, customer, db, status):
    """Every (status, event) pair outside the table fails and leaves the request untouched"""
    for event in RequestStateMachine.EVENTS:
        if event == 'claim' or (status, event) in RequestStateMachine.TRANSITIONS:
            continue

        request_id = make_request().id
        advance(engine, request_id, mechanic, customer, status)
        before = db.session.get(ServiceRequest, request_id)
        assert_provider_binding(before)
        version = before.version
        history_rows = StatusHistory.query.filter_by(request_id=request_id).count()

        actor = actor_for(event, mechanic, customer)
        with pytest.raises(InvalidTransitionError):
            engine.transition(request_id, actor.id, event, reason='Trying anyway')

        db.session.expire_all()
        after = db.session.get(ServiceRequest, request_id)
        assert after.status == status, f"{status} --{event}--> must not change status"
        assert after.version == version
        assert StatusHistory.query.filter_by(request_id=request_id).count() == history_rows
        assert_provider_binding(after)


@pytest.mark.parametrize('status, event', sorted(
    edge for edge in RequestStateMachine.TRANSITIONS if edge[1] != 'claim'
))
def test_every_transition_keeps_provider_binding(engine, make_request, mechanic, customer, db, status, event):
    overrides = {'target_provider_id': mechanic.id} if event == 'decline' else {}
    request_id = make_request(**overrides).id
    advance(engine, request_id, mechanic, customer, status)

    payload = {'reason': 'Plans changed, sorry'} if event in ('cancel', 'reject', 'decline') else {}
    engine.transition(request_id, actor_for(event, mechanic, customer).id, event, **payload)

    db.session.expire_all()
    request = db.session.get(ServiceRequest, request_id)
    assert request.status == RequestStateMachine.TRANSITIONS[(status, event)]
    assert_provider_binding(request)


def test_happy_path_records_history(engine, make_request, mechanic, customer, db):
    request_id = make_request().id
    advance(engine, request_id, mechanic, customer, 'completed')

    request = db.session.get(ServiceRequest, request_id)
    assert request.status == 'completed'
    assert request.final_amount == 800
    assert request.started_at is not None and request.completed_at is not None

    events = [h.event for h in StatusHistory.query.filter_by(request_id=request_id).order_by(StatusHistory.id)]
    assert events == ['create', 'claim', 'start_travel', 'start_work', 'complete']


def test_wrong_actor_is_rejected(engine, make_request, make_user, mechanic, customer, db):
    request_id = make_request().id
    engine.claim(request_id, mechanic.id)
    stranger = make_user('mechanic', latitude=12.98, longitude=77.6)

    with pytest.raises(InvalidTransitionError):
        engine.transition(request_id, stranger.id, 'start_travel')
    with pytest.raises(InvalidTransitionError):
        engine.transition(request_id, customer.id, 'start_travel')

    assert db.session.get(ServiceRequest, request_id).status == 'assigned'


def test_claim_is_not_a_plain_transition(engine, make_request, mechanic):
    request_id = make_request().id
    with pytest.raises(InvalidTransitionError):
        engine.transition(request_id, mechanic.id, 'claim')


def test_reject_reopens_request(engine, make_request, make_user, mechanic, db):
    """A provider handing a request back makes it claimable by someone else"""
    request_id = make_request().id
    other = make_user('mechanic', latitude=12.975, longitude=77.59)

    assert engine.claim(request_id, mechanic.id).succeeded
    engine.transition(request_id, mechanic.id, 'reject', reason='Vehicle part unavailable')

    request = db.session.get(ServiceRequest, request_id)
    assert request.status == 'pending'
    assert request.provider_id is None
    assert request.assigned_at is None

    broadcast = engine.broadcast(request_id)
    assert mechanic.id not in broadcast.provider_ids, "The rejecting provider is not re-notified"
    assert other.id in broadcast.provider_ids

    assert engine.claim(request_id, other.id).succeeded
    assert db.session.get(ServiceRequest, request_id).provider_id == other.id


def test_amounts_must_be_numbers(engine, make_request, mechanic, customer, db):
    request_id = make_request().id
    advance(engine, request_id, mechanic, customer, 'assigned')

    with pytest.raises(DispatchValidationError) as exc:
        engine.transition(request_id, mechanic.id, 'start_travel', quotation='900')
    assert exc.value.details['field'] == 'quotation'

    engine.transition(request_id, mechanic.id, 'start_travel')
    engine.transition(request_id, mechanic.id, 'start_work')

    for bad in ('100', True, [100]):
        with pytest.raises(DispatchValidationError):
            engine.transition(request_id, mechanic.id, 'complete', final_amount=bad)
    assert db.session.get(ServiceRequest, request_id).status == 'in_progress'


def test_cancel_requires_reason_and_closes_conversation(engine, make_request, mechanic, customer, db):
    request_id = make_request().id
    engine.claim(request_id, mechanic.id)

    with pytest.raises(DispatchValidationError):
        engine.transition(request_id, customer.id, 'cancel', reason='no')
    assert db.session.get(ServiceRequest, request_id).status == 'assigned'

    engine.transition(request_id, customer.id, 'cancel', reason='Changed my plans')
    request = db.session.get(ServiceRequest, request_id)
    assert request.status == 'cancelled'
    assert request.cancellation_reason == 'Changed my plans'
    assert request.provider_id is None
    assert request.assigned_at is None

    conversation = Conversation.query.filter_by(request_id=request_id).one()
    assert not conversation.is_active
    assert conversation.provider_id == mechanic.id, "The conversation still names who was assigned"
    assert engine.get_or_create_conversation(request_id, mechanic.id).id == conversation.id

    last = StatusHistory.query.filter_by(request_id=request_id).order_by(StatusHistory.id.desc()).first()
    assert f'Released from provider {mechanic.id}' in last.note


def test_admin_can_cancel(engine, make_request, admin, db):
    request_id = make_request().id
    engine.transition(request_id, admin.id, 'cancel', reason='Duplicate request')
    assert db.session.get(ServiceRequest, request_id).status == 'cancelled'


def test_quotation_only_revisable_en_route_or_in_progress(engine, make_request, mechanic, db):
    request_id = make_request().id
    engine.claim(request_id, mechanic.id)

    with pytest.raises(RequestIntentLockError):
        engine.transition(request_id, mechanic.id, 'reject', quotation=900)

    engine.transition(request_id, mechanic.id, 'start_travel', quotation=900)
    assert db.session.get(ServiceRequest, request_id).quotation == 900


def test_complete_needs_an_amount(engine, make_request, mechanic, customer, db):
    request_id = make_request(quotation=None).id
    advance(engine, request_id, mechanic, customer, 'in_progress')

    with pytest.raises(InvalidTransitionError):
        engine.transition(request_id, mechanic.id, 'complete')
    assert db.session.get(ServiceRequest, request_id).status == 'in_progress'


def test_unknown_transition_payload_is_rejected(engine, make_request, customer):
    request_id = make_request().id
    with pytest.raises(DispatchDomainError):
        engine.transition(request_id, customer.id, 'cancel', reason='Not needed now', provider_id=7)
