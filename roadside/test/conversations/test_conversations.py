"""
Conversation binding and messaging
"""
import pytest

from roadside.buisness.dispatching.errors import (
    ConversationClosedError,
    DispatchConsistencyError,
    DispatchValidationError,
    UnauthorizedError,
)
from roadside.buisness.dispatching.events import MESSAGE_POSTED
from roadside.data.conversations.conversation import Conversation


@pytest.fixture
def assigned(engine, make_request, mechanic):
    request = make_request()
    engine.claim(request.id, mechanic.id)
    return request


def test_get_or_create_is_idempotent(engine, assigned, customer, mechanic):
    first = engine.get_or_create_conversation(assigned.id, customer.id)
    second = engine.get_or_create_conversation(assigned.id, mechanic.id)
    third = engine.binder.bind_conversation(assigned.id)

    assert first.id == second.id == third.id
    assert Conversation.query.filter_by(request_id=assigned.id).count() == 1


def test_lazy_bind_when_eager_bind_missing(engine, assigned, db):
    """A request assigned without a conversation gets one on first access"""
    Conversation.query.filter_by(request_id=assigned.id).delete()
    db.session.commit()

    created = engine.binder.bind_conversation(assigned.id)
    again = engine.binder.bind_conversation(assigned.id)
    assert created.id == again.id


def test_no_conversation_before_assignment(engine, make_request, customer):
    request = make_request()
    with pytest.raises(DispatchConsistencyError):
        engine.get_or_create_conversation(request.id, customer.id)


def test_outsider_cannot_open_conversation(engine, assigned, make_user):
    outsider = make_user('mechanic', latitude=12.9, longitude=77.5)
    with pytest.raises(UnauthorizedError):
        engine.get_or_create_conversation(assigned.id, outsider.id)


def test_post_and_read_messages(engine, assigned, customer, mechanic):
    conversation = engine.get_or_create_conversation(assigned.id, customer.id)
    delivered = []
    engine.event_bus.on(MESSAGE_POSTED, delivered.append)

    engine.post_message(conversation.id, customer.id, 'I am next to the blue gate')
    engine.post_message(conversation.id, customer.id, 'Hazard lights are on')

    assert delivered[-1].audience == (mechanic.id,)
    assert engine.binder.unread_count(conversation.id, mechanic.id) == 2
    assert engine.mark_read(conversation.id, mechanic.id) == 2
    assert engine.binder.unread_count(conversation.id, mechanic.id) == 0
    assert engine.mark_read(conversation.id, mechanic.id) == 0

    bodies = [m.body for m in engine.binder.list_messages(conversation.id)]
    assert bodies == ['I am next to the blue gate', 'Hazard lights are on']


def test_message_validation(engine, assigned, customer):
    conversation = engine.get_or_create_conversation(assigned.id, customer.id)

    with pytest.raises(DispatchValidationError):
        engine.post_message(conversation.id, customer.id, '   ')
    with pytest.raises(DispatchValidationError):
        engine.post_message(conversation.id, customer.id, 'x' * 1001)
    with pytest.raises(DispatchValidationError):
        engine.post_message(conversation.id, customer.id, 'photo', message_type='image')


def test_cancelled_request_closes_conversation(engine, assigned, customer):
    conversation = engine.get_or_create_conversation(assigned.id, customer.id)
    engine.transition(assigned.id, customer.id, 'cancel', reason='Car started again')

    with pytest.raises(ConversationClosedError):
        engine.post_message(conversation.id, customer.id, 'Never mind')

    assert engine.get_or_create_conversation(assigned.id, customer.id).id == conversation.id


def test_reject_hands_conversation_to_next_provider(engine, assigned, customer, mechanic, make_user):
    conversation = engine.get_or_create_conversation(assigned.id, customer.id)
    engine.post_message(conversation.id, mechanic.id, 'On my way')
    engine.transition(assigned.id, mechanic.id, 'reject', reason='Tow truck needed instead')

    with pytest.raises(ConversationClosedError):
        engine.post_message(conversation.id, mechanic.id, 'Sorry about that')

    successor = make_user('mechanic', latitude=12.975, longitude=77.59)
    assert engine.claim(assigned.id, successor.id).succeeded

    handed = Conversation.query.filter_by(request_id=assigned.id).one()
    assert handed.id == conversation.id
    assert handed.provider_id == successor.id
    assert handed.is_active

    engine.post_message(conversation.id, successor.id, 'Bringing the tow truck')
    with pytest.raises(UnauthorizedError):
        engine.post_message(conversation.id, mechanic.id, 'Still here')
