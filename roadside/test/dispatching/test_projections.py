"""
Role projections of a request
"""
import pytest

from conftest import CENTER
from roadside.buisness.dispatching.errors import DispatchValidationError, UnauthorizedError
from roadside.buisness.dispatching.projections import AdminView, CustomerView, ProviderView


def test_customer_sees_own_request(engine, make_request, customer):
    request = make_request()
    view = engine.view(request.id, customer.id)

    assert isinstance(view, CustomerView)
    assert view.address == 'MG Road'
    assert view.vehicle_plate == 'KA01AB1234'
    assert view.allowed_events == ['cancel']


def test_other_customer_is_refused(engine, make_request, make_user):
    request = make_request()
    with pytest.raises(UnauthorizedError):
        engine.view(request.id, make_user('customer').id)


def test_unassigned_provider_gets_redacted_view(engine, make_request, mechanic):
    request = make_request(location={'latitude': 12.971634, 'longitude': 77.594612, 'address': 'Flat 4B'})
    view = engine.view(request.id, mechanic.id).to_dict()

    assert view['is_assigned'] is False
    assert view['customer'] is None
    assert view['address'] is None
    assert view['vehicle_plate'] is None
    assert view['latitude'] == 12.97 and view['longitude'] == 77.59
    assert view['distance_km'] is not None
    assert view['allowed_events'] == ['claim']


def test_assigned_provider_sees_customer(engine, make_request, mechanic, customer):
    request = make_request()
    engine.claim(request.id, mechanic.id)
    view = engine.view(request.id, mechanic.id)

    assert isinstance(view, ProviderView)
    assert view.customer.id == customer.id
    assert view.address == 'MG Road'
    assert view.allowed_events == ['reject', 'start_travel']


def test_provider_cannot_see_someone_elses_job(engine, make_request, make_user, mechanic):
    request = make_request()
    engine.claim(request.id, mechanic.id)
    other = make_user('mechanic', latitude=CENTER[0], longitude=CENTER[1])

    with pytest.raises(UnauthorizedError):
        engine.view(request.id, other.id)


def test_admin_sees_history(engine, make_request, admin, mechanic):
    request = make_request()
    engine.claim(request.id, mechanic.id)
    view = engine.view(request.id, admin.id)

    assert isinstance(view, AdminView)
    assert view.provider_id == mechanic.id
    assert [h['event'] for h in view.history] == ['create', 'claim']
    assert view.response_time_min == 0
    assert view.actual_duration_min is None, "Work has not started yet"


def test_parties_add_notes_outsiders_cannot(engine, make_request, make_user, customer, mechanic):
    request = make_request()
    engine.claim(request.id, mechanic.id)

    note = engine.add_note(request.id, mechanic.id, '  Bringing a spare 15 inch tyre  ')
    assert note.text == 'Bringing a spare 15 inch tyre'
    assert note.added_by_id == mechanic.id

    with pytest.raises(DispatchValidationError):
        engine.add_note(request.id, customer.id, '   ')
    with pytest.raises(UnauthorizedError):
        engine.add_note(request.id, make_user('customer').id, 'Hello')
