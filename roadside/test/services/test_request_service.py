"""
Read services: customer lists, provider task board, payment history
"""
import pytest
from werkzeug.test import EnvironBuilder

from conftest import CENTER
from roadside.buisness.dispatching.errors import DispatchValidationError
from roadside.services.dispatching.request_service import ServiceRequestQueryService


def query_request(app, query_string):
    return app.request_class(EnvironBuilder(path='/', query_string=query_string).get_environ())


def test_customer_list_filters_by_status(app, engine, make_request, customer, mechanic):
    open_request = make_request()
    taken = make_request(issue_type='battery_dead')
    engine.claim(taken.id, mechanic.id)

    page, filters = ServiceRequestQueryService.get_customer_list(
        query_request(app, {'status': 'pending'}), customer.id
    )
    assert [r.id for r in page.items] == [open_request.id]
    assert filters['status'] == ['pending']

    page, _ = ServiceRequestQueryService.get_customer_list(
        query_request(app, {'issue_type': 'battery_dead'}), customer.id
    )
    assert [r.id for r in page.items] == [taken.id]


def test_customer_list_only_own_requests(app, make_request, make_user, customer):
    make_request()
    stranger = make_user('customer')

    page, _ = ServiceRequestQueryService.get_customer_list(query_request(app, {}), stranger.id)
    assert page.total == 0


def test_customer_list_rejects_bad_dates(app, customer):
    with pytest.raises(DispatchValidationError):
        ServiceRequestQueryService.get_customer_list(query_request(app, {'start_date': 'yesterday'}), customer.id)


def test_provider_tasks_combine_open_and_own(engine, make_request, make_user, mechanic):
    mine = make_request()
    engine.claim(mine.id, mechanic.id)
    nearby = make_request()
    make_request(location={'latitude': CENTER[0] + 1.0, 'longitude': CENTER[1]})  # far outside its radius
    someone_else = make_user('mechanic', latitude=CENTER[0], longitude=CENTER[1])
    reserved = make_request(target_provider_id=someone_else.id)

    tasks = ServiceRequestQueryService.get_provider_tasks(mechanic)
    ids = [t['request']['id'] for t in tasks]

    assert mine.id in ids
    assert nearby.id in ids
    assert reserved.id not in ids
    assert len(ids) == 2

    own = next(t for t in tasks if t['request']['id'] == mine.id)
    assert own['is_assigned'] is True


def test_provider_tasks_skip_rejected(engine, make_request, mechanic):
    request = make_request()
    engine.claim(request.id, mechanic.id)
    engine.transition(request.id, mechanic.id, 'reject', reason='Too far for my bike')

    assert ServiceRequestQueryService.get_provider_tasks(mechanic, status='pending') == []


def test_payment_history(engine, make_request, mechanic):
    request = make_request()
    engine.claim(request.id, mechanic.id)
    engine.transition(request.id, mechanic.id, 'start_travel')
    engine.transition(request.id, mechanic.id, 'start_work')
    engine.transition(request.id, mechanic.id, 'complete')

    payments = ServiceRequestQueryService.get_payment_history(request.id)
    assert len(payments) == 1
    assert payments[0].amount == 500
