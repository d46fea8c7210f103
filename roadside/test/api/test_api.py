"""
JSON API: authentication, error mapping and an end-to-end job
"""
from conftest import CENTER, auth_header, request_details
from roadside.data.settlement.payment import Payment


def test_requires_bearer_token(client):
    response = client.get('/api/v1/requests')
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_tampered_token_is_rejected(client, customer):
    headers = auth_header(customer.id)
    headers['Authorization'] += 'x'
    assert client.get('/api/v1/requests', headers=headers).status_code == 401


def test_validation_error_maps_to_400(client, customer):
    response = client.post('/api/v1/requests', json={'issue_type': 'alien_abduction'},
                           headers=auth_header(customer.id))
    body = response.get_json()
    assert response.status_code == 400
    assert body['error_type'] == 'DispatchValidationError'
    assert body['details']['field'] == 'issue_type'


def test_non_numeric_amounts_map_to_400(client, engine, make_request, mechanic):
    request = make_request()
    bad_claim = client.post(f'/api/v1/requests/{request.id}/claim', json={'quotation': 'abc'},
                            headers=auth_header(mechanic.id))
    assert bad_claim.status_code == 400
    assert bad_claim.get_json()['details']['field'] == 'quotation'

    engine.claim(request.id, mechanic.id)
    engine.transition(request.id, mechanic.id, 'start_travel')
    engine.transition(request.id, mechanic.id, 'start_work')
    bad_complete = client.post(f'/api/v1/requests/{request.id}/transitions',
                               json={'event': 'complete', 'final_amount': '100'},
                               headers=auth_header(mechanic.id))
    assert bad_complete.status_code == 400
    assert bad_complete.get_json()['details']['field'] == 'final_amount'


def test_unknown_request_maps_to_404(client, customer):
    response = client.get('/api/v1/requests/4242', headers=auth_header(customer.id))
    assert response.status_code == 404


def test_lost_claim_maps_to_409(client, engine, make_request, make_user, mechanic):
    request = make_request()
    engine.claim(request.id, mechanic.id)
    late = make_user('mechanic', latitude=CENTER[0], longitude=CENTER[1])

    response = client.post(f'/api/v1/requests/{request.id}/claim', json={}, headers=auth_header(late.id))
    body = response.get_json()
    assert response.status_code == 409
    assert body['error_type'] == 'AlreadyClaimedError'
    assert 'provider_id' not in body.get('details', {}), "Losers do not learn who won"


def test_invalid_transition_maps_to_409(client, make_request, customer):
    request = make_request()
    response = client.post(f'/api/v1/requests/{request.id}/transitions', json={'event': 'complete'},
                           headers=auth_header(customer.id))
    assert response.status_code == 409
    assert response.get_json()['details']['current_state'] == 'pending'


def test_full_job_over_http(client, customer, mechanic, gateway):
    """Create, broadcast, claim, work, chat, pay and review one request"""
    as_customer = auth_header(customer.id)
    as_mechanic = auth_header(mechanic.id)

    created = client.post('/api/v1/requests', json=request_details(), headers=as_customer)
    assert created.status_code == 201
    request_id = created.get_json()['request']['request']['id']

    broadcast = client.post(f'/api/v1/requests/{request_id}/broadcast', headers=as_customer).get_json()
    assert [c['provider_id'] for c in broadcast['broadcast']['candidates']] == [mechanic.id]

    tasks = client.get('/api/v1/tasks', headers=as_mechanic).get_json()
    assert [t['request']['id'] for t in tasks['tasks']] == [request_id]

    claimed = client.post(f'/api/v1/requests/{request_id}/claim', json={'quotation': 700},
                          headers=as_mechanic)
    assert claimed.status_code == 200
    assert claimed.get_json()['request']['customer']['id'] == customer.id

    conversation = client.post(f'/api/v1/requests/{request_id}/conversation',
                               headers=as_customer).get_json()['conversation']
    posted = client.post(f"/api/v1/conversations/{conversation['id']}/messages",
                         json={'body': 'White hatchback near the petrol pump'}, headers=as_customer)
    assert posted.status_code == 201
    inbox = client.get(f"/api/v1/conversations/{conversation['id']}/messages", headers=as_mechanic).get_json()
    assert inbox['unread'] == 1

    for event in ('start_travel', 'start_work'):
        moved = client.post(f'/api/v1/requests/{request_id}/transitions', json={'event': event},
                            headers=as_mechanic)
        assert moved.status_code == 200, moved.get_json()
    done = client.post(f'/api/v1/requests/{request_id}/transitions',
                       json={'event': 'complete', 'final_amount': 750}, headers=as_mechanic)
    assert done.get_json()['request']['request']['status'] == 'completed'

    payments = client.get(f'/api/v1/requests/{request_id}/payments', headers=as_customer).get_json()['payments']
    assert len(payments) == 1 and payments[0]['status'] == 'pending'

    verified = client.post(f"/api/v1/payments/{payments[0]['id']}/verify",
                           json=gateway.callback_for(payments[0]['gateway_order_id']), headers=as_customer)
    assert verified.status_code == 200
    assert verified.get_json()['payment']['status'] == 'success'

    replay = client.post(f"/api/v1/payments/{payments[0]['id']}/verify",
                         json=gateway.callback_for(payments[0]['gateway_order_id']), headers=as_customer)
    assert replay.status_code == 409

    review = client.post(f'/api/v1/requests/{request_id}/review', json={'rating': 5, 'tags': ['friendly']},
                         headers=as_customer)
    assert review.status_code == 201

    assert Payment.query.filter_by(request_id=request_id, status='success').count() == 1
