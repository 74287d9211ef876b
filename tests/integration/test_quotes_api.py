"""
Integration tests for the quotes JSON API and the auth endpoints.
"""

import pytest


def create_quote(client, cliente='Colegio San José', trm=4000):
    response = client.post('/api/quotes/', json={'clienteName': cliente, 'trmGlobal': trm})
    assert response.status_code == 201
    return response.get_json()['quote']


def build_two_item_quote(client):
    """Draft with item 1 (two options) and item 2 (one option)."""
    quote = create_quote(client)
    first_row = quote['rows'][0]

    response = client.patch(f"/api/quotes/{quote['id']}/rows/{first_row['id']}",
                            json={'itemName': 'Portátil', 'costoUSD': 100, 'margen': 20})
    assert response.status_code == 200

    response = client.post(f"/api/quotes/{quote['id']}/items/{first_row['itemId']}/options",
                           json={'mayorista': 'Nexsys', 'costoUSD': 90, 'margen': 20})
    assert response.status_code == 201

    response = client.post(f"/api/quotes/{quote['id']}/items",
                           json={'itemName': 'Monitor', 'costoUSD': 50, 'margen': 20})
    assert response.status_code == 201
    return response.get_json()['quote']


class TestAuth:
    """Tests for login / logout / me."""

    def test_login_and_me(self, client, make_user, login):
        user = make_user('revisor')
        login(user)

        response = client.get('/auth/me')
        data = response.get_json()
        assert response.status_code == 200
        assert data['user']['email'] == user['email']
        assert 'approve_quotes' in data['permissions']

    def test_wrong_password(self, client, make_user):
        user = make_user('vendedor')
        response = client.post('/auth/login', json={'email': user['email'], 'password': 'nope'})
        assert response.status_code == 401

    def test_inactive_user_cannot_login(self, client, make_user):
        user = make_user('comprador', active=False)
        response = client.post('/auth/login', json={'email': user['email'], 'password': user['password']})

        assert response.status_code == 403
        assert response.get_json()['error'] == 'InactiveUserError'

    def test_logout(self, client, make_user, login):
        login(make_user('vendedor'))
        client.post('/auth/logout')
        assert client.get('/auth/me').status_code == 401


class TestQuoteEditingApi:
    """Tests for the seller's editing endpoints."""

    def test_requires_login(self, client):
        response = client.get('/api/quotes/')
        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'

    def test_create_and_edit(self, client, make_user, login):
        seller = make_user('vendedor')
        login(seller)

        quote = create_quote(client)
        assert quote['status'] == 'draft'
        assert quote['createdBy'] == seller['email']

        row_id = quote['rows'][0]['id']
        response = client.patch(f"/api/quotes/{quote['id']}/rows/{row_id}",
                                json={'costoUSD': 100, 'margen': 20, 'cantidad': 2})
        quote = response.get_json()['quote']
        assert quote['totalGeneral'] == 1000000.0

        response = client.patch(f"/api/quotes/{quote['id']}", json={'trmGlobal': 5000})
        assert response.get_json()['quote']['totalGeneral'] == 1250000.0

    def test_additional_costs(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)
        row_id = quote['rows'][0]['id']
        client.patch(f"/api/quotes/{quote['id']}/rows/{row_id}", json={'costoUSD': 100, 'margen': 0})

        response = client.put(f"/api/quotes/{quote['id']}/rows/{row_id}/additional-costs", json={
            'additionalCosts': [{'description': 'Flete', 'currency': 'USD', 'valueUSD': 10}],
        })
        assert response.get_json()['quote']['totalGeneral'] == 440000.0

    def test_derived_field_rejected(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)
        row_id = quote['rows'][0]['id']

        response = client.patch(f"/api/quotes/{quote['id']}/rows/{row_id}", json={'pvpTotal': 1})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'ValidationError'

    def test_last_row_cannot_be_removed(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)

        response = client.delete(f"/api/quotes/{quote['id']}/rows/{quote['rows'][0]['id']}")
        assert response.status_code == 400

    def test_grouped_view(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = build_two_item_quote(client)

        response = client.get(f"/api/quotes/{quote['id']}")
        items = response.get_json()['summary']['items']
        assert [len(item['options']) for item in items] == [2, 1]

        items = client.get(f"/api/quotes/{quote['id']}/items").get_json()['items']
        assert [item['item']['name'] for item in items] == ['Portátil', 'Monitor']

    def test_other_sellers_cannot_edit(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)

        login(make_user('vendedor'))
        response = client.patch(f"/api/quotes/{quote['id']}", json={'clienteName': 'Hack'})
        assert response.status_code == 403

    def test_buyers_cannot_create(self, client, make_user, login):
        login(make_user('comprador'))
        response = client.post('/api/quotes/', json={'clienteName': 'X'})

        assert response.status_code == 403
        assert response.get_json()['error'] == 'PermissionDeniedError'

    def test_missing_quote(self, client, make_user, login):
        login(make_user('revisor'))
        assert client.get('/api/quotes/999').status_code == 404

    def test_delete_draft(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)

        assert client.delete(f"/api/quotes/{quote['id']}").status_code == 200
        assert client.get(f"/api/quotes/{quote['id']}").status_code == 404

    def test_pending_quote_cannot_be_deleted(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)
        client.post(f"/api/quotes/{quote['id']}/submit")

        assert client.delete(f"/api/quotes/{quote['id']}").status_code == 409

    def test_by_code(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)

        response = client.get(f"/api/quotes/by-code/{quote['cotizacion_id']}")
        assert response.get_json()['quote']['id'] == quote['id']
        response = client.get('/api/quotes/by-code/COT-NOPE')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'NotFoundError'

    def test_duplicate(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)

        response = client.post(f"/api/quotes/{quote['id']}/duplicate")
        duplicated = response.get_json()['quote']
        assert response.status_code == 201
        assert duplicated['id'] != quote['id']
        assert duplicated['clienteName'] == 'Colegio San José (Copia)'


class TestApprovalWorkflowApi:
    """End to end: seller submits, reviewer approves, buyer records prices."""

    def test_full_workflow(self, client, make_user, login):
        seller, reviewer, buyer = make_user('vendedor'), make_user('revisor'), make_user('comprador')

        login(seller)
        quote = build_two_item_quote(client)
        quote_id = quote['id']
        item_1, item_2 = quote['rows'][0]['itemId'], quote['rows'][2]['itemId']
        chosen_row = quote['rows'][1]['id']

        response = client.post(f'/api/quotes/{quote_id}/submit')
        assert response.get_json()['quote']['status'] == 'pending_approval'
        assert response.get_json()['quote']['vendorEmail'] == seller['email']

        # Pending quotes are read-only for the seller
        response = client.patch(f'/api/quotes/{quote_id}', json={'clienteName': 'Otro'})
        assert response.status_code == 409

        login(reviewer)
        response = client.post(f'/api/quotes/{quote_id}/approve', json={'selectedOptions': {item_1: chosen_row}})
        assert response.status_code == 400
        assert response.get_json()['missing'] == [item_2]
        assert client.get(f'/api/quotes/{quote_id}').get_json()['quote']['status'] == 'pending_approval'

        response = client.post(f'/api/quotes/{quote_id}/approve', json={
            'selectedOptions': {item_1: chosen_row, item_2: quote['rows'][2]['id']},
            'itemComments': {item_1: 'Mejor precio'},
        })
        approved = response.get_json()['quote']
        assert response.status_code == 200
        assert approved['status'] == 'approved'
        assert [r['id'] for r in approved['rows']] == [chosen_row, quote['rows'][2]['id']]
        assert approved['totalGeneral'] == 450000.0 + 250000.0
        assert approved['approvedBy'] == reviewer['email']

        login(buyer)
        listed = client.get('/api/quotes/').get_json()['quotes']
        assert [q['id'] for q in listed] == [quote_id]

        response = client.post(f'/api/quotes/{quote_id}/purchases/0', json={'finalPrice': 400000, 'notes': 'OK'})
        data = response.get_json()
        assert response.status_code == 200
        assert data['quote']['purchaseData']['0']['finalPurchasePrice'] == 400000.0
        assert data['quote']['purchaseStatus'] == 'in_progress'
        assert data['quote']['totalGeneral'] == approved['totalGeneral']
        assert data['analysis'] is not None

        response = client.post(f'/api/quotes/{quote_id}/purchases/finalize', json={'notes': 'Listo'})
        assert response.get_json()['quote']['purchaseStatus'] == 'completed'

        summary = client.get(f'/api/quotes/{quote_id}/purchases').get_json()
        assert len(summary['items']) == 2

    def test_revision_round_trip(self, client, make_user, login):
        seller, reviewer = make_user('vendedor'), make_user('revisor')

        login(seller)
        quote = create_quote(client)
        client.post(f"/api/quotes/{quote['id']}/submit")

        login(reviewer)
        response = client.post(f"/api/quotes/{quote['id']}/request-revision", json={'itemComments': {}})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'MissingCommentsError'

        item_id = quote['rows'][0]['itemId']
        response = client.post(f"/api/quotes/{quote['id']}/request-revision",
                               json={'itemComments': {item_id: 'Revisar la TRM'}})
        assert response.get_json()['quote']['status'] == 'revision_requested'

        login(seller)
        response = client.patch(f"/api/quotes/{quote['id']}", json={'trmGlobal': 4100})
        assert response.status_code == 200
        response = client.post(f"/api/quotes/{quote['id']}/submit")
        assert response.get_json()['quote']['status'] == 'pending_approval'

    def test_seller_cannot_approve(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)
        client.post(f"/api/quotes/{quote['id']}/submit")

        response = client.post(f"/api/quotes/{quote['id']}/approve", json={'selectedOptions': {}})
        assert response.status_code == 403

    def test_submit_without_client_name(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client, cliente='')

        response = client.post(f"/api/quotes/{quote['id']}/submit")
        assert response.status_code == 400
        assert client.get(f"/api/quotes/{quote['id']}").get_json()['quote']['status'] == 'draft'

    def test_malformed_review_payload(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)
        client.post(f"/api/quotes/{quote['id']}/submit")

        login(make_user('revisor'))
        response = client.post(f"/api/quotes/{quote['id']}/approve", json={'selectedOptions': [quote['rows'][0]['id']]})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'ValidationError'

        response = client.post(f"/api/quotes/{quote['id']}/deny", json={'reason': 7})
        assert response.status_code == 400
        assert client.get(f"/api/quotes/{quote['id']}").get_json()['quote']['status'] == 'pending_approval'

    def test_deny(self, client, make_user, login):
        login(make_user('vendedor'))
        quote = create_quote(client)
        client.post(f"/api/quotes/{quote['id']}/submit")

        login(make_user('revisor'))
        response = client.post(f"/api/quotes/{quote['id']}/deny", json={'reason': 'Sin presupuesto'})
        assert response.get_json()['quote']['status'] == 'denied'

        response = client.post(f"/api/quotes/{quote['id']}/approve", json={'selectedOptions': {}})
        assert response.status_code == 409

    def test_status_filter(self, client, make_user, login):
        login(make_user('revisor'))
        response = client.get('/api/quotes/?status=archived')
        assert response.status_code == 400
