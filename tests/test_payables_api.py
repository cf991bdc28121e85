"""Integration tests for the accounts payable endpoints."""
from datetime import date

import pytest

from odontoclinic.models.payable_models import Payable

ENDPOINT = '/api/payables'


@pytest.fixture
def desk_headers(front_desk_a, headers_for):
    return headers_for(front_desk_a)


@pytest.fixture
def create_payable(client, desk_headers):
    def _create(**overrides):
        payload = {'description': 'Dental supplies', 'amount': 480.5, 'due_date': '2030-06-10'}
        payload.update(overrides)
        return client.post(ENDPOINT, headers=desk_headers, json=payload)
    return _create


@pytest.fixture
def foreign_payable(db, clinic_b):
    payable = Payable(clinica_id=clinic_b.id, description='Rent', amount=3000.0, due_date=date(2030, 6, 5))
    db.session.add(payable)
    db.session.commit()
    return payable


class TestPayables:

    def test_create(self, create_payable, clinic_a):
        response = create_payable(notes='Invoice 123')

        assert response.status_code == 201
        body = response.get_json()['payable']
        assert body['status'] == 'pending'
        assert body['due_date'] == '2030-06-10'
        assert Payable.query.filter_by(id=body['id']).first().clinica_id == clinic_a.id

    @pytest.mark.parametrize('overrides', [
        {'description': ''},
        {'description': ['Rent']},
        {'amount': 0},
        {'amount': '480'},
        {'due_date': '10/06/2030'},
        {'due_date': None},
    ])
    def test_validation(self, create_payable, overrides):
        assert create_payable(**overrides).status_code == 400

    def test_list_by_due_date_with_filters(self, client, desk_headers, create_payable, foreign_payable):
        create_payable(description='Lab', due_date='2030-07-01')
        create_payable(description='Supplies', due_date='2030-06-01')

        listed = client.get(ENDPOINT, headers=desk_headers).get_json()
        june = client.get(f'{ENDPOINT}?start_date=2030-06-01&end_date=2030-06-30', headers=desk_headers).get_json()

        assert [p['description'] for p in listed['payables']] == ['Supplies', 'Lab']
        assert listed['total'] == 2
        assert [p['description'] for p in june['payables']] == ['Supplies']

    def test_mark_as_paid(self, client, desk_headers, create_payable):
        payable = create_payable().get_json()['payable']

        response = client.put(f"{ENDPOINT}/{payable['id']}", headers=desk_headers,
                              json={'status': 'paid', 'paid_on': '2030-06-09'})
        paid = client.get(f'{ENDPOINT}?status=paid', headers=desk_headers).get_json()

        assert response.status_code == 200
        assert response.get_json()['payable']['paid_on'] == '2030-06-09'
        assert paid['total'] == 1

    def test_invalid_status(self, client, desk_headers, create_payable):
        payable = create_payable().get_json()['payable']
        response = client.put(f"{ENDPOINT}/{payable['id']}", headers=desk_headers, json={'status': 'overdue'})
        assert response.status_code == 400

    def test_delete(self, client, desk_headers, create_payable):
        payable = create_payable().get_json()['payable']
        assert client.delete(f"{ENDPOINT}/{payable['id']}", headers=desk_headers).status_code == 200
        assert client.get(f"{ENDPOINT}/{payable['id']}", headers=desk_headers).status_code == 404

    def test_other_clinic_bill_is_not_found(self, client, desk_headers, foreign_payable):
        payable_id = foreign_payable.id
        url = f'{ENDPOINT}/{payable_id}'

        assert client.get(url, headers=desk_headers).status_code == 404
        assert client.put(url, headers=desk_headers, json={'amount': 1}).status_code == 404
        assert client.delete(url, headers=desk_headers).status_code == 404
        assert Payable.query.filter_by(id=payable_id).first().amount == 3000.0

    def test_practitioner_has_no_access(self, client, clinic_a, practitioner_a, make_user, headers_for):
        user = make_user(clinic_a, 'practitioner', 'ana@clinic-a.com', practitioner_id=practitioner_a.id)
        assert client.get(ENDPOINT, headers=headers_for(user)).status_code == 403
