"""
Integration tests for the patient endpoints.

Covers CPF encryption at rest, legacy plaintext compatibility, reference
resolution and clinic isolation.
"""
from datetime import date

import pytest

from odontoclinic.models.patient_models import Patient
from odontoclinic.utils.encryption_util import encryptor

CPF = '39053344705'


@pytest.fixture
def admin_headers(admin_a, headers_for):
    return headers_for(admin_a)


class TestPatientCreate:

    endpoint = '/api/patients'

    def test_cpf_is_encrypted_at_rest(self, client, admin_headers, clinic_a):
        response = client.post(self.endpoint, headers=admin_headers, json={'name': 'Ana Lima', 'cpf': CPF})

        assert response.status_code == 201
        body = response.get_json()['patient']
        assert body['cpf'] == CPF
        assert len(body['uuid']) == 36

        stored = Patient.query.filter_by(id=body['id']).first()
        assert stored.cpf == encryptor.encrypt(CPF)
        assert stored.cpf != CPF
        assert stored.clinica_id == clinic_a.id

    def test_formatted_cpf_is_normalised(self, client, admin_headers):
        response = client.post(self.endpoint, headers=admin_headers, json={'name': 'Ana', 'cpf': '390.533.447-05'})
        assert response.status_code == 201
        assert response.get_json()['patient']['cpf'] == CPF

    def test_invalid_cpf_rejected(self, client, admin_headers):
        response = client.post(self.endpoint, headers=admin_headers, json={'name': 'Ana', 'cpf': '123'})
        assert response.status_code == 400

    @pytest.mark.parametrize('payload', [
        {'name': {'first': 'Ana'}},
        {'name': 'Ana', 'phone': ['11', '99999-0000']},
        {'name': 'Ana', 'notes': True},
        {'name': 'Ana', 'cpf': {'number': CPF}},
        {'name': 'Ana', 'cpf': 39053344705},
    ])
    def test_non_text_values_rejected(self, client, admin_headers, payload):
        response = client.post(self.endpoint, headers=admin_headers, json=payload)
        assert response.status_code == 400
        assert Patient.query.count() == 0

    def test_numeric_phone_is_stored_as_text(self, client, admin_headers):
        response = client.post(self.endpoint, headers=admin_headers, json={'name': 'Ana', 'phone': 11999990000})
        assert response.status_code == 201
        assert response.get_json()['patient']['phone'] == '11999990000'

    def test_name_required(self, client, admin_headers):
        response = client.post(self.endpoint, headers=admin_headers, json={'cpf': CPF})
        assert response.status_code == 400

    def test_duplicate_cpf_in_same_clinic_conflicts(self, client, admin_headers):
        client.post(self.endpoint, headers=admin_headers, json={'name': 'First', 'cpf': CPF})
        response = client.post(self.endpoint, headers=admin_headers, json={'name': 'Second', 'cpf': CPF})
        assert response.status_code == 409

    def test_duplicate_of_legacy_plaintext_cpf_conflicts(self, client, admin_headers, clinic_a, make_patient):
        make_patient(clinic_a, 'Legacy', cpf=CPF, encrypt=False)
        response = client.post(self.endpoint, headers=admin_headers, json={'name': 'New', 'cpf': CPF})
        assert response.status_code == 409

    def test_same_cpf_allowed_in_another_clinic(self, client, admin_headers, admin_b, headers_for):
        client.post(self.endpoint, headers=admin_headers, json={'name': 'In A', 'cpf': CPF})
        response = client.post(self.endpoint, headers=headers_for(admin_b), json={'name': 'In B', 'cpf': CPF})
        assert response.status_code == 201


class TestPatientRead:

    def test_get_by_uuid_and_by_id(self, client, admin_headers, patient_a):
        by_uuid = client.get(f'/api/patients/{patient_a.uuid}', headers=admin_headers)
        by_id = client.get(f'/api/patients/{patient_a.id}', headers=admin_headers)

        assert by_uuid.status_code == by_id.status_code == 200
        assert by_uuid.get_json() == by_id.get_json()
        assert by_uuid.get_json()['cpf'] == '52998224725'

    def test_other_clinic_patient_is_not_found(self, client, admin_headers, patient_b):
        assert client.get(f'/api/patients/{patient_b.uuid}', headers=admin_headers).status_code == 404
        assert client.get(f'/api/patients/{patient_b.id}', headers=admin_headers).status_code == 404

    def test_list_only_shows_own_clinic(self, client, admin_headers, patient_a, patient_b):
        response = client.get('/api/patients', headers=admin_headers)

        body = response.get_json()
        assert body['total'] == 1
        assert [p['id'] for p in body['patients']] == [patient_a.id]

    def test_legacy_plaintext_row_is_served_and_searchable(self, client, admin_headers, clinic_a, make_patient):
        legacy = make_patient(clinic_a, 'Legacy Patient', cpf=CPF, encrypt=False)

        listed = client.get(f'/api/patients?search={CPF}', headers=admin_headers).get_json()
        found = client.get(f'/api/patients/cpf/{CPF}', headers=admin_headers)

        assert [p['id'] for p in listed['patients']] == [legacy.id]
        assert listed['patients'][0]['cpf'] == CPF
        assert found.status_code == 200
        assert found.get_json()['id'] == legacy.id

    def test_cpf_lookup_matches_encrypted_row(self, client, admin_headers, patient_a):
        response = client.get('/api/patients/cpf/529.982.247-25', headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()['id'] == patient_a.id

    def test_cpf_lookup_does_not_cross_clinics(self, client, admin_headers, patient_b):
        response = client.get('/api/patients/cpf/11144477735', headers=admin_headers)
        assert response.status_code == 404

    def test_search_by_name(self, client, admin_headers, patient_a, clinic_a, make_patient):
        make_patient(clinic_a, 'Carlos Pereira')
        body = client.get('/api/patients?search=maria', headers=admin_headers).get_json()
        assert [p['name'] for p in body['patients']] == ['Maria Silva']

    def test_pagination(self, client, admin_headers, clinic_a, make_patient):
        for i in range(5):
            make_patient(clinic_a, f'Patient {i}')
        body = client.get('/api/patients?page=2&limit=2', headers=admin_headers).get_json()
        assert body['total'] == 5
        assert body['total_pages'] == 3
        assert [p['name'] for p in body['patients']] == ['Patient 2', 'Patient 3']

    def test_birthdays_of_month(self, client, admin_headers, patient_a, clinic_a, make_patient):
        make_patient(clinic_a, 'June Patient', birth_date=date(1985, 6, 2))
        body = client.get('/api/patients/birthdays?month=3', headers=admin_headers).get_json()
        assert [p['name'] for p in body['patients']] == ['Maria Silva']

    def test_birthdays_invalid_month(self, client, admin_headers):
        assert client.get('/api/patients/birthdays?month=13', headers=admin_headers).status_code == 400


class TestPatientUpdate:

    def test_update_fields(self, client, admin_headers, patient_a):
        response = client.put(f'/api/patients/{patient_a.uuid}', headers=admin_headers,
                              json={'phone': '11999990000', 'guardian_cpf': '11144477735'})

        assert response.status_code == 200
        body = response.get_json()['patient']
        assert body['phone'] == '11999990000'
        assert body['guardian_cpf'] == '11144477735'
        assert Patient.query.filter_by(id=patient_a.id).first().guardian_cpf == encryptor.encrypt('11144477735')

    def test_non_text_update_rejected_and_nothing_saved(self, client, admin_headers, patient_a):
        response = client.put(f'/api/patients/{patient_a.uuid}', headers=admin_headers,
                              json={'city': 'Campinas', 'phone': {'mobile': '11999990000'}})
        assert response.status_code == 400
        stored = Patient.query.filter_by(id=patient_a.id).first()
        assert stored.city is None
        assert stored.phone is None

    def test_uuid_cannot_change(self, client, admin_headers, patient_a):
        response = client.put(f'/api/patients/{patient_a.id}', headers=admin_headers,
                              json={'uuid': '00000000-0000-4000-8000-000000000000'})
        assert response.status_code == 400

    def test_update_other_clinic_patient_is_not_found(self, client, admin_headers, patient_b):
        response = client.put(f'/api/patients/{patient_b.uuid}', headers=admin_headers, json={'name': 'Hijacked'})
        assert response.status_code == 404
        assert Patient.query.filter_by(id=patient_b.id).first().name == 'Joao Souza'

    def test_deactivate(self, client, admin_headers, patient_a):
        response = client.delete(f'/api/patients/{patient_a.uuid}', headers=admin_headers)
        assert response.status_code == 200
        assert Patient.query.filter_by(id=patient_a.id).first().is_active is False


class TestPatientPortal:

    def test_patient_user_only_sees_own_record(self, client, clinic_a, patient_a, make_patient, make_user, headers_for):
        sibling = make_patient(clinic_a, 'Sibling', cpf=CPF)
        user = make_user(clinic_a, 'patient', 'maria@example.com', patient_id=patient_a.id)
        headers = headers_for(user)

        listed = client.get('/api/patients', headers=headers).get_json()
        assert [p['id'] for p in listed['patients']] == [patient_a.id]
        assert client.get(f'/api/patients/{sibling.uuid}', headers=headers).status_code == 404
        assert client.get(f'/api/patients/{patient_a.uuid}', headers=headers).status_code == 200

    def test_patient_user_cannot_write(self, client, clinic_a, patient_a, make_user, headers_for):
        user = make_user(clinic_a, 'patient', 'maria@example.com', patient_id=patient_a.id)
        response = client.post('/api/patients', headers=headers_for(user), json={'name': 'X'})
        assert response.status_code == 403
