"""
Tests for the tenant scope listeners and the request principal.

These run against the ORM directly, with a principal attached through
``tenant_context``, to show that scoping does not depend on routes adding
their own clinic filters.
"""
import threading
from datetime import datetime

import pytest
from sqlalchemy import delete, insert, text, update

from odontoclinic.models.appointment_models import Appointment
from odontoclinic.models.clinic_models import Clinic
from odontoclinic.models.patient_models import Patient
from odontoclinic.models.procedure_models import Procedure
from odontoclinic.utils.tenant_context import (
    Principal, Role, get_current_principal, set_current_principal, reset_current_principal, tenant_context
)
from odontoclinic.utils.tenant_scope import TenantScopeError


@pytest.fixture
def two_clinics(clinic_a, clinic_b, patient_a, patient_b):
    return {
        'a': clinic_a.id, 'b': clinic_b.id,
        'patient_a': patient_a.id, 'patient_b': patient_b.id,
    }


class TestReadScoping:

    def test_listing_only_returns_own_clinic(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            patients = Patient.query.all()
        assert [p.id for p in patients] == [two_clinics['patient_a']]

    def test_count_is_scoped(self, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            assert Patient.query.count() == 1
        assert Patient.query.count() == 2

    def test_direct_lookup_of_foreign_row_misses(self, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            assert Patient.query.filter_by(id=two_clinics['patient_b']).first() is None

    def test_explicit_foreign_filter_still_misses(self, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            found = Patient.query.filter_by(clinica_id=two_clinics['b']).all()
        assert found == []

    def test_clinic_table_shows_only_own_clinic(self, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            clinics = Clinic.query.all()
        assert [c.id for c in clinics] == [two_clinics['a']]

    def test_no_principal_means_unscoped(self, two_clinics):
        assert Patient.query.count() == 2
        assert Clinic.query.count() == 2


class TestRoleNarrowing:

    def test_patient_role_sees_only_own_record(self, principal, clinic_a, make_patient, two_clinics):
        other = make_patient(clinic_a, 'Other Patient', cpf='39053344705')
        own_id = two_clinics['patient_a']
        other_id = other.id

        with principal(clinic_a, role=Role.PATIENT, subject_id=own_id):
            assert [p.id for p in Patient.query.all()] == [own_id]
            assert Patient.query.filter_by(id=other_id).first() is None

    def test_practitioner_role_sees_only_own_appointments(
            self, db, principal, clinic_a, make_practitioner, patient_a):
        dr_one = make_practitioner(clinic_a, 'Dr. One', 'CRO-1')
        dr_two = make_practitioner(clinic_a, 'Dr. Two', 'CRO-2')
        for practitioner in (dr_one, dr_two):
            db.session.add(Appointment(
                clinica_id=clinic_a.id, patient_id=patient_a.id,
                practitioner_id=practitioner.id, starts_at=datetime(2030, 1, 10, 9, 0),
            ))
        db.session.commit()
        dr_one_id = dr_one.id

        with principal(clinic_a, role=Role.PRACTITIONER, subject_id=dr_one_id):
            appointments = Appointment.query.all()
        assert [a.practitioner_id for a in appointments] == [dr_one_id]

    def test_unlinked_practitioner_sees_no_appointments(
            self, db, principal, clinic_a, practitioner_a, patient_a):
        db.session.add(Appointment(
            clinica_id=clinic_a.id, patient_id=patient_a.id,
            practitioner_id=practitioner_a.id, starts_at=datetime(2030, 1, 10, 9, 0),
        ))
        db.session.commit()
        # User ids and practitioner ids share values here; neither may stand in for the other
        user_id = practitioner_a.id

        with principal(clinic_a, role=Role.PRACTITIONER, user_id=user_id):
            assert Appointment.query.all() == []
            assert Appointment.query.count() == 0

    def test_unlinked_patient_cannot_write_narrowed_rows(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a, role=Role.PATIENT, user_id=two_clinics['patient_a']):
            assert Patient.query.all() == []
            db.session.add(Patient(name='Unlinked'))
            with pytest.raises(TenantScopeError):
                db.session.flush()
            db.session.rollback()

    def test_admin_is_not_narrowed(self, principal, clinic_a, make_patient, two_clinics):
        make_patient(clinic_a, 'Other Patient', cpf='39053344705')
        with principal(clinic_a, role=Role.ADMIN):
            assert Patient.query.count() == 2


class TestWriteScoping:

    def test_new_rows_are_stamped_with_caller_clinic(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            patient = Patient(name='Stamped')
            db.session.add(patient)
            db.session.commit()
            patient_id = patient.id
        assert Patient.query.filter_by(id=patient_id).first().clinica_id == two_clinics['a']

    def test_writing_a_row_for_another_clinic_is_refused(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            db.session.add(Patient(name='Intruder', clinica_id=two_clinics['b']))
            with pytest.raises(TenantScopeError):
                db.session.flush()
            db.session.rollback()
        assert Patient.query.filter_by(name='Intruder').first() is None

    def test_moving_a_row_to_another_clinic_is_refused(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            patient = Patient.query.filter_by(id=two_clinics['patient_a']).first()
            patient.clinica_id = two_clinics['b']
            with pytest.raises(TenantScopeError):
                db.session.flush()
            db.session.rollback()

    def test_creating_a_clinic_under_a_principal_is_refused(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            db.session.add(Clinic(name='Rogue Clinic'))
            with pytest.raises(TenantScopeError):
                db.session.flush()
            db.session.rollback()

    def test_bulk_update_only_touches_own_clinic(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            db.session.execute(update(Patient).values(notes='touched'))
            db.session.commit()
        db.session.expire_all()

        assert Patient.query.filter_by(id=two_clinics['patient_a']).first().notes == 'touched'
        assert Patient.query.filter_by(id=two_clinics['patient_b']).first().notes is None

    def test_bulk_delete_only_touches_own_clinic(self, db, principal, clinic_a, clinic_b, two_clinics):
        db.session.add_all([
            Procedure(clinica_id=two_clinics['a'], name='Cleaning', price=100.0),
            Procedure(clinica_id=two_clinics['b'], name='Cleaning', price=120.0),
        ])
        db.session.commit()

        with principal(clinic_a):
            db.session.execute(delete(Procedure))
            db.session.commit()

        remaining = Procedure.query.all()
        assert [p.clinica_id for p in remaining] == [two_clinics['b']]


class TestFailClosed:

    def test_textual_sql_is_refused(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            with pytest.raises(TenantScopeError):
                db.session.execute(text('SELECT * FROM patients'))
            db.session.rollback()

    def test_core_table_statement_is_refused(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            with pytest.raises(TenantScopeError):
                db.session.execute(Patient.__table__.select())
            db.session.rollback()

    def test_orm_bulk_insert_is_refused(self, db, principal, clinic_a, two_clinics):
        with principal(clinic_a):
            with pytest.raises(TenantScopeError):
                db.session.execute(insert(Patient), [{'name': 'Bulk', 'clinica_id': two_clinics['b']}])
            db.session.rollback()
        assert Patient.query.filter_by(name='Bulk').first() is None

    def test_textual_sql_allowed_without_principal(self, db, two_clinics):
        assert db.session.execute(text('SELECT COUNT(*) FROM patients')).scalar() == 2


class TestPrincipalContext:

    def test_from_claims(self):
        principal = Principal.from_claims('7', {'clinica_id': 3, 'role': 'practitioner', 'subject_id': 11})
        assert principal == Principal(clinic_id=3, user_id=7, role='practitioner', subject_id=11)
        assert principal.own_record_id == 11

    @pytest.mark.parametrize('identity, claims', [
        (None, {'clinica_id': 1, 'role': 'admin'}),
        ('1', {'role': 'admin'}),
        ('1', {'clinica_id': 1}),
        ('1', {'clinica_id': 1, 'role': 'superuser'}),
    ])
    def test_from_claims_rejects_incomplete_claims(self, identity, claims):
        assert Principal.from_claims(identity, claims) is None

    def test_narrowed_roles_need_a_linked_record(self):
        assert Principal(clinic_id=1, user_id=7, role=Role.PRACTITIONER).own_record_id is None
        assert Principal.from_claims('7', {'clinica_id': 1, 'role': 'practitioner'}) is None
        assert Principal.from_claims('7', {'clinica_id': 1, 'role': 'patient', 'subject_id': None}) is None
        assert Principal.from_claims('7', {'clinica_id': 1, 'role': 'front_desk'}).own_record_id is None

    def test_context_manager_restores_previous_principal(self):
        outer = Principal(clinic_id=1, user_id=1, role='admin')
        inner = Principal(clinic_id=2, user_id=2, role='admin')
        with tenant_context(outer):
            with tenant_context(inner):
                assert get_current_principal() == inner
            assert get_current_principal() == outer
        assert get_current_principal() is None

    def test_principal_is_isolated_per_thread(self):
        barrier = threading.Barrier(2)
        seen = {}

        def worker(clinic_id):
            token = set_current_principal(Principal(clinic_id=clinic_id, user_id=clinic_id, role='admin'))
            try:
                # Both threads hold a principal at the same time here
                barrier.wait(timeout=5)
                seen[clinic_id] = get_current_principal().clinic_id
            finally:
                reset_current_principal(token)

        threads = [threading.Thread(target=worker, args=(clinic_id,)) for clinic_id in (1, 2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert seen == {1: 1, 2: 2}
        assert get_current_principal() is None
