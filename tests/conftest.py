"""
Global test fixtures for pytest.

Provides:
- an application built with the ``testing`` config and a fresh in-memory schema
- two clinics (A and B), each with an admin user
- token helpers per user, and a ``principal`` helper for data-layer tests
"""
from datetime import date

import pytest
from flask_jwt_extended import create_access_token, create_refresh_token

from odontoclinic import create_app
from odontoclinic.api.controllers.auth_controller import _token_claims
from odontoclinic.commands import seed_roles_and_permissions
from odontoclinic.extensions import db as _db
from odontoclinic.models.clinic_models import Clinic
from odontoclinic.models.patient_models import Patient
from odontoclinic.models.practitioner_models import Practitioner
from odontoclinic.models.procedure_models import Procedure
from odontoclinic.models.user_models import Role, User
from odontoclinic.utils.encryption_util import encryptor
from odontoclinic.utils.tenant_context import Principal, tenant_context

PASSWORD = 'Str0ng!Passw0rd#'


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        _db.create_all()
        seed_roles_and_permissions()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def make_user(app):
    """Creates a user directly (no principal attached)."""
    def _make_user(clinic, role, email, **kwargs):
        user = User(
            clinic=clinic,
            name=kwargs.pop('name', email.split('@')[0]),
            email=email,
            role_id=Role.query.filter_by(name=role).first().id,
            **kwargs
        )
        user.set_password(PASSWORD)
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make_user


@pytest.fixture
def make_patient(app):
    def _make_patient(clinic, name, cpf=None, encrypt=True, **kwargs):
        if cpf and encrypt:
            cpf = encryptor.encrypt(cpf)
        patient = Patient(clinica_id=clinic.id, name=name, cpf=cpf, **kwargs)
        _db.session.add(patient)
        _db.session.commit()
        return patient
    return _make_patient


@pytest.fixture
def make_practitioner(app):
    def _make_practitioner(clinic, name, license_number):
        practitioner = Practitioner(clinica_id=clinic.id, name=name, license_number=license_number)
        _db.session.add(practitioner)
        _db.session.commit()
        return practitioner
    return _make_practitioner


# ============================================================================
# Clinics and users
# ============================================================================

@pytest.fixture
def clinic_a(app):
    clinic = Clinic(name='Clinic A', cnpj='11111111000111')
    _db.session.add(clinic)
    _db.session.commit()
    return clinic


@pytest.fixture
def clinic_b(app):
    clinic = Clinic(name='Clinic B', cnpj='22222222000122')
    _db.session.add(clinic)
    _db.session.commit()
    return clinic


@pytest.fixture
def admin_a(clinic_a, make_user):
    return make_user(clinic_a, 'admin', 'admin@clinic-a.com')


@pytest.fixture
def admin_b(clinic_b, make_user):
    return make_user(clinic_b, 'admin', 'admin@clinic-b.com')


@pytest.fixture
def front_desk_a(clinic_a, make_user):
    return make_user(clinic_a, 'front_desk', 'desk@clinic-a.com')


@pytest.fixture
def practitioner_a(clinic_a, make_practitioner):
    return make_practitioner(clinic_a, 'Dr. Ana', 'CRO-SP-1001')


@pytest.fixture
def practitioner_b(clinic_b, make_practitioner):
    return make_practitioner(clinic_b, 'Dr. Bruno', 'CRO-RJ-2002')


@pytest.fixture
def patient_a(clinic_a, make_patient):
    return make_patient(clinic_a, 'Maria Silva', cpf='52998224725', birth_date=date(1990, 3, 14))


@pytest.fixture
def patient_b(clinic_b, make_patient):
    return make_patient(clinic_b, 'Joao Souza', cpf='11144477735')


@pytest.fixture
def procedure_a(clinic_a):
    procedure = Procedure(clinica_id=clinic_a.id, name='Restoration', price=200.0, duration_minutes=45)
    _db.session.add(procedure)
    _db.session.commit()
    return procedure


# ============================================================================
# Tokens and principals
# ============================================================================

def auth_headers(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def token_for(app):
    """Issues an access token carrying the same claims as /auth/login."""
    def _token_for(user, refresh=False):
        factory = create_refresh_token if refresh else create_access_token
        return factory(identity=str(user.id), additional_claims=_token_claims(user))
    return _token_for


@pytest.fixture
def headers_for(token_for):
    def _headers_for(user):
        return auth_headers(token_for(user))
    return _headers_for


@pytest.fixture
def principal(app):
    """``with principal(clinic, role=...)`` runs a block as that caller."""
    def _principal(clinic, role='admin', user_id=1, subject_id=None):
        return tenant_context(Principal(
            clinic_id=clinic.id, user_id=user_id, role=role, subject_id=subject_id
        ))
    return _principal
