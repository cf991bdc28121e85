from datetime import date
from flask import request, jsonify
from sqlalchemy import extract, or_
from odontoclinic.extensions import db
from odontoclinic.models.patient_models import Patient
from odontoclinic.utils.encryption_util import encryptor, only_digits
from odontoclinic.utils.identifier_util import get_patient_or_none
from odontoclinic.utils.request_util import get_pagination, paginate, parse_bool, parse_date, text_value
from odontoclinic.utils.tenant_context import get_current_principal

PATIENT_FIELDS = (
    'name', 'gender', 'phone', 'email', 'address', 'city', 'state', 'zip_code',
    'guardian_name', 'notes',
)


def _cpf_candidates(cpf_digits):
    """Stored forms a CPF may have: ciphertext, or legacy plaintext."""
    return [encryptor.encrypt(cpf_digits), cpf_digits]


def _apply_fields(patient, data):
    """Copies validated request fields onto ``patient``. Returns an error message or None."""
    for field in PATIENT_FIELDS:
        if field in data:
            try:
                setattr(patient, field, text_value(data[field]))
            except ValueError:
                return f'{field} must be a string'

    for field in ('cpf', 'guardian_cpf'):
        if field in data:
            value = data[field]
            if value in (None, ''):
                setattr(patient, field, None)
                continue
            if not isinstance(value, str):
                return f'{field} must be a string'
            digits = only_digits(value)
            if len(digits) != 11:
                return f'{field} must have 11 digits'
            setattr(patient, field, encryptor.encrypt(digits))

    if 'birth_date' in data:
        if data['birth_date']:
            try:
                patient.birth_date = parse_date(data['birth_date'])
            except (TypeError, ValueError):
                return 'birth_date must be formatted as YYYY-MM-DD'
        else:
            patient.birth_date = None
    return None


def _cpf_taken(clinic_id, cpf, exclude_id=None):
    if not cpf:
        return False
    query = Patient.query.filter(
        Patient.clinica_id == clinic_id,
        Patient.cpf.in_(_cpf_candidates(encryptor.decrypt(cpf))),
    )
    if exclude_id is not None:
        query = query.filter(Patient.id != exclude_id)
    # The pending change must not be flushed before it has been checked
    with db.session.no_autoflush:
        return query.first() is not None


def list_patients():
    """Lists the clinic's patients with pagination and search."""
    principal = get_current_principal()
    page, limit = get_pagination(request.args)
    search = (request.args.get('search') or '').strip()
    active = parse_bool(request.args.get('active'))

    query = Patient.query.filter(Patient.clinica_id == principal.clinic_id)
    if search:
        conditions = [Patient.name.ilike(f'%{search}%'), Patient.email.ilike(f'%{search}%')]
        # Ciphertext only supports equality, so CPF search matches whole numbers
        digits = only_digits(search)
        if len(digits) == 11:
            conditions.append(Patient.cpf.in_(_cpf_candidates(digits)))
        query = query.filter(or_(*conditions))
    if active is not None:
        query = query.filter(Patient.is_active == active)

    patients, total, total_pages = paginate(query.order_by(Patient.name), page, limit)
    return jsonify({
        'patients': [patient.to_dict() for patient in patients],
        'total': total,
        'page': page,
        'total_pages': total_pages,
    }), 200


def get_patient(patient_ref):
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(patient.to_dict()), 200


def create_patient():
    principal = get_current_principal()
    data = request.get_json(silent=True) or {}

    if not data.get('name'):
        return jsonify({'error': 'Missing required field: name'}), 400

    patient = Patient(clinica_id=principal.clinic_id, is_active=True)
    error = _apply_fields(patient, data)
    if error:
        return jsonify({'error': error}), 400

    if _cpf_taken(principal.clinic_id, patient.cpf):
        return jsonify({'error': 'A patient with this CPF already exists'}), 409

    db.session.add(patient)
    db.session.commit()
    return jsonify({'message': 'Patient created successfully', 'patient': patient.to_dict()}), 201


def update_patient(patient_ref):
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'name' in data and not data['name']:
        return jsonify({'error': 'Patient name cannot be empty'}), 400
    if 'uuid' in data and data['uuid'] != patient.uuid:
        return jsonify({'error': 'uuid cannot be changed'}), 400

    error = _apply_fields(patient, data)
    if error:
        db.session.rollback()
        return jsonify({'error': error}), 400
    if 'is_active' in data:
        patient.is_active = bool(data['is_active'])

    if 'cpf' in data and _cpf_taken(principal.clinic_id, patient.cpf, exclude_id=patient.id):
        db.session.rollback()
        return jsonify({'error': 'A patient with this CPF already exists'}), 409

    db.session.commit()
    return jsonify({'message': 'Patient updated successfully', 'patient': patient.to_dict()}), 200


def deactivate_patient(patient_ref):
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404
    patient.is_active = False
    db.session.commit()
    return jsonify({'message': 'Patient deactivated successfully'}), 200


def find_patient_by_cpf(cpf):
    """Equality lookup; matches both encrypted and legacy plaintext rows."""
    principal = get_current_principal()
    digits = only_digits(cpf or '')
    if len(digits) != 11:
        return jsonify({'error': 'CPF must have 11 digits'}), 400

    patient = Patient.query.filter(
        Patient.clinica_id == principal.clinic_id,
        Patient.cpf.in_(_cpf_candidates(digits)),
    ).first()
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(patient.to_dict()), 200


def _birthday_dict(patient):
    data = patient.to_summary_dict()
    data['birth_date'] = patient.birth_date.isoformat()
    data['phone'] = patient.phone
    return data


def list_birthdays():
    """Active patients whose birthday falls in ``month`` (default: current month)."""
    principal = get_current_principal()
    month = request.args.get('month', date.today().month, type=int)
    if not month or not 1 <= month <= 12:
        return jsonify({'error': 'month must be between 1 and 12'}), 400

    patients = (
        Patient.query
        .filter(
            Patient.clinica_id == principal.clinic_id,
            Patient.is_active.is_(True),
            Patient.birth_date.isnot(None),
            extract('month', Patient.birth_date) == month,
        )
        .order_by(extract('day', Patient.birth_date), Patient.name)
        .all()
    )
    return jsonify({
        'month': month,
        'patients': [_birthday_dict(patient) for patient in patients],
    }), 200
