from flask import request, jsonify
from odontoclinic.extensions import db
from odontoclinic.models.practitioner_models import Practitioner
from odontoclinic.utils.request_util import parse_bool, text_value
from odontoclinic.utils.tenant_context import get_current_principal

PRACTITIONER_FIELDS = ('name', 'license_number', 'specialty', 'phone', 'email')


def _text_fields(data):
    """Returns the practitioner text fields present in ``data``; raises ValueError on non-text values."""
    return {field: text_value(data[field]) for field in PRACTITIONER_FIELDS if field in data}


def _license_taken(license_number, exclude_id=None):
    # CRO numbers are unique nationwide; other clinics surface as a 409 from
    # the database constraint
    query = Practitioner.query.filter(Practitioner.license_number == license_number)
    if exclude_id is not None:
        query = query.filter(Practitioner.id != exclude_id)
    with db.session.no_autoflush:
        return query.first() is not None


def list_practitioners():
    principal = get_current_principal()
    query = Practitioner.query.filter_by(clinica_id=principal.clinic_id)
    active = parse_bool(request.args.get('active'))
    if active is not None:
        query = query.filter_by(is_active=active)
    practitioners = query.order_by(Practitioner.name).all()
    return jsonify({'practitioners': [p.to_dict() for p in practitioners]}), 200


def get_practitioner(practitioner_id):
    principal = get_current_principal()
    practitioner = Practitioner.query.filter_by(id=practitioner_id, clinica_id=principal.clinic_id).first()
    if not practitioner:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(practitioner.to_dict()), 200


def create_practitioner():
    principal = get_current_principal()
    try:
        fields = _text_fields(request.get_json(silent=True) or {})
    except ValueError:
        return jsonify({'error': 'Practitioner fields must be strings'}), 400

    if not fields.get('name') or not fields.get('license_number'):
        return jsonify({'error': 'Missing required fields: name, license_number'}), 400
    if _license_taken(fields['license_number']):
        return jsonify({'error': 'License number already registered'}), 409

    practitioner = Practitioner(clinica_id=principal.clinic_id, **fields)

    db.session.add(practitioner)
    db.session.commit()
    return jsonify({'message': 'Practitioner created successfully', 'practitioner': practitioner.to_dict()}), 201


def update_practitioner(practitioner_id):
    principal = get_current_principal()
    practitioner = Practitioner.query.filter_by(id=practitioner_id, clinica_id=principal.clinic_id).first()
    if not practitioner:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        fields = _text_fields(data)
    except ValueError:
        return jsonify({'error': 'Practitioner fields must be strings'}), 400
    for field in ('name', 'license_number'):
        if field in fields and not fields[field]:
            return jsonify({'error': f'{field} cannot be empty'}), 400
    if fields.get('license_number') and _license_taken(fields['license_number'], exclude_id=practitioner.id):
        return jsonify({'error': 'License number already registered'}), 409

    for field, value in fields.items():
        setattr(practitioner, field, value)
    if 'is_active' in data:
        practitioner.is_active = bool(data['is_active'])

    db.session.commit()
    return jsonify({'message': 'Practitioner updated successfully', 'practitioner': practitioner.to_dict()}), 200


def deactivate_practitioner(practitioner_id):
    principal = get_current_principal()
    practitioner = Practitioner.query.filter_by(id=practitioner_id, clinica_id=principal.clinic_id).first()
    if not practitioner:
        return jsonify({'error': 'Resource not found'}), 404
    practitioner.is_active = False
    db.session.commit()
    return jsonify({'message': 'Practitioner deactivated successfully'}), 200
