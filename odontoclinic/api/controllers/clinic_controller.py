from flask import jsonify, request
from odontoclinic.extensions import db
from odontoclinic.models.clinic_models import Clinic
from odontoclinic.utils.tenant_context import get_current_principal

UPDATABLE_FIELDS = ('name', 'cnpj', 'phone', 'address')


def list_clinics():
    """A caller only ever sees its own clinic."""
    principal = get_current_principal()
    clinics = Clinic.query.filter_by(id=principal.clinic_id).all()
    return jsonify({'clinics': [clinic.to_dict() for clinic in clinics]}), 200


def get_clinic(clinic_id):
    principal = get_current_principal()
    clinic = Clinic.query.filter_by(id=clinic_id).first()
    if not clinic or clinic.id != principal.clinic_id:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(clinic.to_dict()), 200


def update_clinic(clinic_id):
    principal = get_current_principal()
    clinic = Clinic.query.filter_by(id=clinic_id).first()
    if not clinic or clinic.id != principal.clinic_id:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'name' in data and not data['name']:
        return jsonify({'error': 'Clinic name cannot be empty'}), 400
    if data.get('cnpj'):
        cnpj = ''.join(c for c in str(data['cnpj']) if c.isdigit())
        if len(cnpj) != 14:
            return jsonify({'error': 'CNPJ must have 14 digits'}), 400
        data['cnpj'] = cnpj

    for field in UPDATABLE_FIELDS:
        if field in data:
            setattr(clinic, field, data[field])
    db.session.commit()
    return jsonify({'message': 'Clinic updated successfully', 'clinic': clinic.to_dict()}), 200
