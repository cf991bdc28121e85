from flask import request, jsonify
from odontoclinic.extensions import db
from odontoclinic.models.procedure_models import Procedure
from odontoclinic.utils.request_util import parse_bool
from odontoclinic.utils.tenant_context import get_current_principal


def _validate(data, partial=False):
    if not partial and (not data.get('name') or data.get('price') is None):
        return 'Missing required fields: name, price'
    if 'name' in data and not data['name']:
        return 'Procedure name cannot be empty'
    if 'price' in data:
        try:
            if float(data['price']) < 0:
                return 'price cannot be negative'
        except (TypeError, ValueError):
            return 'price must be a number'
    if 'duration_minutes' in data:
        try:
            if int(data['duration_minutes']) <= 0:
                return 'duration_minutes must be positive'
        except (TypeError, ValueError):
            return 'duration_minutes must be an integer'
    return None


def _apply(procedure, data):
    if 'name' in data:
        procedure.name = data['name']
    if 'description' in data:
        procedure.description = data['description']
    if 'price' in data:
        procedure.price = float(data['price'])
    if 'duration_minutes' in data:
        procedure.duration_minutes = int(data['duration_minutes'])


def list_procedures():
    principal = get_current_principal()
    query = Procedure.query.filter_by(clinica_id=principal.clinic_id)
    active = parse_bool(request.args.get('active'))
    if active is not None:
        query = query.filter_by(is_active=active)
    search = (request.args.get('search') or '').strip()
    if search:
        query = query.filter(Procedure.name.ilike(f'%{search}%'))
    procedures = query.order_by(Procedure.name).all()
    return jsonify({'procedures': [p.to_dict() for p in procedures]}), 200


def get_procedure(procedure_id):
    principal = get_current_principal()
    procedure = Procedure.query.filter_by(id=procedure_id, clinica_id=principal.clinic_id).first()
    if not procedure:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(procedure.to_dict()), 200


def create_procedure():
    principal = get_current_principal()
    data = request.get_json(silent=True) or {}
    error = _validate(data)
    if error:
        return jsonify({'error': error}), 400

    procedure = Procedure(clinica_id=principal.clinic_id, is_active=True)
    _apply(procedure, data)
    db.session.add(procedure)
    db.session.commit()
    return jsonify({'message': 'Procedure created successfully', 'procedure': procedure.to_dict()}), 201


def update_procedure(procedure_id):
    principal = get_current_principal()
    procedure = Procedure.query.filter_by(id=procedure_id, clinica_id=principal.clinic_id).first()
    if not procedure:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    error = _validate(data, partial=True)
    if error:
        return jsonify({'error': error}), 400
    _apply(procedure, data)
    db.session.commit()
    return jsonify({'message': 'Procedure updated successfully', 'procedure': procedure.to_dict()}), 200


def toggle_procedure(procedure_id):
    principal = get_current_principal()
    procedure = Procedure.query.filter_by(id=procedure_id, clinica_id=principal.clinic_id).first()
    if not procedure:
        return jsonify({'error': 'Resource not found'}), 404
    procedure.is_active = not procedure.is_active
    db.session.commit()
    return jsonify({'message': 'Procedure status updated', 'procedure': procedure.to_dict()}), 200
