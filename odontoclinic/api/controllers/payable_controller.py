from flask import request, jsonify
from odontoclinic.extensions import db
from odontoclinic.models.payable_models import Payable, PAYABLE_STATUSES
from odontoclinic.utils.request_util import get_pagination, paginate, parse_date, text_value
from odontoclinic.utils.tenant_context import get_current_principal


def _find_payable(payable_id, clinic_id):
    return Payable.query.filter_by(id=payable_id, clinica_id=clinic_id).first()


def _validate(data, partial=False):
    """Returns ``(cleaned, error)`` for the editable fields of a bill."""
    cleaned = {}
    if not partial or 'description' in data:
        description = data.get('description')
        if not isinstance(description, str) or not description.strip() or len(description) > 255:
            return None, 'description must be a non-empty string of up to 255 characters'
        cleaned['description'] = description.strip()
    if not partial or 'amount' in data:
        amount = data.get('amount')
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
            return None, 'amount must be a positive number'
        cleaned['amount'] = float(amount)
    if not partial or 'due_date' in data:
        try:
            cleaned['due_date'] = parse_date(data.get('due_date'))
        except (TypeError, ValueError):
            return None, 'due_date must be formatted as YYYY-MM-DD'
    if partial and 'status' in data:
        if data['status'] not in PAYABLE_STATUSES:
            return None, f"status must be one of: {', '.join(PAYABLE_STATUSES)}"
        cleaned['status'] = data['status']
    if partial and 'paid_on' in data:
        try:
            cleaned['paid_on'] = parse_date(data['paid_on']) if data['paid_on'] else None
        except (TypeError, ValueError):
            return None, 'paid_on must be formatted as YYYY-MM-DD'
    if 'notes' in data:
        try:
            cleaned['notes'] = text_value(data['notes'])
        except ValueError:
            return None, 'notes must be a string'
    return cleaned, None


def list_payables():
    """Lists bills by due date, with status and due-date range filters."""
    principal = get_current_principal()
    page, limit = get_pagination(request.args)
    query = Payable.query.filter(Payable.clinica_id == principal.clinic_id)

    status = request.args.get('status')
    if status:
        if status not in PAYABLE_STATUSES:
            return jsonify({'error': 'Invalid status'}), 400
        query = query.filter(Payable.status == status)
    try:
        if request.args.get('start_date'):
            query = query.filter(Payable.due_date >= parse_date(request.args['start_date']))
        if request.args.get('end_date'):
            query = query.filter(Payable.due_date <= parse_date(request.args['end_date']))
    except ValueError:
        return jsonify({'error': 'Dates must be formatted as YYYY-MM-DD'}), 400

    payables, total, total_pages = paginate(query.order_by(Payable.due_date, Payable.id), page, limit)
    return jsonify({
        'payables': [payable.to_dict() for payable in payables],
        'total': total,
        'page': page,
        'total_pages': total_pages,
    }), 200


def get_payable(payable_id):
    principal = get_current_principal()
    payable = _find_payable(payable_id, principal.clinic_id)
    if not payable:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(payable.to_dict()), 200


def create_payable():
    principal = get_current_principal()
    cleaned, error = _validate(request.get_json(silent=True) or {})
    if error:
        return jsonify({'error': error}), 400

    payable = Payable(clinica_id=principal.clinic_id, status='pending', **cleaned)
    db.session.add(payable)
    db.session.commit()
    return jsonify({'message': 'Bill created successfully', 'payable': payable.to_dict()}), 201


def update_payable(payable_id):
    principal = get_current_principal()
    payable = _find_payable(payable_id, principal.clinic_id)
    if not payable:
        return jsonify({'error': 'Resource not found'}), 404

    cleaned, error = _validate(request.get_json(silent=True) or {}, partial=True)
    if error:
        return jsonify({'error': error}), 400
    for field, value in cleaned.items():
        setattr(payable, field, value)
    db.session.commit()
    return jsonify({'message': 'Bill updated successfully', 'payable': payable.to_dict()}), 200


def delete_payable(payable_id):
    principal = get_current_principal()
    payable = _find_payable(payable_id, principal.clinic_id)
    if not payable:
        return jsonify({'error': 'Resource not found'}), 404
    db.session.delete(payable)
    db.session.commit()
    return jsonify({'message': 'Bill deleted successfully'}), 200
