from flask import jsonify, request
from odontoclinic.extensions import db
from odontoclinic.models.user_models import User
from odontoclinic.utils.request_util import get_pagination, paginate
from odontoclinic.utils.tenant_context import get_current_principal


def get_current_user_details():
    principal = get_current_principal()
    user = User.query.filter_by(id=principal.user_id).first()
    if not user:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(user.to_dict()), 200


def list_users():
    principal = get_current_principal()
    page, limit = get_pagination(request.args)
    query = User.query.filter_by(clinica_id=principal.clinic_id).order_by(User.name)
    users, total, total_pages = paginate(query, page, limit)
    return jsonify({
        'users': [user.to_dict() for user in users],
        'total': total,
        'page': page,
        'total_pages': total_pages,
    }), 200


def set_user_active(user_id, active):
    principal = get_current_principal()
    user = User.query.filter_by(id=user_id, clinica_id=principal.clinic_id).first()
    if not user:
        return jsonify({'error': 'Resource not found'}), 404
    if user.id == principal.user_id and not active:
        return jsonify({'error': 'You cannot deactivate your own account'}), 400
    user.is_active = active
    db.session.commit()
    return jsonify({'message': 'User updated successfully', 'user': user.to_dict()}), 200
