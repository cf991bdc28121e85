from datetime import datetime
from flask import request, jsonify
from flask_jwt_extended import create_access_token, create_refresh_token, get_jwt
from odontoclinic.extensions import db
from odontoclinic.models.user_models import User, Role
from odontoclinic.models.practitioner_models import Practitioner
from odontoclinic.models.patient_models import Patient
from odontoclinic.models.system_models import RevokedToken
from odontoclinic.utils.tenant_context import Role as RoleName, get_current_principal


def _token_claims(user):
    # No PII in the token payload
    return {
        'role': user.role.name,
        'clinica_id': user.clinica_id,
        'subject_id': user.subject_id,
    }


def register_user():
    """Creates a user in the calling admin's clinic."""
    principal = get_current_principal()
    data = request.get_json(silent=True) or {}

    required_fields = ['name', 'email', 'password', 'role']
    if any(not data.get(field) for field in required_fields):
        return jsonify({'error': 'Missing required fields: name, email, password, role'}), 400

    email = data['email'].strip().lower()
    # E-mail is unique across clinics; this lookup is tenant scoped, the
    # constraint catches the rest as 409
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already exists'}), 409

    role = Role.query.filter_by(name=data['role']).first()
    if not role:
        return jsonify({'error': 'Invalid role'}), 400

    user = User(
        clinica_id=principal.clinic_id,
        name=data['name'],
        email=email,
        role_id=role.id,
        must_change_password=bool(data.get('must_change_password', False)),
    )

    if role.name == RoleName.PRACTITIONER:
        practitioner_id = data.get('practitioner_id')
        if not practitioner_id or not Practitioner.query.filter_by(
                id=practitioner_id, clinica_id=principal.clinic_id).first():
            return jsonify({'error': 'A valid practitioner_id is required for practitioner users'}), 400
        user.practitioner_id = practitioner_id
    elif role.name == RoleName.PATIENT:
        patient_id = data.get('patient_id')
        if not patient_id or not Patient.query.filter_by(
                id=patient_id, clinica_id=principal.clinic_id).first():
            return jsonify({'error': 'A valid patient_id is required for patient users'}), 400
        user.patient_id = patient_id

    try:
        user.set_password(data['password'])
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    db.session.add(user)
    db.session.commit()
    return jsonify({'message': 'User created successfully', 'user_id': user.id}), 201


def login_user():
    """Authenticates by e-mail and password and issues a token pair."""
    data = request.get_json(silent=True)
    if not data or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password required'}), 400

    email = str(data['email']).strip().lower()
    user = User.query.filter_by(email=email).first()

    if not user:
        return jsonify({'error': 'Invalid credentials'}), 401
    if user.account_locked and user.account_locked_until and datetime.utcnow() < user.account_locked_until:
        return jsonify({'error': 'Account locked due to multiple failed attempts'}), 423
    if not user.check_password(data['password']):
        return jsonify({'error': 'Invalid credentials'}), 401
    if not user.is_active:
        return jsonify({'error': 'Account deactivated'}), 403
    if user.password_expired():
        user.must_change_password = True
        db.session.commit()
        return jsonify({'error': 'Password expired. Please change your password.'}), 403

    claims = _token_claims(user)
    access_token = create_access_token(identity=str(user.id), additional_claims=claims)
    refresh_token = create_refresh_token(identity=str(user.id), additional_claims=claims)

    return jsonify({
        'access_token': access_token,
        'refresh_token': refresh_token,
        'user': user.to_dict(),
    }), 200


def logout_user():
    token = get_jwt()
    revoked_token = RevokedToken(
        jti=token['jti'],
        expires_at=datetime.utcfromtimestamp(token['exp']),
    )
    db.session.add(revoked_token)
    db.session.commit()
    return jsonify({'message': 'Successfully logged out'}), 200


def refresh_token():
    principal = get_current_principal()
    user = User.query.filter_by(id=principal.user_id).first()
    if not user or not user.is_active:
        return jsonify({'error': 'User not found or inactive'}), 403

    access_token = create_access_token(identity=str(user.id), additional_claims=_token_claims(user))
    return jsonify({'access_token': access_token}), 200


def change_user_password():
    principal = get_current_principal()
    user = User.query.filter_by(id=principal.user_id).first()
    data = request.get_json(silent=True) or {}

    if not data.get('current_password') or not data.get('new_password'):
        return jsonify({'error': 'Current and new passwords required'}), 400
    if not user or not user.check_password(data['current_password']):
        return jsonify({'error': 'Invalid current password'}), 401

    try:
        user.set_password(data['new_password'])
        user.must_change_password = False
        db.session.commit()
        return jsonify({'message': 'Password changed successfully'}), 200
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
