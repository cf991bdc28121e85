from functools import wraps
from flask import request, current_app, jsonify, make_response
from sqlalchemy.exc import SQLAlchemyError
from odontoclinic.models.system_models import AuditLog
from odontoclinic.models.user_models import User
from odontoclinic.extensions import db
from odontoclinic.utils.tenant_context import get_current_principal


def public_endpoint(f):
    """Marks a view as reachable without a token (and without a principal)."""
    f.is_public = True
    return f


def refresh_token_endpoint(f):
    """Marks a view that expects a refresh token instead of an access token."""
    f.accepts_refresh_token = True
    return f


def audit_log(action, resource):
    """Logs user actions for LGPD accountability."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = get_current_principal()
            user_id = principal.user_id if principal else None
            clinic_id = principal.clinic_id if principal else None
            resource_id = kwargs.get('patient_ref') or kwargs.get('id')
            ip_address = request.remote_addr
            user_agent = request.headers.get('User-Agent')

            # Login attempts are identified by the e-mail they were made with
            if action == "USER_LOGIN" and request.is_json:
                data = request.get_json(silent=True)
                if data:
                    resource_id = data.get('email')

            try:
                # Use make_response to handle both Response objects and tuples.
                raw_response = f(*args, **kwargs)
                response = make_response(raw_response)

                success = response.status_code < 400
                details = f"Request successful. Status: {response.status_code}"

                log_entry = AuditLog(
                    user_id=user_id,
                    clinica_id=clinic_id,
                    action=action,
                    resource=resource,
                    resource_id=str(resource_id) if resource_id is not None else None,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    success=success,
                    details=details
                )
                db.session.add(log_entry)
                db.session.commit()
                current_app.audit_logger.info(
                    f"Action='{action}', Resource='{resource}', UserID='{user_id}', "
                    f"ClinicID='{clinic_id}', Success='{success}', Details='{details}'"
                )

                return response

            except Exception as e:
                # Discard whatever the failed view left in the session first
                db.session.rollback()
                details = f"An error occurred: {type(e).__name__}"
                log_entry = AuditLog(
                    user_id=user_id,
                    clinica_id=clinic_id,
                    action=action,
                    resource=resource,
                    resource_id=str(resource_id) if resource_id is not None else None,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    success=False,
                    details=details
                )
                try:
                    db.session.add(log_entry)
                    db.session.commit()
                except SQLAlchemyError as db_error:
                    current_app.audit_logger.error(f"Failed to log audit entry due to DB error: {db_error}")
                    db.session.rollback()

                current_app.audit_logger.error(
                    f"Action='{action}', Resource='{resource}', UserID='{user_id}', "
                    f"ClinicID='{clinic_id}', Success='False', Details='{details}'"
                )

                raise

        return decorated_function
    return decorator


def require_permission(resource, action):
    """Checks if the authenticated user has permission to perform an action on a resource."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = get_current_principal()
            if principal is None:
                return jsonify({'error': 'Authentication required'}), 401

            user = User.query.filter_by(id=principal.user_id).first()
            if not user or not user.is_active:
                return jsonify({'error': 'User not found or inactive'}), 403

            has_permission = any(
                p.resource == resource and p.action == action
                for p in user.role.permissions
            )

            if not has_permission:
                return jsonify({'error': 'Permission denied'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
