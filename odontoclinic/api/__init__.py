# /odontoclinic/api/__init__.py
from flask import Blueprint, current_app, g, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from odontoclinic.utils.tenant_context import Principal, reset_current_principal, set_current_principal

api_bp = Blueprint('api', __name__)


@api_bp.before_request
def attach_principal():
    """Verifies the JWT and attaches the caller's principal for this request."""
    if request.method == 'OPTIONS':
        return None
    view = current_app.view_functions.get(request.endpoint)
    if view is None or getattr(view, 'is_public', False):
        return None

    verify_jwt_in_request(refresh=getattr(view, 'accepts_refresh_token', False))
    principal = Principal.from_claims(get_jwt_identity(), get_jwt())
    if principal is None:
        return jsonify({'error': 'Token is missing tenant claims'}), 401
    g.principal_token = set_current_principal(principal)
    return None


@api_bp.teardown_request
def detach_principal(exc):
    token = g.pop('principal_token', None)
    if token is not None:
        reset_current_principal(token)


from odontoclinic.api import routes  # noqa: E402,F401
