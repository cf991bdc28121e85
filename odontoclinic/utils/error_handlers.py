# /odontoclinic/utils/error_handlers.py
from flask import jsonify, current_app
from sqlalchemy.exc import IntegrityError
from odontoclinic.extensions import db
from odontoclinic.utils.tenant_scope import TenantScopeError


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def rate_limited(error):
        return jsonify({'error': 'Too many requests'}), 429

    # Outside the caller's clinic is indistinguishable from nonexistent
    @app.errorhandler(TenantScopeError)
    def tenant_scope_violation(error):
        db.session.rollback()
        current_app.audit_logger.warning(f"Tenant scope violation: {error}")
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(IntegrityError)
    def integrity_error(error):
        db.session.rollback()
        return jsonify({'error': 'Duplicate record'}), 409

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        current_app.audit_logger.error(f"Internal server error: {str(error)}")
        return jsonify({'error': 'Internal server error'}), 500
