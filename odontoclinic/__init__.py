import os
from flask import Flask
from odontoclinic.extensions import db, bcrypt, migrate, jwt, limiter, cors
from odontoclinic.utils.encryption_util import encryptor
from odontoclinic.utils.error_handlers import register_error_handlers
from odontoclinic.utils import tenant_scope
from odontoclinic.commands import register_commands
from config import config


def create_app(config_name=None):
    config_name = config_name or os.environ.get('FLASK_CONFIG', 'default')
    config_class = config[config_name]

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    cors.init_app(app, origins=app.config['ALLOWED_ORIGINS'], supports_credentials=True,
                  allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
                  methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'])

    # Initialize custom utilities
    encryptor.init_app(app)
    tenant_scope.init_app(app)

    # Initialize app with config
    config_class.init_app(app)

    # Register blueprints
    from odontoclinic.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # Register error handlers and commands
    register_error_handlers(app)
    register_commands(app)

    # JWT token blacklist checker
    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        from odontoclinic.models.system_models import RevokedToken
        jti = jwt_payload['jti']
        return RevokedToken.query.filter_by(jti=jti).first() is not None

    return app
