import click
from flask.cli import with_appcontext
from odontoclinic.extensions import db
from odontoclinic.models.clinic_models import Clinic
from odontoclinic.models.user_models import User, Role, Permission
from odontoclinic.utils.cpf_migration import MigrationPreconditionError, encrypt_legacy_cpfs

ROLES = [
    {'name': 'admin', 'description': 'Clinic administrator'},
    {'name': 'practitioner', 'description': 'Dentist access'},
    {'name': 'front_desk', 'description': 'Reception and billing access'},
    {'name': 'patient', 'description': 'Patient portal access'},
]

RESOURCES = ['clinics', 'users', 'patients', 'practitioners', 'procedures', 'appointments', 'odontograms', 'payments',
             'anamnesis', 'payables']

ROLE_GRANTS = {
    'practitioner': {
        'patients': ('read', 'write'),
        'appointments': ('read', 'write'),
        'odontograms': ('read', 'write'),
        'anamnesis': ('read', 'write'),
        'procedures': ('read',),
        'practitioners': ('read',),
    },
    'front_desk': {
        'patients': ('read', 'write'),
        'appointments': ('read', 'write'),
        'payments': ('read', 'write'),
        'practitioners': ('read',),
        'procedures': ('read',),
        'odontograms': ('read',),
        'anamnesis': ('read', 'write'),
        'payables': ('read', 'write'),
    },
    'patient': {
        'appointments': ('read',),
        'patients': ('read',),
    },
}


def seed_roles_and_permissions():
    """Creates the default roles and permissions. Safe to run repeatedly."""
    for role_data in ROLES:
        if not Role.query.filter_by(name=role_data['name']).first():
            db.session.add(Role(**role_data))

    for resource in RESOURCES:
        for action in ('read', 'write'):
            name = f'{action}_{resource}'
            if not Permission.query.filter_by(name=name).first():
                db.session.add(Permission(name=name, resource=resource, action=action))
    db.session.commit()

    all_permissions = Permission.query.all()
    Role.query.filter_by(name='admin').first().permissions = all_permissions
    for role_name, grants in ROLE_GRANTS.items():
        Role.query.filter_by(name=role_name).first().permissions = [
            p for p in all_permissions if p.action in grants.get(p.resource, ())
        ]
    db.session.commit()


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Initialize database with schema, roles and permissions."""
    db.create_all()
    seed_roles_and_permissions()
    click.echo("Database initialized successfully with roles and permissions!")


@click.command('create-clinic')
@click.option('--name', required=True, help='Clinic name')
@click.option('--cnpj', default=None, help='Clinic CNPJ (14 digits)')
@click.option('--admin-name', required=True)
@click.option('--admin-email', required=True)
@click.password_option('--admin-password')
@with_appcontext
def create_clinic_command(name, cnpj, admin_name, admin_email, admin_password):
    """Create a clinic together with its first admin user."""
    admin_role = Role.query.filter_by(name='admin').first()
    if not admin_role:
        raise click.ClickException("Roles are missing; run 'flask init-db' first.")
    email = admin_email.strip().lower()
    if User.query.filter_by(email=email).first():
        raise click.ClickException(f'A user with e-mail {email} already exists.')

    clinic = Clinic(name=name, cnpj=cnpj)
    admin = User(clinic=clinic, name=admin_name, email=email, role_id=admin_role.id)
    try:
        admin.set_password(admin_password)
    except ValueError as e:
        raise click.ClickException(str(e))

    db.session.add_all([clinic, admin])
    db.session.commit()
    click.echo(f"Clinic '{clinic.name}' created with id {clinic.id}; admin user {admin.email}.")


@click.command('encrypt-cpfs')
@click.option('--min-length', default=64, show_default=True,
              help='Minimum width the CPF columns must have before encrypting.')
@with_appcontext
def encrypt_cpfs_command(min_length):
    """Encrypt CPFs still stored as plaintext (one-shot, idempotent)."""
    try:
        updated, total = encrypt_legacy_cpfs(min_length=min_length)
    except MigrationPreconditionError as e:
        raise click.ClickException(f'{e}. Run the schema migration first.')
    click.echo(f"Done: {updated} of {total} patient(s) updated.")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_clinic_command)
    app.cli.add_command(encrypt_cpfs_command)
