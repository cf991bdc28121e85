# /odontoclinic/utils/cpf_migration.py
"""
One-shot encryption of legacy plaintext CPFs.

Runs offline (no principal attached), touches only rows still holding 11
plain digits, and commits once at the end, so it can be re-run safely.
"""
import logging

from sqlalchemy import inspect as sa_inspect

from odontoclinic.extensions import db
from odontoclinic.models.patient_models import Patient
from odontoclinic.utils.encryption_util import CPF_FIELDS, encryptor, is_plain_cpf

logger = logging.getLogger(__name__)

# Base64 of one or two AES blocks needs 24-44 characters; 64 leaves headroom
MIN_CIPHERTEXT_LENGTH = 64


class MigrationPreconditionError(Exception):
    """The schema is not ready to hold ciphertext."""


def check_column_widths(min_length=MIN_CIPHERTEXT_LENGTH):
    columns = {col['name']: col for col in sa_inspect(db.engine).get_columns(Patient.__tablename__)}
    for field in CPF_FIELDS:
        column = columns.get(field)
        if column is None:
            raise MigrationPreconditionError(f'Column patients.{field} does not exist')
        length = getattr(column['type'], 'length', None)
        # None means an unbounded type (TEXT, unsized VARCHAR)
        if length is not None and length < min_length:
            raise MigrationPreconditionError(
                f'Column patients.{field} is VARCHAR({length}); widen it to at least '
                f'{min_length} characters before encrypting'
            )


def encrypt_legacy_cpfs(min_length=MIN_CIPHERTEXT_LENGTH):
    """
    Encrypts every plaintext CPF in place.

    Returns ``(updated, total)``. Raises MigrationPreconditionError before
    reading any row if the columns are too narrow.
    """
    check_column_widths(min_length)

    patients = Patient.query.order_by(Patient.id).all()
    updated = 0
    try:
        for patient in patients:
            changed = False
            for field in CPF_FIELDS:
                value = getattr(patient, field)
                if is_plain_cpf(value):
                    setattr(patient, field, encryptor.encrypt(value))
                    changed = True
            if changed:
                updated += 1
                logger.info('Patient id=%s: CPF encrypted', patient.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info('CPF migration finished: %s of %s patient(s) updated', updated, len(patients))
    return updated, len(patients)
