# /odontoclinic/utils/identifier_util.py
"""Resolves the patient references accepted by the API to internal keys."""
from typing import Optional

from odontoclinic.extensions import db
from odontoclinic.models.patient_models import Patient

# patients.id is a BIGINT-compatible key; larger values can never match
_MIN_ID = -(2 ** 63)
_MAX_ID = 2 ** 63 - 1


def parse_canonical_int(raw) -> Optional[int]:
    """Returns ``int(raw)`` only if ``raw`` is exactly its canonical spelling."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if str(value) == raw else None


def resolve_patient_id(raw, clinic_id) -> Optional[int]:
    """
    Maps a numeric id or a patient UUID to ``patients.id`` within ``clinic_id``.

    Returns None when nothing matches, including rows of other clinics.
    """
    if not raw or not isinstance(raw, str):
        return None

    numeric_id = parse_canonical_int(raw)
    if numeric_id is not None:
        if not _MIN_ID <= numeric_id <= _MAX_ID:
            return None
        condition = Patient.id == numeric_id
    else:
        condition = Patient.uuid == raw

    stmt = db.select(Patient.id).where(condition, Patient.clinica_id == clinic_id).limit(1)
    return db.session.execute(stmt).scalar_one_or_none()


def get_patient_or_none(raw, clinic_id) -> Optional[Patient]:
    """Resolves a reference and loads the patient row in one step."""
    patient_id = resolve_patient_id(raw, clinic_id)
    if patient_id is None:
        return None
    return Patient.query.filter_by(id=patient_id, clinica_id=clinic_id).first()
