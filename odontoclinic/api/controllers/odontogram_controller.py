import re
from datetime import datetime
from flask import request, jsonify
from sqlalchemy import func
from odontoclinic.extensions import db
from odontoclinic.models.odontogram_models import (
    OdontogramEntry, TOOTH_NUMBER_PATTERN, TOOTH_STATUSES, SURFACES, SURFACE_STATUSES
)
from odontoclinic.utils.identifier_util import get_patient_or_none
from odontoclinic.utils.tenant_context import get_current_principal

_TOOTH_RE = re.compile(TOOTH_NUMBER_PATTERN)


class ToothValidationError(ValueError):
    pass


def _validate_tooth(data):
    """Returns a cleaned ``(tooth_number, status, surfaces, notes)`` tuple."""
    tooth_number = data.get('tooth_number')
    if tooth_number is None or not _TOOTH_RE.match(str(tooth_number)):
        raise ToothValidationError('Invalid tooth number (use FDI notation, e.g. 11, 36, 85)')
    status = data.get('status')
    if status not in TOOTH_STATUSES:
        raise ToothValidationError(f"status must be one of: {', '.join(TOOTH_STATUSES)}")

    surfaces = data.get('surfaces')
    if surfaces is not None:
        if not isinstance(surfaces, dict):
            raise ToothValidationError('surfaces must be an object')
        for surface, surface_status in surfaces.items():
            if surface not in SURFACES:
                raise ToothValidationError(f'Unknown surface: {surface}')
            if surface_status not in SURFACE_STATUSES:
                raise ToothValidationError(f'Invalid status for surface {surface}')
    return str(tooth_number), status, surfaces or None, data.get('notes')


def _upsert(patient, principal, tooth_number, status, surfaces, notes):
    entry = OdontogramEntry.query.filter_by(
        patient_id=patient.id, tooth_number=tooth_number, clinica_id=principal.clinic_id
    ).first()
    if entry is None:
        entry = OdontogramEntry(
            clinica_id=principal.clinic_id,
            patient_id=patient.id,
            tooth_number=tooth_number,
        )
        db.session.add(entry)
    entry.status = status
    entry.surfaces = surfaces
    entry.notes = notes
    entry.recorded_by = principal.user_id
    entry.recorded_at = datetime.utcnow()
    return entry


def get_chart(patient_ref):
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    entries = (
        OdontogramEntry.query
        .filter_by(patient_id=patient.id, clinica_id=principal.clinic_id)
        .order_by(OdontogramEntry.tooth_number)
        .all()
    )
    return jsonify({
        'patient': patient.to_summary_dict(),
        'teeth': [entry.to_dict() for entry in entries],
    }), 200


def get_tooth(patient_ref, tooth_number):
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    entry = OdontogramEntry.query.filter_by(
        patient_id=patient.id, tooth_number=tooth_number, clinica_id=principal.clinic_id
    ).first()
    if not entry:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(entry.to_dict()), 200


def upsert_tooth(patient_ref):
    """Records the current state of one tooth, replacing any previous record."""
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    try:
        cleaned = _validate_tooth(request.get_json(silent=True) or {})
    except ToothValidationError as e:
        return jsonify({'error': str(e)}), 400

    entry = _upsert(patient, principal, *cleaned)
    db.session.commit()
    return jsonify(entry.to_dict()), 201


def bulk_upsert(patient_ref):
    """Records several teeth at once; invalid teeth are reported, the rest saved."""
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    teeth = data.get('teeth')
    if not isinstance(teeth, list) or not teeth:
        return jsonify({'error': 'teeth must be a non-empty list'}), 400

    saved, errors = [], []
    seen = set()
    for tooth in teeth:
        tooth = tooth if isinstance(tooth, dict) else {}
        try:
            cleaned = _validate_tooth(tooth)
        except ToothValidationError as e:
            errors.append({'tooth_number': tooth.get('tooth_number'), 'error': str(e)})
            continue
        if cleaned[0] in seen:
            errors.append({'tooth_number': cleaned[0], 'error': 'Tooth listed more than once'})
            continue
        seen.add(cleaned[0])
        saved.append(_upsert(patient, principal, *cleaned))

    db.session.commit()
    return jsonify({
        'message': 'Odontogram updated',
        'saved': [entry.to_dict() for entry in saved],
        'errors': errors,
    }), 201 if saved else 400


def get_statistics(patient_ref):
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    rows = (
        db.session.query(OdontogramEntry.status, func.count(OdontogramEntry.id))
        .filter(OdontogramEntry.patient_id == patient.id, OdontogramEntry.clinica_id == principal.clinic_id)
        .group_by(OdontogramEntry.status)
        .order_by(OdontogramEntry.status)
        .all()
    )
    return jsonify({
        'total_teeth': sum(count for _, count in rows),
        'statistics': [{'status': status, 'count': count} for status, count in rows],
    }), 200
