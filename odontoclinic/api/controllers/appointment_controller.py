import re
from datetime import datetime, timedelta
from flask import request, jsonify
from odontoclinic.extensions import db
from odontoclinic.models.appointment_models import (
    Appointment, AppointmentProcedure, APPOINTMENT_STATUSES, APPOINTMENT_TYPES, DEFAULT_DURATION, MAX_DURATION
)
from odontoclinic.models.practitioner_models import Practitioner
from odontoclinic.models.procedure_models import Procedure
from odontoclinic.models.odontogram_models import TOOTH_NUMBER_PATTERN
from odontoclinic.utils.identifier_util import get_patient_or_none, resolve_patient_id
from odontoclinic.utils.request_util import get_pagination, paginate, parse_date, parse_time, missing_fields
from odontoclinic.utils.tenant_context import Role, get_current_principal

# Appointments in these states no longer block the practitioner's agenda
NON_BLOCKING_STATUSES = ('cancelled', 'completed')
_TOOTH_RE = re.compile(TOOTH_NUMBER_PATTERN)


def _patient_ref(value):
    """Patient references arrive as UUID strings or numeric ids."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return value


def _find_appointment(appointment_id, clinic_id):
    return Appointment.query.filter_by(id=appointment_id, clinica_id=clinic_id).first()


def _has_conflict(clinic_id, practitioner_id, starts_at, ends_at):
    # No booking lasts longer than MAX_DURATION, so anything starting earlier has ended
    candidates = Appointment.query.filter(
        Appointment.clinica_id == clinic_id,
        Appointment.practitioner_id == practitioner_id,
        Appointment.status.notin_(NON_BLOCKING_STATUSES),
        Appointment.starts_at < ends_at,
        Appointment.starts_at > starts_at - timedelta(minutes=MAX_DURATION),
    ).all()
    return any(a.starts_at < ends_at and a.ends_at > starts_at for a in candidates)


def list_appointments():
    """Lists appointments, newest first, with date/patient/practitioner/status filters."""
    principal = get_current_principal()
    page, limit = get_pagination(request.args)
    query = Appointment.query.filter(Appointment.clinica_id == principal.clinic_id)

    try:
        if request.args.get('start_date'):
            start = datetime.combine(parse_date(request.args['start_date']), datetime.min.time())
            query = query.filter(Appointment.starts_at >= start)
        if request.args.get('end_date'):
            end = datetime.combine(parse_date(request.args['end_date']), datetime.min.time()) + timedelta(days=1)
            query = query.filter(Appointment.starts_at < end)
    except ValueError:
        return jsonify({'error': 'Dates must be formatted as YYYY-MM-DD'}), 400

    if request.args.get('patient'):
        patient_id = resolve_patient_id(request.args['patient'], principal.clinic_id)
        if patient_id is None:
            return jsonify({'error': 'Resource not found'}), 404
        query = query.filter(Appointment.patient_id == patient_id)
    practitioner_id = request.args.get('practitioner_id', type=int)
    if practitioner_id:
        query = query.filter(Appointment.practitioner_id == practitioner_id)
    status = request.args.get('status')
    if status:
        if status not in APPOINTMENT_STATUSES:
            return jsonify({'error': 'Invalid status'}), 400
        query = query.filter(Appointment.status == status)

    appointments, total, total_pages = paginate(query.order_by(Appointment.starts_at.desc()), page, limit)
    return jsonify({
        'appointments': [appointment.to_dict() for appointment in appointments],
        'total': total,
        'page': page,
        'total_pages': total_pages,
    }), 200


def get_appointment(appointment_id):
    principal = get_current_principal()
    appointment = _find_appointment(appointment_id, principal.clinic_id)
    if not appointment:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(appointment.to_dict(include_procedures=True)), 200


def create_appointment():
    """
    Books an appointment.

    The practitioner row is locked before the overlap check, so concurrent
    bookings for the same practitioner run one after the other and the
    second one sees the first.
    """
    principal = get_current_principal()
    data = request.get_json(silent=True) or {}

    if principal.role == Role.PRACTITIONER:
        if principal.own_record_id is None:
            return jsonify({'error': 'Permission denied'}), 403
        requested = data.get('practitioner_id', principal.own_record_id)
        if str(requested) != str(principal.own_record_id):
            return jsonify({'error': 'Practitioners can only book their own schedule'}), 403
        data['practitioner_id'] = principal.own_record_id

    missing = missing_fields(data, ['patient_id', 'practitioner_id', 'date', 'start_time'])
    if missing:
        return jsonify({'error': f"Missing required fields: {', '.join(missing)}"}), 400

    try:
        day = parse_date(data['date'])
        starts_at = datetime.combine(day, parse_time(data['start_time']))
        if data.get('end_time'):
            ends_at = datetime.combine(day, parse_time(data['end_time']))
            duration = int((ends_at - starts_at).total_seconds() // 60)
        else:
            duration = int(data.get('duration') or DEFAULT_DURATION)
    except (TypeError, ValueError):
        return jsonify({'error': 'Use date YYYY-MM-DD and times HH:MM'}), 400
    if duration <= 0:
        return jsonify({'error': 'Appointment must end after it starts'}), 400
    if duration > MAX_DURATION:
        return jsonify({'error': f'Appointments cannot last longer than {MAX_DURATION} minutes'}), 400
    ends_at = starts_at + timedelta(minutes=duration)

    appointment_type = data.get('appointment_type', 'consultation')
    if appointment_type not in APPOINTMENT_TYPES:
        return jsonify({'error': 'Invalid appointment_type'}), 400

    patient = get_patient_or_none(_patient_ref(data['patient_id']), principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404
    if not patient.is_active:
        return jsonify({'error': 'Patient is inactive'}), 400

    practitioner = (
        Practitioner.query
        .filter_by(id=data['practitioner_id'], clinica_id=principal.clinic_id)
        .with_for_update()
        .first()
    )
    if not practitioner:
        db.session.rollback()
        return jsonify({'error': 'Resource not found'}), 404
    if not practitioner.is_active:
        db.session.rollback()
        return jsonify({'error': 'Practitioner is inactive'}), 400

    if _has_conflict(principal.clinic_id, practitioner.id, starts_at, ends_at):
        db.session.rollback()
        return jsonify({'error': 'Time slot unavailable for this practitioner'}), 409

    appointment = Appointment(
        clinica_id=principal.clinic_id,
        patient_id=patient.id,
        practitioner_id=practitioner.id,
        starts_at=starts_at,
        duration=duration,
        appointment_type=appointment_type,
        status='scheduled',
        notes=data.get('notes'),
    )
    db.session.add(appointment)
    db.session.commit()
    return jsonify({'message': 'Appointment created successfully', 'appointment': appointment.to_dict()}), 201


def update_appointment_status(appointment_id):
    principal = get_current_principal()
    appointment = _find_appointment(appointment_id, principal.clinic_id)
    if not appointment:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in APPOINTMENT_STATUSES:
        return jsonify({'error': f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}"}), 400
    if appointment.status == 'cancelled' and status != 'cancelled':
        return jsonify({'error': 'A cancelled appointment cannot be reopened'}), 400

    appointment.status = status
    if 'notes' in data:
        appointment.notes = data['notes']
    db.session.commit()
    return jsonify({'message': 'Appointment status updated', 'appointment': appointment.to_dict()}), 200


def add_procedure(appointment_id):
    """Adds a procedure line and recomputes the appointment total."""
    principal = get_current_principal()
    appointment = _find_appointment(appointment_id, principal.clinic_id)
    if not appointment:
        return jsonify({'error': 'Resource not found'}), 404
    if appointment.status == 'cancelled':
        return jsonify({'error': 'Cannot add procedures to a cancelled appointment'}), 400

    data = request.get_json(silent=True) or {}
    if not data.get('procedure_id'):
        return jsonify({'error': 'Missing required field: procedure_id'}), 400
    procedure = Procedure.query.filter_by(id=data['procedure_id'], clinica_id=principal.clinic_id).first()
    if not procedure:
        return jsonify({'error': 'Resource not found'}), 404

    try:
        amount = float(data['amount']) if data.get('amount') is not None else procedure.price
        discount = float(data.get('discount') or 0)
    except (TypeError, ValueError):
        return jsonify({'error': 'amount and discount must be numbers'}), 400
    if amount <= 0:
        return jsonify({'error': 'amount must be positive'}), 400
    if not 0 <= discount <= 100:
        return jsonify({'error': 'discount must be a percentage between 0 and 100'}), 400

    tooth_number = data.get('tooth_number')
    if tooth_number is not None:
        tooth_number = str(tooth_number)
        if not _TOOTH_RE.match(tooth_number):
            return jsonify({'error': 'Invalid tooth number (use FDI notation, e.g. 11, 36, 85)'}), 400

    line = AppointmentProcedure(
        clinica_id=principal.clinic_id,
        procedure_id=procedure.id,
        tooth_number=tooth_number,
        amount=amount,
        discount=discount,
        notes=data.get('notes'),
    )
    appointment.procedures.append(line)
    appointment.recompute_total()
    db.session.commit()
    return jsonify({
        'message': 'Procedure added successfully',
        'appointment': appointment.to_dict(include_procedures=True),
    }), 201
