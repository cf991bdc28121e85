from datetime import datetime, timedelta
from flask import request, jsonify
from sqlalchemy import func
from odontoclinic.extensions import db
from odontoclinic.models.appointment_models import Appointment
from odontoclinic.models.payment_models import Payment, PAYMENT_METHODS, PAYMENT_STATUSES, MAX_INSTALLMENTS
from odontoclinic.utils.identifier_util import resolve_patient_id
from odontoclinic.utils.request_util import get_pagination, paginate, parse_date
from odontoclinic.utils.tenant_context import get_current_principal

# A payment in one of these states can no longer be edited
CLOSED_STATUSES = ('paid', 'cancelled')


def _find_payment(payment_id, clinic_id):
    return Payment.query.filter_by(id=payment_id, clinica_id=clinic_id).first()


def _validate(data, partial=False):
    """Returns ``(cleaned, error)`` for the editable payment fields."""
    cleaned = {}
    if not partial or 'amount' in data:
        try:
            cleaned['amount'] = float(data.get('amount'))
        except (TypeError, ValueError):
            return None, 'amount must be a number'
        if cleaned['amount'] <= 0:
            return None, 'amount must be positive'
    if not partial or 'method' in data:
        if data.get('method') not in PAYMENT_METHODS:
            return None, f"method must be one of: {', '.join(PAYMENT_METHODS)}"
        cleaned['method'] = data['method']
    if 'installments' in data:
        try:
            cleaned['installments'] = int(data['installments'])
        except (TypeError, ValueError):
            return None, 'installments must be an integer'
        if not 1 <= cleaned['installments'] <= MAX_INSTALLMENTS:
            return None, f'installments must be between 1 and {MAX_INSTALLMENTS}'
    if 'due_date' in data:
        try:
            cleaned['due_date'] = parse_date(data['due_date']) if data['due_date'] else None
        except (TypeError, ValueError):
            return None, 'due_date must be formatted as YYYY-MM-DD'
    if 'notes' in data:
        cleaned['notes'] = data['notes']
    return cleaned, None


def list_payments():
    """Lists payments with filters, plus received and pending totals for the same filters."""
    principal = get_current_principal()
    page, limit = get_pagination(request.args)
    filters = [Payment.clinica_id == principal.clinic_id]

    status = request.args.get('status')
    if status:
        if status not in PAYMENT_STATUSES:
            return jsonify({'error': 'Invalid status'}), 400
        filters.append(Payment.status == status)
    method = request.args.get('method')
    if method:
        filters.append(Payment.method == method)
    try:
        if request.args.get('start_date'):
            filters.append(Payment.created_at >= datetime.combine(
                parse_date(request.args['start_date']), datetime.min.time()))
        if request.args.get('end_date'):
            filters.append(Payment.created_at < datetime.combine(
                parse_date(request.args['end_date']), datetime.min.time()) + timedelta(days=1))
    except ValueError:
        return jsonify({'error': 'Dates must be formatted as YYYY-MM-DD'}), 400

    if request.args.get('patient'):
        patient_id = resolve_patient_id(request.args['patient'], principal.clinic_id)
        if patient_id is None:
            return jsonify({'error': 'Resource not found'}), 404
        filters.append(Payment.appointment_id.in_(
            db.select(Appointment.id).where(
                Appointment.patient_id == patient_id,
                Appointment.clinica_id == principal.clinic_id,
            )
        ))

    query = Payment.query.filter(*filters)
    payments, total, total_pages = paginate(query.order_by(Payment.created_at.desc()), page, limit)

    totals = dict(
        db.session.query(Payment.status, func.coalesce(func.sum(Payment.amount), 0))
        .filter(*filters)
        .group_by(Payment.status)
        .all()
    )
    return jsonify({
        'payments': [payment.to_dict() for payment in payments],
        'total': total,
        'page': page,
        'total_pages': total_pages,
        'total_received': round(float(totals.get('paid', 0)), 2),
        'total_pending': round(float(totals.get('pending', 0)), 2),
    }), 200


def get_payment(payment_id):
    principal = get_current_principal()
    payment = _find_payment(payment_id, principal.clinic_id)
    if not payment:
        return jsonify({'error': 'Resource not found'}), 404
    return jsonify(payment.to_dict()), 200


def create_payment():
    principal = get_current_principal()
    data = request.get_json(silent=True) or {}

    if not data.get('appointment_id'):
        return jsonify({'error': 'Missing required field: appointment_id'}), 400
    cleaned, error = _validate(data)
    if error:
        return jsonify({'error': error}), 400

    appointment = Appointment.query.filter_by(id=data['appointment_id'], clinica_id=principal.clinic_id).first()
    if not appointment:
        return jsonify({'error': 'Resource not found'}), 404
    if appointment.status == 'cancelled':
        return jsonify({'error': 'Cannot charge a cancelled appointment'}), 400

    existing = Payment.query.filter(
        Payment.clinica_id == principal.clinic_id,
        Payment.appointment_id == appointment.id,
        Payment.status != 'cancelled',
    ).first()
    if existing:
        return jsonify({'error': 'This appointment already has an active payment'}), 409

    payment = Payment(clinica_id=principal.clinic_id, appointment_id=appointment.id, status='pending', **cleaned)
    db.session.add(payment)
    db.session.commit()
    return jsonify({'message': 'Payment created successfully', 'payment': payment.to_dict()}), 201


def update_payment(payment_id):
    principal = get_current_principal()
    payment = _find_payment(payment_id, principal.clinic_id)
    if not payment:
        return jsonify({'error': 'Resource not found'}), 404
    if payment.status in CLOSED_STATUSES:
        return jsonify({'error': f'A {payment.status} payment cannot be edited'}), 400

    cleaned, error = _validate(request.get_json(silent=True) or {}, partial=True)
    if error:
        return jsonify({'error': error}), 400
    for field, value in cleaned.items():
        setattr(payment, field, value)
    db.session.commit()
    return jsonify({'message': 'Payment updated successfully', 'payment': payment.to_dict()}), 200


def mark_paid(payment_id):
    principal = get_current_principal()
    payment = _find_payment(payment_id, principal.clinic_id)
    if not payment:
        return jsonify({'error': 'Resource not found'}), 404
    if payment.status != 'pending':
        return jsonify({'error': f'A {payment.status} payment cannot be marked as paid'}), 400

    payment.status = 'paid'
    payment.paid_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'message': 'Payment registered', 'payment': payment.to_dict()}), 200


def cancel_payment(payment_id):
    principal = get_current_principal()
    payment = _find_payment(payment_id, principal.clinic_id)
    if not payment:
        return jsonify({'error': 'Resource not found'}), 404
    if payment.status == 'cancelled':
        return jsonify({'error': 'Payment is already cancelled'}), 400

    payment.status = 'cancelled'
    db.session.commit()
    return jsonify({'message': 'Payment cancelled', 'payment': payment.to_dict()}), 200
