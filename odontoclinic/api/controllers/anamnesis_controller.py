from flask import request, jsonify
from sqlalchemy import func
from odontoclinic.extensions import db
from odontoclinic.models.anamnesis_models import (
    AnamnesisQuestion, AnamnesisAnswer, ANSWER_TYPES, MAX_QUESTION_LENGTH
)
from odontoclinic.utils.identifier_util import get_patient_or_none
from odontoclinic.utils.request_util import parse_bool
from odontoclinic.utils.tenant_context import get_current_principal


def _find_question(question_id, clinic_id):
    return AnamnesisQuestion.query.filter_by(id=question_id, clinica_id=clinic_id).first()


def _ordered(query):
    return query.order_by(AnamnesisQuestion.position, AnamnesisQuestion.id)


def _validate_question(data, partial=False):
    if not partial or 'question' in data:
        question = data.get('question')
        if not isinstance(question, str) or not question.strip():
            return 'question is required'
        if len(question) > MAX_QUESTION_LENGTH:
            return f'question cannot exceed {MAX_QUESTION_LENGTH} characters'
    if 'answer_type' in data and data['answer_type'] not in ANSWER_TYPES:
        return f"answer_type must be one of: {', '.join(ANSWER_TYPES)}"
    if 'position' in data and data['position'] is not None:
        if isinstance(data['position'], bool) or not isinstance(data['position'], int) or data['position'] < 0:
            return 'position must be a non-negative integer'
    if 'is_active' in data and not isinstance(data['is_active'], bool):
        return 'is_active must be a boolean'
    return None


def list_questions():
    """Lists the clinic's questions; ``include_inactive=true`` also returns retired ones."""
    principal = get_current_principal()
    query = AnamnesisQuestion.query.filter_by(clinica_id=principal.clinic_id)
    if not parse_bool(request.args.get('include_inactive')):
        query = query.filter_by(is_active=True)
    return jsonify({'questions': [q.to_dict() for q in _ordered(query).all()]}), 200


def create_question():
    principal = get_current_principal()
    data = request.get_json(silent=True) or {}
    error = _validate_question(data)
    if error:
        return jsonify({'error': error}), 400

    position = data.get('position')
    if position is None:
        # New questions go to the end of the form
        last = (
            db.session.query(func.max(AnamnesisQuestion.position))
            .filter(AnamnesisQuestion.clinica_id == principal.clinic_id)
            .scalar()
        )
        position = (last or 0) + 1

    question = AnamnesisQuestion(
        clinica_id=principal.clinic_id,
        question=data['question'].strip(),
        answer_type=data.get('answer_type', 'text'),
        position=position,
        is_active=True,
    )
    db.session.add(question)
    db.session.commit()
    return jsonify({'message': 'Question created successfully', 'question': question.to_dict()}), 201


def update_question(question_id):
    principal = get_current_principal()
    question = _find_question(question_id, principal.clinic_id)
    if not question:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    error = _validate_question(data, partial=True)
    if error:
        return jsonify({'error': error}), 400

    if 'question' in data:
        question.question = data['question'].strip()
    if 'answer_type' in data:
        question.answer_type = data['answer_type']
    if data.get('position') is not None:
        question.position = data['position']
    if 'is_active' in data:
        question.is_active = data['is_active']
    db.session.commit()
    return jsonify({'message': 'Question updated successfully', 'question': question.to_dict()}), 200


def deactivate_question(question_id):
    """Retires a question. Answers already given are kept."""
    principal = get_current_principal()
    question = _find_question(question_id, principal.clinic_id)
    if not question:
        return jsonify({'error': 'Resource not found'}), 404
    question.is_active = False
    db.session.commit()
    return jsonify({'message': 'Question deactivated successfully'}), 200


def get_patient_anamnesis(patient_ref):
    """Active questions of the clinic plus the patient's answers, keyed by question id."""
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    questions = _ordered(
        AnamnesisQuestion.query.filter_by(clinica_id=principal.clinic_id, is_active=True)
    ).all()
    answers = AnamnesisAnswer.query.filter_by(patient_id=patient.id, clinica_id=principal.clinic_id).all()
    return jsonify({
        'patient': patient.to_summary_dict(),
        'questions': [q.to_dict() for q in questions],
        'answers': {str(a.question_id): a.value for a in answers},
    }), 200


def save_patient_anamnesis(patient_ref):
    """
    Records the patient's answers.

    Each item of ``answers`` is ``{"question_id": int, "value": str | null}``.
    Answers to questions of other clinics or unknown questions are skipped and
    listed under ``ignored``.
    """
    principal = get_current_principal()
    patient = get_patient_or_none(patient_ref, principal.clinic_id)
    if not patient:
        return jsonify({'error': 'Resource not found'}), 404

    data = request.get_json(silent=True) or {}
    items = data.get('answers')
    if not isinstance(items, list):
        return jsonify({'error': 'answers must be a list'}), 400
    for item in items:
        if not isinstance(item, dict):
            return jsonify({'error': 'Each answer must be an object'}), 400
        question_id = item.get('question_id')
        if isinstance(question_id, bool) or not isinstance(question_id, int) or question_id <= 0:
            return jsonify({'error': 'question_id must be a positive integer'}), 400
        if item.get('value') is not None and not isinstance(item['value'], str):
            return jsonify({'error': 'value must be a string or null'}), 400

    saved, ignored = 0, []
    for item in items:
        question = _find_question(item['question_id'], principal.clinic_id)
        if not question:
            ignored.append(item['question_id'])
            continue
        answer = AnamnesisAnswer.query.filter_by(
            patient_id=patient.id, question_id=question.id, clinica_id=principal.clinic_id
        ).first()
        if answer is None:
            answer = AnamnesisAnswer(clinica_id=principal.clinic_id, patient_id=patient.id, question_id=question.id)
            db.session.add(answer)
        answer.value = item.get('value')
        saved += 1

    db.session.commit()
    return jsonify({'message': 'Anamnesis saved', 'saved': saved, 'ignored': ignored}), 200
