from datetime import datetime
from odontoclinic.extensions import db

ANSWER_TYPES = ('text', 'yes_no', 'date')
MAX_QUESTION_LENGTH = 500


class AnamnesisQuestion(db.Model):
    """Question of a clinic's anamnesis (medical history) form."""
    __tablename__ = 'anamnesis_questions'

    id = db.Column(db.Integer, primary_key=True)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)

    question = db.Column(db.String(MAX_QUESTION_LENGTH), nullable=False)
    answer_type = db.Column(db.String(20), nullable=False, default='text')
    position = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    answers = db.relationship('AnamnesisAnswer', back_populates='question', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'question': self.question,
            'answer_type': self.answer_type,
            'position': self.position,
            'is_active': self.is_active,
        }


class AnamnesisAnswer(db.Model):
    """A patient's answer to one anamnesis question."""
    __tablename__ = 'anamnesis_answers'
    __table_args__ = (
        db.UniqueConstraint('patient_id', 'question_id', name='uq_anamnesis_answers_patient_question'),
    )

    id = db.Column(db.Integer, primary_key=True)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('anamnesis_questions.id'), nullable=False)

    value = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    question = db.relationship('AnamnesisQuestion', back_populates='answers')
