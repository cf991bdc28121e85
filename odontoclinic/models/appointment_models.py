from datetime import datetime, timedelta
from odontoclinic.extensions import db

APPOINTMENT_STATUSES = ('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled')
APPOINTMENT_TYPES = ('consultation', 'follow_up', 'emergency')
DEFAULT_DURATION = 60
MAX_DURATION = 24 * 60


class Appointment(db.Model):
    """Model for storing appointment details between a practitioner and a patient."""
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)

    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    practitioner_id = db.Column(db.Integer, db.ForeignKey('practitioners.id'), nullable=False, index=True)

    starts_at = db.Column(db.DateTime, nullable=False, index=True)
    duration = db.Column(db.Integer, nullable=False, default=DEFAULT_DURATION)  # minutes
    appointment_type = db.Column(db.String(50), nullable=False, default='consultation')
    status = db.Column(db.String(50), nullable=False, default='scheduled')
    notes = db.Column(db.Text)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = db.relationship('Patient', back_populates='appointments')
    practitioner = db.relationship('Practitioner', back_populates='appointments')
    procedures = db.relationship(
        'AppointmentProcedure', back_populates='appointment', cascade='all, delete-orphan',
        order_by='AppointmentProcedure.id'
    )
    payments = db.relationship('Payment', back_populates='appointment', lazy='dynamic')

    @property
    def ends_at(self):
        return self.starts_at + timedelta(minutes=self.duration or DEFAULT_DURATION)

    def recompute_total(self):
        self.total_amount = round(sum(line.net_amount for line in self.procedures), 2)
        return self.total_amount

    def to_dict(self, include_procedures=False):
        data = {
            'id': self.id,
            'patient': self.patient.to_summary_dict() if self.patient else None,
            'practitioner': {
                'id': self.practitioner.id,
                'name': self.practitioner.name,
            } if self.practitioner else None,
            'starts_at': self.starts_at.isoformat(),
            'ends_at': self.ends_at.isoformat(),
            'duration': self.duration,
            'appointment_type': self.appointment_type,
            'status': self.status,
            'notes': self.notes,
            'total_amount': self.total_amount,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_procedures:
            data['procedures'] = [line.to_dict() for line in self.procedures]
        return data


class AppointmentProcedure(db.Model):
    """A procedure performed during an appointment, priced at booking time."""
    __tablename__ = 'appointment_procedures'

    id = db.Column(db.Integer, primary_key=True)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, index=True)
    procedure_id = db.Column(db.Integer, db.ForeignKey('procedures.id'), nullable=False)

    tooth_number = db.Column(db.String(2))
    amount = db.Column(db.Float, nullable=False)
    discount = db.Column(db.Float, nullable=False, default=0.0)  # percent
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    appointment = db.relationship('Appointment', back_populates='procedures')
    procedure = db.relationship('Procedure')

    @property
    def net_amount(self):
        return round(self.amount * (1 - (self.discount or 0) / 100.0), 2)

    def to_dict(self):
        return {
            'id': self.id,
            'procedure_id': self.procedure_id,
            'procedure_name': self.procedure.name if self.procedure else None,
            'tooth_number': self.tooth_number,
            'amount': self.amount,
            'discount': self.discount,
            'net_amount': self.net_amount,
            'notes': self.notes,
        }
