from datetime import datetime
from odontoclinic.extensions import db

PAYMENT_STATUSES = ('pending', 'paid', 'cancelled')
PAYMENT_METHODS = ('cash', 'credit_card', 'debit_card', 'pix', 'transfer')
MAX_INSTALLMENTS = 12


class Payment(db.Model):
    """Charge raised against an appointment."""
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False)
    method = db.Column(db.String(20), nullable=False)
    installments = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(20), nullable=False, default='pending')
    due_date = db.Column(db.Date)
    paid_at = db.Column(db.DateTime)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    appointment = db.relationship('Appointment', back_populates='payments')

    def to_dict(self):
        appointment = self.appointment
        return {
            'id': self.id,
            'appointment_id': self.appointment_id,
            'amount': self.amount,
            'method': self.method,
            'installments': self.installments,
            'status': self.status,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'notes': self.notes,
            'patient': appointment.patient.to_summary_dict() if appointment and appointment.patient else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
