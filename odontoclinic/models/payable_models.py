from datetime import datetime
from odontoclinic.extensions import db

PAYABLE_STATUSES = ('pending', 'paid', 'cancelled')


class Payable(db.Model):
    """Bill the clinic owes (rent, suppliers, lab work)."""
    __tablename__ = 'payables'

    id = db.Column(db.Integer, primary_key=True)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    paid_on = db.Column(db.Date)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'amount': self.amount,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'status': self.status,
            'paid_on': self.paid_on.isoformat() if self.paid_on else None,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
