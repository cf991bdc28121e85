from datetime import datetime
from odontoclinic.extensions import db

# FDI two-digit notation: permanent quadrants 1-4 (teeth 1-8), deciduous 5-8 (teeth 1-5)
TOOTH_NUMBER_PATTERN = r'^([1-4][1-8]|[5-8][1-5])$'
TOOTH_STATUSES = (
    'healthy', 'decayed', 'filled', 'missing', 'extracted',
    'implant', 'crown', 'bridge', 'in_treatment',
)
SURFACES = ('mesial', 'distal', 'buccal', 'lingual', 'occlusal')
SURFACE_STATUSES = ('healthy', 'decayed', 'filled')


class OdontogramEntry(db.Model):
    """Current state of one tooth of a patient."""
    __tablename__ = 'odontogram_entries'
    __table_args__ = (
        db.UniqueConstraint('patient_id', 'tooth_number', name='uq_odontogram_patient_tooth'),
    )

    id = db.Column(db.Integer, primary_key=True)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)

    tooth_number = db.Column(db.String(2), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    surfaces = db.Column(db.JSON)
    notes = db.Column(db.Text)

    recorded_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    recorded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    patient = db.relationship('Patient', back_populates='odontogram_entries')

    def to_dict(self):
        return {
            'id': self.id,
            'tooth_number': self.tooth_number,
            'status': self.status,
            'surfaces': self.surfaces,
            'notes': self.notes,
            'recorded_by': self.recorded_by,
            'recorded_at': self.recorded_at.isoformat() if self.recorded_at else None,
        }
