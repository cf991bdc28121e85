import uuid
from datetime import datetime
from sqlalchemy.orm import validates
from odontoclinic.extensions import db
from odontoclinic.utils.encryption_util import encryptor


def _new_uuid():
    return str(uuid.uuid4())


class Patient(db.Model):
    """
    Patient record. ``cpf`` and ``guardian_cpf`` hold deterministic ciphertext
    (or legacy plaintext until ``flask encrypt-cpfs`` has run).
    """
    __tablename__ = 'patients'
    __table_args__ = (
        db.UniqueConstraint('clinica_id', 'cpf', name='uq_patients_clinic_cpf'),
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, index=True, default=_new_uuid)
    clinica_id = db.Column(db.Integer, db.ForeignKey('clinics.id'), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    cpf = db.Column(db.String(128))
    birth_date = db.Column(db.Date)
    gender = db.Column(db.String(20))
    phone = db.Column(db.String(20))
    email = db.Column(db.String(255))
    address = db.Column(db.String(1024))
    city = db.Column(db.String(100))
    state = db.Column(db.String(2))
    zip_code = db.Column(db.String(9))

    guardian_name = db.Column(db.String(255))
    guardian_cpf = db.Column(db.String(128))

    notes = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    appointments = db.relationship('Appointment', back_populates='patient', lazy='dynamic')
    odontogram_entries = db.relationship('OdontogramEntry', back_populates='patient', lazy='dynamic')

    @validates('uuid')
    def _validate_uuid(self, key, value):
        if self.uuid is not None and value != self.uuid:
            raise ValueError("A patient's uuid cannot be changed")
        return value

    def to_dict(self):
        """Serializes the patient with its CPF fields decrypted."""
        return encryptor.decrypt_record({
            'id': self.id,
            'uuid': self.uuid,
            'name': self.name,
            'cpf': self.cpf,
            'birth_date': self.birth_date.isoformat() if self.birth_date else None,
            'gender': self.gender,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'zip_code': self.zip_code,
            'guardian_name': self.guardian_name,
            'guardian_cpf': self.guardian_cpf,
            'notes': self.notes,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        })

    def to_summary_dict(self):
        return encryptor.decrypt_record({
            'id': self.id,
            'uuid': self.uuid,
            'name': self.name,
            'cpf': self.cpf,
        })
