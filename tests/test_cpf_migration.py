"""Tests for the offline CPF encryption migration and its CLI command."""
import pytest

from odontoclinic.models.patient_models import Patient
from odontoclinic.utils.cpf_migration import MigrationPreconditionError, encrypt_legacy_cpfs
from odontoclinic.utils.encryption_util import encryptor

LEGACY_CPF = '52998224725'
GUARDIAN_CPF = '11144477735'


@pytest.fixture
def legacy_patients(clinic_a, clinic_b, make_patient):
    """One legacy plaintext row per clinic plus one already encrypted row."""
    return [
        make_patient(clinic_a, 'Legacy A', cpf=LEGACY_CPF, encrypt=False, guardian_cpf=GUARDIAN_CPF),
        make_patient(clinic_b, 'Legacy B', cpf=LEGACY_CPF, encrypt=False),
        make_patient(clinic_a, 'Encrypted A', cpf='39053344705'),
    ]


def _stored(db):
    db.session.expire_all()
    return {p.name: (p.cpf, p.guardian_cpf) for p in Patient.query.all()}


class TestEncryptLegacyCpfs:

    def test_encrypts_plaintext_rows(self, db, legacy_patients):
        updated, total = encrypt_legacy_cpfs()

        assert (updated, total) == (2, 3)
        stored = _stored(db)
        assert stored['Legacy A'] == (encryptor.encrypt(LEGACY_CPF), encryptor.encrypt(GUARDIAN_CPF))
        assert stored['Legacy B'][0] == encryptor.encrypt(LEGACY_CPF)

    def test_already_encrypted_rows_are_untouched(self, db, legacy_patients):
        before = _stored(db)['Encrypted A']
        encrypt_legacy_cpfs()
        assert _stored(db)['Encrypted A'] == before

    def test_second_run_is_a_no_op(self, db, legacy_patients):
        encrypt_legacy_cpfs()
        after_first = _stored(db)

        updated, _ = encrypt_legacy_cpfs()

        assert updated == 0
        assert _stored(db) == after_first

    def test_values_decrypt_back_to_original(self, db, legacy_patients):
        encrypt_legacy_cpfs()
        patient = Patient.query.filter_by(name='Legacy A').first()
        assert encryptor.decrypt(patient.cpf) == LEGACY_CPF
        assert encryptor.decrypt(patient.guardian_cpf) == GUARDIAN_CPF

    def test_narrow_column_aborts_before_touching_rows(self, db, legacy_patients):
        # patients.cpf is VARCHAR(128); demanding more simulates an unmigrated schema
        with pytest.raises(MigrationPreconditionError):
            encrypt_legacy_cpfs(min_length=256)
        assert _stored(db)['Legacy A'] == (LEGACY_CPF, GUARDIAN_CPF)


class TestEncryptCpfsCommand:

    def test_command_reports_progress(self, app, db, legacy_patients):
        result = app.test_cli_runner().invoke(args=['encrypt-cpfs'])

        assert result.exit_code == 0
        assert '2 of 3' in result.output

    def test_command_fails_on_precondition(self, app, db, legacy_patients):
        result = app.test_cli_runner().invoke(args=['encrypt-cpfs', '--min-length', '256'])

        assert result.exit_code != 0
        assert _stored(db)['Legacy B'][0] == LEGACY_CPF
