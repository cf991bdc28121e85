# Importing every model registers it with the mapper registry, which the
# tenant scope walks to build its loader criteria.
from odontoclinic.models.clinic_models import Clinic
from odontoclinic.models.user_models import User, Role, Permission, role_permissions
from odontoclinic.models.patient_models import Patient
from odontoclinic.models.practitioner_models import Practitioner
from odontoclinic.models.procedure_models import Procedure
from odontoclinic.models.appointment_models import Appointment, AppointmentProcedure
from odontoclinic.models.odontogram_models import OdontogramEntry
from odontoclinic.models.payment_models import Payment
from odontoclinic.models.anamnesis_models import AnamnesisQuestion, AnamnesisAnswer
from odontoclinic.models.payable_models import Payable
from odontoclinic.models.system_models import AuditLog, RevokedToken
