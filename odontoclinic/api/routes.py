# /odontoclinic/api/routes.py
from flask import jsonify
from . import api_bp
from odontoclinic.extensions import limiter
from odontoclinic.utils.decorators import audit_log, require_permission, public_endpoint, refresh_token_endpoint
from .controllers import (
    auth_controller, user_controller, clinic_controller, patient_controller, practitioner_controller,
    procedure_controller, appointment_controller, odontogram_controller, payment_controller,
    anamnesis_controller, payable_controller
)


@api_bp.route('/health', methods=['GET'])
@public_endpoint
def health():
    return jsonify({'status': 'ok'}), 200


# --- Authentication Endpoints ---
@api_bp.route('/auth/login', methods=['POST'])
@public_endpoint
@limiter.limit("10 per minute")
@audit_log("USER_LOGIN", "authentication")
def login():
    return auth_controller.login_user()

@api_bp.route('/auth/register', methods=['POST'])
@require_permission('users', 'write')
@limiter.limit("10 per hour")
@audit_log("USER_REGISTRATION", "users")
def register():
    return auth_controller.register_user()

@api_bp.route('/auth/logout', methods=['POST'])
@audit_log("USER_LOGOUT", "authentication")
def logout():
    return auth_controller.logout_user()

@api_bp.route('/auth/refresh', methods=['POST'])
@refresh_token_endpoint
def refresh():
    return auth_controller.refresh_token()

@api_bp.route('/auth/change-password', methods=['POST'])
@audit_log("PASSWORD_CHANGE", "authentication")
def change_password():
    return auth_controller.change_user_password()


# --- User Endpoints ---
@api_bp.route('/users/me', methods=['GET'])
@audit_log("VIEW_OWN_PROFILE", "users")
def get_current_user_route():
    return user_controller.get_current_user_details()

@api_bp.route('/users', methods=['GET'])
@require_permission('users', 'read')
@audit_log("VIEW_ALL_USERS", "users")
def list_users_route():
    return user_controller.list_users()

@api_bp.route('/users/<int:id>/deactivate', methods=['POST'])
@require_permission('users', 'write')
@audit_log("DEACTIVATE_USER", "users")
def deactivate_user_route(id):
    return user_controller.set_user_active(id, False)

@api_bp.route('/users/<int:id>/activate', methods=['POST'])
@require_permission('users', 'write')
@audit_log("ACTIVATE_USER", "users")
def activate_user_route(id):
    return user_controller.set_user_active(id, True)


# --- Clinic Endpoints ---
@api_bp.route('/clinics', methods=['GET'])
@audit_log("VIEW_CLINICS", "clinics")
def list_clinics_route():
    return clinic_controller.list_clinics()

@api_bp.route('/clinics/<int:id>', methods=['GET'])
@audit_log("VIEW_CLINIC", "clinics")
def get_clinic_route(id):
    return clinic_controller.get_clinic(id)

@api_bp.route('/clinics/<int:id>', methods=['PUT'])
@require_permission('clinics', 'write')
@audit_log("UPDATE_CLINIC", "clinics")
def update_clinic_route(id):
    return clinic_controller.update_clinic(id)


# --- Patient Endpoints ---
@api_bp.route('/patients', methods=['GET'])
@require_permission('patients', 'read')
@audit_log("VIEW_ALL_PATIENTS", "patients")
def list_patients_route():
    return patient_controller.list_patients()

@api_bp.route('/patients', methods=['POST'])
@require_permission('patients', 'write')
@audit_log("PATIENT_REGISTRATION", "patients")
def create_patient_route():
    return patient_controller.create_patient()

@api_bp.route('/patients/birthdays', methods=['GET'])
@require_permission('patients', 'read')
@audit_log("VIEW_PATIENT_BIRTHDAYS", "patients")
def list_birthdays_route():
    return patient_controller.list_birthdays()

@api_bp.route('/patients/cpf/<cpf>', methods=['GET'])
@require_permission('patients', 'read')
@audit_log("LOOKUP_PATIENT_BY_CPF", "patients")
def find_patient_by_cpf_route(cpf):
    return patient_controller.find_patient_by_cpf(cpf)

@api_bp.route('/patients/<patient_ref>', methods=['GET'])
@require_permission('patients', 'read')
@audit_log("VIEW_PATIENT_DETAILS", "patients")
def get_patient_route(patient_ref):
    return patient_controller.get_patient(patient_ref)

@api_bp.route('/patients/<patient_ref>', methods=['PUT'])
@require_permission('patients', 'write')
@audit_log("UPDATE_PATIENT", "patients")
def update_patient_route(patient_ref):
    return patient_controller.update_patient(patient_ref)

@api_bp.route('/patients/<patient_ref>', methods=['DELETE'])
@require_permission('patients', 'write')
@audit_log("DEACTIVATE_PATIENT", "patients")
def deactivate_patient_route(patient_ref):
    return patient_controller.deactivate_patient(patient_ref)


# --- Practitioner Endpoints ---
@api_bp.route('/practitioners', methods=['GET'])
@require_permission('practitioners', 'read')
@audit_log("VIEW_ALL_PRACTITIONERS", "practitioners")
def list_practitioners_route():
    return practitioner_controller.list_practitioners()

@api_bp.route('/practitioners', methods=['POST'])
@require_permission('practitioners', 'write')
@audit_log("PRACTITIONER_REGISTRATION", "practitioners")
def create_practitioner_route():
    return practitioner_controller.create_practitioner()

@api_bp.route('/practitioners/<int:id>', methods=['GET'])
@require_permission('practitioners', 'read')
@audit_log("VIEW_PRACTITIONER", "practitioners")
def get_practitioner_route(id):
    return practitioner_controller.get_practitioner(id)

@api_bp.route('/practitioners/<int:id>', methods=['PUT'])
@require_permission('practitioners', 'write')
@audit_log("UPDATE_PRACTITIONER", "practitioners")
def update_practitioner_route(id):
    return practitioner_controller.update_practitioner(id)

@api_bp.route('/practitioners/<int:id>', methods=['DELETE'])
@require_permission('practitioners', 'write')
@audit_log("DEACTIVATE_PRACTITIONER", "practitioners")
def deactivate_practitioner_route(id):
    return practitioner_controller.deactivate_practitioner(id)


# --- Procedure Endpoints ---
@api_bp.route('/procedures', methods=['GET'])
@require_permission('procedures', 'read')
@audit_log("VIEW_ALL_PROCEDURES", "procedures")
def list_procedures_route():
    return procedure_controller.list_procedures()

@api_bp.route('/procedures', methods=['POST'])
@require_permission('procedures', 'write')
@audit_log("CREATE_PROCEDURE", "procedures")
def create_procedure_route():
    return procedure_controller.create_procedure()

@api_bp.route('/procedures/<int:id>', methods=['GET'])
@require_permission('procedures', 'read')
@audit_log("VIEW_PROCEDURE", "procedures")
def get_procedure_route(id):
    return procedure_controller.get_procedure(id)

@api_bp.route('/procedures/<int:id>', methods=['PUT'])
@require_permission('procedures', 'write')
@audit_log("UPDATE_PROCEDURE", "procedures")
def update_procedure_route(id):
    return procedure_controller.update_procedure(id)

@api_bp.route('/procedures/<int:id>/toggle', methods=['PATCH'])
@require_permission('procedures', 'write')
@audit_log("TOGGLE_PROCEDURE", "procedures")
def toggle_procedure_route(id):
    return procedure_controller.toggle_procedure(id)


# --- Appointment Endpoints ---
@api_bp.route('/appointments', methods=['GET'])
@require_permission('appointments', 'read')
@audit_log("VIEW_APPOINTMENTS", "appointments")
def list_appointments_route():
    return appointment_controller.list_appointments()

@api_bp.route('/appointments', methods=['POST'])
@require_permission('appointments', 'write')
@audit_log("CREATE_APPOINTMENT", "appointments")
def create_appointment_route():
    return appointment_controller.create_appointment()

@api_bp.route('/appointments/<int:id>', methods=['GET'])
@require_permission('appointments', 'read')
@audit_log("VIEW_APPOINTMENT", "appointments")
def get_appointment_route(id):
    return appointment_controller.get_appointment(id)

@api_bp.route('/appointments/<int:id>/status', methods=['PATCH'])
@require_permission('appointments', 'write')
@audit_log("UPDATE_APPOINTMENT_STATUS", "appointments")
def update_appointment_status_route(id):
    return appointment_controller.update_appointment_status(id)

@api_bp.route('/appointments/<int:id>/procedures', methods=['POST'])
@require_permission('appointments', 'write')
@audit_log("ADD_APPOINTMENT_PROCEDURE", "appointments")
def add_appointment_procedure_route(id):
    return appointment_controller.add_procedure(id)


# --- Odontogram Endpoints ---
@api_bp.route('/odontograms/<patient_ref>', methods=['GET'])
@require_permission('odontograms', 'read')
@audit_log("VIEW_ODONTOGRAM", "odontograms")
def get_chart_route(patient_ref):
    return odontogram_controller.get_chart(patient_ref)

@api_bp.route('/odontograms/<patient_ref>/statistics', methods=['GET'])
@require_permission('odontograms', 'read')
@audit_log("VIEW_ODONTOGRAM_STATISTICS", "odontograms")
def get_chart_statistics_route(patient_ref):
    return odontogram_controller.get_statistics(patient_ref)

@api_bp.route('/odontograms/<patient_ref>/teeth/<tooth_number>', methods=['GET'])
@require_permission('odontograms', 'read')
@audit_log("VIEW_TOOTH", "odontograms")
def get_tooth_route(patient_ref, tooth_number):
    return odontogram_controller.get_tooth(patient_ref, tooth_number)

@api_bp.route('/odontograms/<patient_ref>/teeth', methods=['POST'])
@require_permission('odontograms', 'write')
@audit_log("RECORD_TOOTH", "odontograms")
def upsert_tooth_route(patient_ref):
    return odontogram_controller.upsert_tooth(patient_ref)

@api_bp.route('/odontograms/<patient_ref>/bulk', methods=['POST'])
@require_permission('odontograms', 'write')
@audit_log("RECORD_ODONTOGRAM", "odontograms")
def bulk_upsert_route(patient_ref):
    return odontogram_controller.bulk_upsert(patient_ref)


# --- Payment Endpoints ---
@api_bp.route('/payments', methods=['GET'])
@require_permission('payments', 'read')
@audit_log("VIEW_PAYMENTS", "payments")
def list_payments_route():
    return payment_controller.list_payments()

@api_bp.route('/payments', methods=['POST'])
@require_permission('payments', 'write')
@audit_log("CREATE_PAYMENT", "payments")
def create_payment_route():
    return payment_controller.create_payment()

@api_bp.route('/payments/<int:id>', methods=['GET'])
@require_permission('payments', 'read')
@audit_log("VIEW_PAYMENT", "payments")
def get_payment_route(id):
    return payment_controller.get_payment(id)

@api_bp.route('/payments/<int:id>', methods=['PUT'])
@require_permission('payments', 'write')
@audit_log("UPDATE_PAYMENT", "payments")
def update_payment_route(id):
    return payment_controller.update_payment(id)

@api_bp.route('/payments/<int:id>/pay', methods=['POST'])
@require_permission('payments', 'write')
@audit_log("REGISTER_PAYMENT", "payments")
def pay_payment_route(id):
    return payment_controller.mark_paid(id)

@api_bp.route('/payments/<int:id>/cancel', methods=['POST'])
@require_permission('payments', 'write')
@audit_log("CANCEL_PAYMENT", "payments")
def cancel_payment_route(id):
    return payment_controller.cancel_payment(id)


# --- Anamnesis Endpoints ---
@api_bp.route('/anamnesis/questions', methods=['GET'])
@require_permission('anamnesis', 'read')
@audit_log("VIEW_ANAMNESIS_QUESTIONS", "anamnesis")
def list_anamnesis_questions_route():
    return anamnesis_controller.list_questions()

@api_bp.route('/anamnesis/questions', methods=['POST'])
@require_permission('anamnesis', 'write')
@audit_log("CREATE_ANAMNESIS_QUESTION", "anamnesis")
def create_anamnesis_question_route():
    return anamnesis_controller.create_question()

@api_bp.route('/anamnesis/questions/<int:id>', methods=['PUT'])
@require_permission('anamnesis', 'write')
@audit_log("UPDATE_ANAMNESIS_QUESTION", "anamnesis")
def update_anamnesis_question_route(id):
    return anamnesis_controller.update_question(id)

@api_bp.route('/anamnesis/questions/<int:id>', methods=['DELETE'])
@require_permission('anamnesis', 'write')
@audit_log("DEACTIVATE_ANAMNESIS_QUESTION", "anamnesis")
def deactivate_anamnesis_question_route(id):
    return anamnesis_controller.deactivate_question(id)

@api_bp.route('/anamnesis/patients/<patient_ref>', methods=['GET'])
@require_permission('anamnesis', 'read')
@audit_log("VIEW_PATIENT_ANAMNESIS", "anamnesis")
def get_patient_anamnesis_route(patient_ref):
    return anamnesis_controller.get_patient_anamnesis(patient_ref)

@api_bp.route('/anamnesis/patients/<patient_ref>', methods=['PUT'])
@require_permission('anamnesis', 'write')
@audit_log("SAVE_PATIENT_ANAMNESIS", "anamnesis")
def save_patient_anamnesis_route(patient_ref):
    return anamnesis_controller.save_patient_anamnesis(patient_ref)


# --- Accounts Payable Endpoints ---
@api_bp.route('/payables', methods=['GET'])
@require_permission('payables', 'read')
@audit_log("VIEW_PAYABLES", "payables")
def list_payables_route():
    return payable_controller.list_payables()

@api_bp.route('/payables', methods=['POST'])
@require_permission('payables', 'write')
@audit_log("CREATE_PAYABLE", "payables")
def create_payable_route():
    return payable_controller.create_payable()

@api_bp.route('/payables/<int:id>', methods=['GET'])
@require_permission('payables', 'read')
@audit_log("VIEW_PAYABLE", "payables")
def get_payable_route(id):
    return payable_controller.get_payable(id)

@api_bp.route('/payables/<int:id>', methods=['PUT'])
@require_permission('payables', 'write')
@audit_log("UPDATE_PAYABLE", "payables")
def update_payable_route(id):
    return payable_controller.update_payable(id)

@api_bp.route('/payables/<int:id>', methods=['DELETE'])
@require_permission('payables', 'write')
@audit_log("DELETE_PAYABLE", "payables")
def delete_payable_route(id):
    return payable_controller.delete_payable(id)
