# /odontoclinic/utils/tenant_context.py
"""
Request-scoped principal.

The principal is kept in a ContextVar rather than on a module global, so two
requests interleaved on the same worker can never see each other's identity.
The API blueprint sets it in ``before_request`` and resets it in
``teardown_request``; offline jobs (CLI commands) run without one.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional


class Role:
    ADMIN = 'admin'
    PRACTITIONER = 'practitioner'
    FRONT_DESK = 'front_desk'
    PATIENT = 'patient'

    ALL = (ADMIN, PRACTITIONER, FRONT_DESK, PATIENT)


@dataclass(frozen=True)
class Principal:
    """Authenticated identity of one request. Never persisted."""
    clinic_id: int
    user_id: int
    role: str
    # Practitioner or patient record linked to the user, when there is one
    subject_id: Optional[int] = None

    @property
    def own_record_id(self) -> Optional[int]:
        """Linked practitioner or patient id; None when the user has no linked record."""
        return self.subject_id

    @classmethod
    def from_claims(cls, identity, claims):
        """Builds a principal from a verified JWT. Returns None if claims are incomplete."""
        clinic_id = claims.get('clinica_id')
        role = claims.get('role')
        if identity is None or clinic_id is None or role not in Role.ALL:
            return None
        subject_id = claims.get('subject_id')
        # Narrowed roles are meaningless without the record they narrow to
        if subject_id is None and role in (Role.PRACTITIONER, Role.PATIENT):
            return None
        return cls(
            clinic_id=int(clinic_id),
            user_id=int(identity),
            role=role,
            subject_id=int(subject_id) if subject_id is not None else None,
        )


_current_principal: ContextVar[Optional[Principal]] = ContextVar('current_principal', default=None)


def get_current_principal() -> Optional[Principal]:
    return _current_principal.get()


def set_current_principal(principal: Optional[Principal]):
    """Attaches a principal; returns the token needed to detach it."""
    return _current_principal.set(principal)


def reset_current_principal(token) -> None:
    _current_principal.reset(token)


@contextmanager
def tenant_context(principal: Optional[Principal]):
    """Runs a block as ``principal``, e.g. in CLI jobs and tests."""
    token = set_current_principal(principal)
    try:
        yield principal
    finally:
        reset_current_principal(token)
