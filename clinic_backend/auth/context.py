"""Explicit session context: which portal a user is acting in for this session.

A user may be staff, a provider and a patient at once. The portal is chosen
once when the session starts, encoded in the token, and passed to every
service call instead of living in ambient state.
"""

from dataclasses import dataclass
from typing import Union

from clinic_backend.models.user import User
from clinic_backend.scheduling.errors import AccessDenied, ValidationFailed

ADMIN_ROLE = 'admin'
PROVIDER_ROLE = 'provider'
PATIENT_ROLE = 'patient'


@dataclass(frozen=True)
class PatientContext:
    user_id: int
    patient_id: int
    role: str = PATIENT_ROLE


@dataclass(frozen=True)
class ProviderContext:
    user_id: int
    provider_id: int
    role: str = PROVIDER_ROLE


@dataclass(frozen=True)
class AdminContext:
    user_id: int
    role: str = ADMIN_ROLE


SessionContext = Union[PatientContext, ProviderContext, AdminContext]


def available_roles(user: User) -> list[str]:
    roles = []
    if (user.role or '').strip().lower() == ADMIN_ROLE:
        roles.append(ADMIN_ROLE)
    if user.provider_id is not None:
        roles.append(PROVIDER_ROLE)
    if user.patient_id is not None:
        roles.append(PATIENT_ROLE)
    return roles


def resolve_context(user: User, role: str | None = None) -> SessionContext:
    """Build the context for ``role``; a single-role user may omit it."""
    roles = available_roles(user)
    if not roles:
        raise AccessDenied('This account has no portal access.')

    if role is None:
        if len(roles) > 1:
            raise ValidationFailed('Select a role for this session.')
        role = roles[0]

    role = role.strip().lower()
    if role not in roles:
        raise AccessDenied(f"This account cannot act as '{role}'.")

    if role == ADMIN_ROLE:
        return AdminContext(user_id=user.id)
    if role == PROVIDER_ROLE:
        return ProviderContext(user_id=user.id, provider_id=user.provider_id)
    return PatientContext(user_id=user.id, patient_id=user.patient_id)


def is_staff(context: SessionContext) -> bool:
    return isinstance(context, (AdminContext, ProviderContext))


def require_admin(context: SessionContext) -> AdminContext:
    if not isinstance(context, AdminContext):
        raise AccessDenied('Only clinic staff can manage blocks and schedules.')
    return context


def ensure_can_access(context: SessionContext, appointment) -> None:
    """Patients see their own appointments, providers theirs, admins all."""
    if isinstance(context, AdminContext):
        return
    if isinstance(context, ProviderContext) and appointment.provider_id == context.provider_id:
        return
    if isinstance(context, PatientContext) and appointment.patient_id == context.patient_id:
        return
    raise AccessDenied('You do not have access to this appointment.')
