from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from clinic_backend.auth import jwt_handler
from clinic_backend.auth.context import SessionContext, available_roles, resolve_context
from clinic_backend.auth.dependencies import get_current_user, get_session_context
from clinic_backend.models.user import User
from clinic_backend.scheduling.errors import SchedulingError

router = APIRouter()


class SessionRequest(BaseModel):
    role: str | None = None


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str


@router.get("/roles")
def list_roles(current_user: User = Depends(get_current_user)):
    return {"email": current_user.email, "roles": available_roles(current_user)}


@router.post("/session", response_model=SessionResponse)
def start_session(data: SessionRequest, current_user: User = Depends(get_current_user)):
    """Pick the portal for this session and get a token bound to it."""
    try:
        context = resolve_context(current_user, data.role)
    except SchedulingError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    token = jwt_handler.create_access_token(subject=current_user.email, role=context.role)
    return SessionResponse(access_token=token, role=context.role)


@router.get("/me")
def me(
    current_user: User = Depends(get_current_user),
    context: SessionContext = Depends(get_session_context),
):
    return {
        "email": current_user.email,
        "role": context.role,
        "roles": available_roles(current_user),
        "provider_id": getattr(context, "provider_id", None),
        "patient_id": getattr(context, "patient_id", None),
    }
