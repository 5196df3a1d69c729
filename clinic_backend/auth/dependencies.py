from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from clinic_backend.auth import jwt_handler
from clinic_backend.auth.context import SessionContext, resolve_context
from clinic_backend.models.user import User
from clinic_backend.routes.common import get_db
from clinic_backend.scheduling.errors import SchedulingError

security = HTTPBearer()


def _decode(credentials: HTTPAuthorizationCredentials) -> dict:
    try:
        return jwt_handler.decode_access_token(credentials.credentials)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    payload = _decode(credentials)

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_session_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> SessionContext:
    user = get_current_user(credentials, db)
    payload = _decode(credentials)
    try:
        return resolve_context(user, payload.get("ctx"))
    except SchedulingError as exc:
        raise HTTPException(status_code=401 if exc.status_code == 400 else exc.status_code, detail=exc.detail) from exc
