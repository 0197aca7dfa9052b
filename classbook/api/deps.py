from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session
from ..core import security
from ..core.auth import AuthContext, resolve_auth_context
from ..core.errors import AuthorizationError, SchedulingError
from ..db.models import Profile, Role
from ..db.session import get_db


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_profile_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> int:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = security.decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc
    profile_id = payload.get("sub")
    if profile_id is None:
        raise credentials_exception
    try:
        profile = db.get(Profile, int(profile_id))
    except (TypeError, ValueError) as exc:
        raise credentials_exception from exc
    if profile is None:
        raise credentials_exception
    return profile.id


def require_roles(*roles: str):
    allowed = tuple(Role(role) for role in roles)

    def dependency(
        profile_id: Annotated[int, Depends(get_current_profile_id)],
        db: Annotated[Session, Depends(get_db)],
    ) -> AuthContext:
        try:
            return resolve_auth_context(db, profile_id, allowed)
        except AuthorizationError as exc:
            raise as_http_error(exc) from exc

    return dependency


def as_http_error(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.as_dict())
