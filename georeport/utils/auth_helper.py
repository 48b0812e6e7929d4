import uuid
from typing import Set

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from sqlmodel import Session, select

from georeport import config
from georeport.db.db import get_session
from georeport.models.enums import Permission
from georeport.models.profile import Profile
from georeport.models.role import Role, UserRole

bearer_scheme_required = HTTPBearer(auto_error=True)


def decode_token(token: str) -> dict:
    """Decode a bearer token; raises JWTError when invalid or expired."""
    return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])


def get_current_user_required(token: HTTPAuthorizationCredentials = Depends(bearer_scheme_required)):
    try:
        return decode_token(token.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_db_user(session: Session, current_user) -> Profile:
    try:
        user_id = uuid.UUID(str(current_user["sub"]))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = session.exec(
        select(Profile)
        .where(Profile.id == user_id)
        .where(Profile.deleted_at.is_(None))
    ).first()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user.asset is False:
        raise HTTPException(status_code=403, detail="User is inactive")

    return user


def get_active_user(
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
) -> Profile:
    return get_db_user(session, current_user)


def get_user_permissions(session: Session, user_id: uuid.UUID) -> Set[str]:
    """Union of the permissions of every active role linked to the user."""
    rows = session.exec(
        select(Role.permisos)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id)
        .where(UserRole.deleted_at.is_(None))
        .where(Role.deleted_at.is_(None))
        .where(Role.activo.is_(True))
    ).all()

    permissions: Set[str] = set()
    for permisos in rows:
        permissions.update(permisos or [])

    return permissions


def check_permission(session: Session, user: Profile, permission: Permission) -> None:
    if permission.value not in get_user_permissions(session, user.id):
        raise HTTPException(
            status_code=403,
            detail=f"Permission '{permission.value}' required",
        )


def require_permission(permission: Permission):
    def dependency(
        session: Session = Depends(get_session),
        user: Profile = Depends(get_active_user),
    ) -> Profile:
        check_permission(session, user, permission)
        return user

    return dependency
