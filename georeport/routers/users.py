import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.enums import NotificationType, Permission
from georeport.models.profile import Profile
from georeport.models.role import Role, UserRole
from georeport.utils.auth_helper import (
    check_permission,
    get_active_user,
    get_user_permissions,
    require_permission,
)
from georeport.utils.bulk_actions import BulkActionType, BulkResult
from georeport.utils.form_validator import BulkActionRequest, ValidatedCreateProfile, ValidatedUpdateProfile
from georeport.utils.notifier import create_notification, get_subscription_manager, notify_deletion
from georeport.utils.realtime import NotificationSubscriptionManager
from georeport.utils.records import (
    apply_update,
    commit,
    get_live_or_404,
    list_live,
    record_insert,
    run_bulk,
    soft_delete,
    utcnow,
)

logger = get_logger(__name__)

router = APIRouter()

TABLE = "profiles"


class AssignRoleRequest(BaseModel):
    role_id: uuid.UUID


def _active_role_names(session: Session, user_id: uuid.UUID) -> List[str]:
    return list(session.exec(
        select(Role.nombre)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id)
        .where(UserRole.deleted_at.is_(None))
        .where(Role.deleted_at.is_(None))
        .order_by(Role.nombre)
    ).all())


@router.get("/me")
async def get_me(
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    return {
        "user": user,
        "display_name": user.display_name,
        "permissions": sorted(get_user_permissions(session, user.id)),
    }


@router.get("/", response_model=List[Profile])
async def get_users(
    only_active: bool = False,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_usuario)),
):
    users = list_live(session, Profile)
    if only_active:
        users = [u for u in users if u.asset]
    return users


@router.get("/{user_id}", response_model=Profile)
async def get_user(
    user_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_usuario)),
):
    return get_live_or_404(session, Profile, user_id, "User")


@router.post("/", response_model=Profile)
async def create_user(
    payload: ValidatedCreateProfile,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.crear_usuario)),
):
    existing = session.exec(select(Profile).where(Profile.email == payload.email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    profile = Profile(**payload.model_dump())

    record_insert(session, profile, TABLE, user.id)
    session.commit()
    session.refresh(profile)

    logger.info("User %s created by %s", profile.id, user.id)
    return profile


@router.patch("/{user_id}", response_model=Profile)
async def update_user(
    user_id: str,
    payload: ValidatedUpdateProfile,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    profile = get_live_or_404(session, Profile, user_id, "User")

    # Anyone may edit their own profile
    if profile.id != user.id:
        check_permission(session, user, Permission.editar_usuario)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")

    apply_update(session, profile, TABLE, changes, user.id)

    if profile.id != user.id:
        create_notification(
            session,
            profile.id,
            NotificationType.perfil_actualizado,
            "Profile updated",
            f"Your profile was updated by {user.display_name}",
            {"updated_by": str(user.id), "fields": sorted(changes)},
        )

    commit(session, manager)
    session.refresh(profile)

    return profile


def _delete(session: Session, profile: Profile, user: Profile) -> None:
    if profile.id == user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own user")

    soft_delete(session, profile, TABLE, user.id, active_field="asset")

    links = session.exec(
        select(UserRole)
        .where(UserRole.user_id == profile.id)
        .where(UserRole.deleted_at.is_(None))
    ).all()
    for link in links:
        link.deleted_at = utcnow()
        session.add(link)

    notify_deletion(
        session,
        TABLE,
        profile.display_name,
        user.id,
        [profile.id],
        {"user_id": str(profile.id)},
    )


def _toggle(session: Session, profile: Profile, user: Profile) -> None:
    if profile.id == user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own user")

    apply_update(session, profile, TABLE, {"asset": not profile.asset}, user.id)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.eliminar_usuario)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    profile = get_live_or_404(session, Profile, user_id, "User")

    _delete(session, profile, user)
    commit(session, manager)

    return {"ok": True, "message": "User deleted successfully"}


@router.post("/{user_id}/toggle-status", response_model=Profile)
async def toggle_user_status(
    user_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_usuario)),
):
    profile = get_live_or_404(session, Profile, user_id, "User")

    _toggle(session, profile, user)
    session.commit()
    session.refresh(profile)

    return profile


@router.post("/{user_id}/roles", response_model=Profile)
async def assign_role(
    user_id: str,
    payload: AssignRoleRequest,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_usuario)),
):
    profile = get_live_or_404(session, Profile, user_id, "User")
    role = get_live_or_404(session, Role, payload.role_id, "Role")

    existing = session.exec(
        select(UserRole)
        .where(UserRole.user_id == profile.id)
        .where(UserRole.role_id == role.id)
        .where(UserRole.deleted_at.is_(None))
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Role already assigned")

    session.add(UserRole(user_id=profile.id, role_id=role.id, assigned_by=user.id))
    session.flush()

    apply_update(
        session,
        profile,
        TABLE,
        {"role": _active_role_names(session, profile.id)},
        user.id,
        f"Role '{role.nombre}' assigned",
    )
    session.commit()
    session.refresh(profile)

    logger.info("Role %s assigned to user %s by %s", role.id, profile.id, user.id)
    return profile


@router.delete("/{user_id}/roles/{role_id}", response_model=Profile)
async def unassign_role(
    user_id: str,
    role_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_usuario)),
):
    profile = get_live_or_404(session, Profile, user_id, "User")
    role = get_live_or_404(session, Role, role_id, "Role")

    link = session.exec(
        select(UserRole)
        .where(UserRole.user_id == profile.id)
        .where(UserRole.role_id == role.id)
        .where(UserRole.deleted_at.is_(None))
    ).first()
    if not link:
        raise HTTPException(status_code=404, detail="Role not assigned to user")

    link.deleted_at = utcnow()
    session.add(link)
    session.flush()

    apply_update(
        session,
        profile,
        TABLE,
        {"role": _active_role_names(session, profile.id)},
        user.id,
        f"Role '{role.nombre}' removed",
    )
    session.commit()
    session.refresh(profile)

    logger.info("Role %s removed from user %s by %s", role.id, profile.id, user.id)
    return profile


BULK_ACTIONS = {
    BulkActionType.delete: (Permission.eliminar_usuario, _delete),
    BulkActionType.toggle_status: (Permission.editar_usuario, _toggle),
}


@router.post("/bulk", response_model=BulkResult)
async def bulk_user_action(
    payload: BulkActionRequest,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    if payload.action not in BULK_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")

    permission, mutate = BULK_ACTIONS[payload.action]
    check_permission(session, user, permission)

    return run_bulk(
        session,
        Profile,
        payload.ids,
        payload.action,
        TABLE,
        lambda profile: mutate(session, profile, user),
        manager,
    )
