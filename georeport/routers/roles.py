from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, func, select

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.enums import Permission
from georeport.models.profile import Profile
from georeport.models.role import Role, UserRole
from georeport.utils.auth_helper import check_permission, get_active_user, require_permission
from georeport.utils.bulk_actions import BulkActionType, BulkResult
from georeport.utils.form_validator import BulkActionRequest, ValidatedCreateRole, ValidatedUpdateRole
from georeport.utils.notifier import get_subscription_manager, notify_deletion
from georeport.utils.realtime import NotificationSubscriptionManager
from georeport.utils.records import (
    apply_update,
    commit,
    get_live_or_404,
    list_live,
    record_insert,
    run_bulk,
    soft_delete,
)

logger = get_logger(__name__)

router = APIRouter()

TABLE = "roles"


@router.get("/", response_model=List[Role])
async def get_roles(
    only_active: bool = False,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_rol)),
):
    roles = list_live(session, Role)
    if only_active:
        roles = [r for r in roles if r.activo]
    return roles


@router.get("/permissions")
async def get_available_permissions(user: Profile = Depends(get_active_user)):
    return {"permissions": [p.value for p in Permission]}


@router.get("/{role_id}")
async def get_role(
    role_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_rol)),
):
    role = get_live_or_404(session, Role, role_id, "Role")

    users_count = session.exec(
        select(func.count(UserRole.id))
        .where(UserRole.role_id == role.id)
        .where(UserRole.deleted_at.is_(None))
    ).one()

    return {"role": role, "users_count": users_count}


@router.post("/", response_model=Role)
async def create_role(
    payload: ValidatedCreateRole,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.crear_rol)),
):
    data = payload.model_dump()
    data["permisos"] = [p.value for p in payload.permisos]

    role = Role(**data, created_by=user.id)

    record_insert(session, role, TABLE, user.id)
    session.commit()
    session.refresh(role)

    logger.info("Role %s created by %s", role.id, user.id)
    return role


@router.patch("/{role_id}", response_model=Role)
async def update_role(
    role_id: str,
    payload: ValidatedUpdateRole,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_rol)),
):
    role = get_live_or_404(session, Role, role_id, "Role")

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")

    if payload.permisos is not None:
        changes["permisos"] = [p.value for p in payload.permisos]

    apply_update(session, role, TABLE, changes, user.id)
    session.commit()
    session.refresh(role)

    return role


def _delete(session: Session, role: Role, user: Profile) -> None:
    soft_delete(session, role, TABLE, user.id)
    notify_deletion(
        session,
        TABLE,
        role.nombre,
        user.id,
        [role.created_by],
        {"role_id": str(role.id)},
    )


def _toggle(session: Session, role: Role, user: Profile) -> None:
    apply_update(session, role, TABLE, {"activo": not role.activo}, user.id)


@router.delete("/{role_id}")
async def delete_role(
    role_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.eliminar_rol)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    role = get_live_or_404(session, Role, role_id, "Role")

    _delete(session, role, user)
    commit(session, manager)

    return {"ok": True, "message": "Role deleted successfully"}


@router.post("/{role_id}/toggle-status", response_model=Role)
async def toggle_role_status(
    role_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_rol)),
):
    role = get_live_or_404(session, Role, role_id, "Role")

    _toggle(session, role, user)
    session.commit()
    session.refresh(role)

    return role


BULK_ACTIONS = {
    BulkActionType.delete: (Permission.eliminar_rol, _delete),
    BulkActionType.toggle_status: (Permission.editar_rol, _toggle),
}


@router.post("/bulk", response_model=BulkResult)
async def bulk_role_action(
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
        Role,
        payload.ids,
        payload.action,
        TABLE,
        lambda role: mutate(session, role, user),
        manager,
    )
