from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.enums import Permission
from georeport.models.estado import Estado
from georeport.models.profile import Profile
from georeport.utils.auth_helper import check_permission, get_active_user, require_permission
from georeport.utils.bulk_actions import BulkActionType, BulkResult
from georeport.utils.form_validator import BulkActionRequest, ValidatedCreateEstado, ValidatedUpdateEstado
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

TABLE = "estados"


@router.get("/", response_model=List[Estado])
async def get_estados(
    only_active: bool = False,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    estados = list_live(session, Estado)
    if only_active:
        estados = [e for e in estados if e.activo]
    return estados


@router.get("/{estado_id}", response_model=Estado)
async def get_estado(
    estado_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    return get_live_or_404(session, Estado, estado_id, "Estado")


@router.post("/", response_model=Estado)
async def create_estado(
    payload: ValidatedCreateEstado,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.crear_estado)),
):
    estado = Estado(**payload.model_dump(), created_by=user.id)

    record_insert(session, estado, TABLE, user.id)
    session.commit()
    session.refresh(estado)

    logger.info("Estado %s created by %s", estado.id, user.id)
    return estado


@router.patch("/{estado_id}", response_model=Estado)
async def update_estado(
    estado_id: str,
    payload: ValidatedUpdateEstado,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_estado)),
):
    estado = get_live_or_404(session, Estado, estado_id, "Estado")

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")

    apply_update(session, estado, TABLE, changes, user.id)
    session.commit()
    session.refresh(estado)

    return estado


def _delete(session: Session, estado: Estado, user: Profile) -> None:
    soft_delete(session, estado, TABLE, user.id)
    notify_deletion(
        session,
        TABLE,
        estado.nombre,
        user.id,
        [estado.created_by],
        {"estado_id": str(estado.id)},
    )


def _toggle(session: Session, estado: Estado, user: Profile) -> None:
    apply_update(session, estado, TABLE, {"activo": not estado.activo}, user.id)


@router.delete("/{estado_id}")
async def delete_estado(
    estado_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.eliminar_estado)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    estado = get_live_or_404(session, Estado, estado_id, "Estado")

    _delete(session, estado, user)
    commit(session, manager)

    return {"ok": True, "message": "Estado deleted successfully"}


@router.post("/{estado_id}/toggle-status", response_model=Estado)
async def toggle_estado_status(
    estado_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_estado)),
):
    estado = get_live_or_404(session, Estado, estado_id, "Estado")

    _toggle(session, estado, user)
    session.commit()
    session.refresh(estado)

    return estado


BULK_ACTIONS = {
    BulkActionType.delete: (Permission.eliminar_estado, _delete),
    BulkActionType.toggle_status: (Permission.editar_estado, _toggle),
}


@router.post("/bulk", response_model=BulkResult)
async def bulk_estado_action(
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
        Estado,
        payload.ids,
        payload.action,
        TABLE,
        lambda estado: mutate(session, estado, user),
        manager,
    )
