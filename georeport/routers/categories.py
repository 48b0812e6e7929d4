from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.category import Category
from georeport.models.enums import Permission
from georeport.models.profile import Profile
from georeport.utils.audit_log import log_data_export
from georeport.utils.auth_helper import check_permission, get_active_user, require_permission
from georeport.utils.bulk_actions import BulkActionType, BulkResult
from georeport.utils.csv_export import csv_response, export_filename, format_date, to_csv
from georeport.utils.form_validator import BulkActionRequest, ValidatedCreateCategory, ValidatedUpdateCategory
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

TABLE = "categories"

EXPORT_HEADERS = ["Nombre", "Descripción", "Color", "Icono", "Activo", "Fecha de Creación"]


@router.get("/", response_model=List[Category])
async def get_categories(
    only_active: bool = False,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    categories = list_live(session, Category)

    if only_active:
        categories = [c for c in categories if c.activo]

    return categories


@router.get("/export")
async def export_categories(
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_categoria)),
):
    categories = list_live(session, Category)

    rows = [
        {
            "Nombre": c.nombre,
            "Descripción": c.descripcion,
            "Color": c.color,
            "Icono": c.icono,
            "Activo": "Activo" if c.activo else "Inactivo",
            "Fecha de Creación": format_date(c.created_at),
        }
        for c in categories
    ]

    filename = export_filename("categorias")
    log_data_export(session, TABLE, len(rows), metadata={"file_name": filename}, user_id=user.id)
    session.commit()

    return csv_response(to_csv(rows, EXPORT_HEADERS), filename)


@router.get("/{category_id}", response_model=Category)
async def get_category(
    category_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    return get_live_or_404(session, Category, category_id, "Category")


@router.post("/", response_model=Category)
async def create_category(
    payload: ValidatedCreateCategory,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.crear_categoria)),
):
    category = Category(**payload.model_dump(), created_by=user.id)

    record_insert(session, category, TABLE, user.id)
    session.commit()
    session.refresh(category)

    logger.info("Category %s created by %s", category.id, user.id)
    return category


@router.patch("/{category_id}", response_model=Category)
async def update_category(
    category_id: str,
    payload: ValidatedUpdateCategory,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_categoria)),
):
    category = get_live_or_404(session, Category, category_id, "Category")

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")

    apply_update(session, category, TABLE, changes, user.id)
    session.commit()
    session.refresh(category)

    return category


def _delete(session: Session, category: Category, user: Profile) -> None:
    soft_delete(session, category, TABLE, user.id)
    notify_deletion(
        session,
        TABLE,
        category.nombre,
        user.id,
        [category.created_by],
        {"categoria_id": str(category.id)},
    )


def _toggle(session: Session, category: Category, user: Profile) -> None:
    apply_update(session, category, TABLE, {"activo": not category.activo}, user.id)


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.eliminar_categoria)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    category = get_live_or_404(session, Category, category_id, "Category")

    _delete(session, category, user)
    commit(session, manager)

    return {"ok": True, "message": "Category deleted successfully"}


@router.post("/{category_id}/toggle-status", response_model=Category)
async def toggle_category_status(
    category_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_categoria)),
):
    category = get_live_or_404(session, Category, category_id, "Category")

    _toggle(session, category, user)
    session.commit()
    session.refresh(category)

    return category


BULK_ACTIONS = {
    BulkActionType.delete: (Permission.eliminar_categoria, _delete),
    BulkActionType.toggle_status: (Permission.editar_categoria, _toggle),
}


@router.post("/bulk", response_model=BulkResult)
async def bulk_category_action(
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
        Category,
        payload.ids,
        payload.action,
        TABLE,
        lambda category: mutate(session, category, user),
        manager,
    )
