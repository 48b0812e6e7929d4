import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.category import Category
from georeport.models.enums import NotificationType, Permission, Priority
from georeport.models.estado import Estado
from georeport.models.profile import Profile
from georeport.models.reporte import Reporte, ReporteHistorial, reporte_status
from georeport.utils.audit_log import log_data_export, log_security_event
from georeport.utils.auth_helper import check_permission, get_active_user, require_permission
from georeport.utils.bulk_actions import BulkActionType, BulkResult
from georeport.utils.csv_export import csv_response, export_filename, format_date, to_csv
from georeport.utils.form_validator import (
    BulkActionRequest,
    UploadFileMeta,
    ValidatedCreateReporte,
    ValidatedUpdateReporte,
    normalize_text,
    validate_file_upload,
)
from georeport.utils.notifier import create_notification, get_subscription_manager, notify_deletion
from georeport.utils.rate_limit import RateLimiter
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
from georeport.utils.s3_service import (
    delete_s3_objects,
    generate_upload_url,
    object_key,
    report_folder,
    signed_image_urls,
)

logger = get_logger(__name__)

router = APIRouter()

TABLE = "reportes"

EXPORT_HEADERS = ["Nombre", "Descripción", "Categoría", "Estado", "Activo", "Fecha de Creación"]

STATUS_LABELS = {
    "resuelto": "Resuelto",
    "en_proceso": "En Proceso",
    "en_proceso_privado": "En Proceso (Privado)",
    "pendiente": "Pendiente",
    "pendiente_privado": "Pendiente (Privado)",
}

# activo=None is meaningful (resolved); these columns are not nullable
REQUIRED_FIELDS = ("nombre", "descripcion", "categoria_id", "estado_id", "priority")

upload_limiter = RateLimiter()


class UploadUrlRequest(BaseModel):
    files: List[UploadFileMeta] = Field(min_length=1, max_length=10)


def serialize_reporte(reporte: Reporte) -> dict:
    data = reporte.model_dump(mode="json")
    data["status"] = reporte_status(reporte)
    data["image_urls"] = signed_image_urls(reporte.imagenes)
    return data


def _require_live_active(session: Session, model, record_id, label: str):
    record = get_live_or_404(session, model, record_id, label)
    if not record.activo:
        raise HTTPException(status_code=400, detail=f"{label} is not active")
    return record


def _require_assignable(session: Session, user_id: uuid.UUID) -> Profile:
    assignee = get_live_or_404(session, Profile, user_id, "User")
    if assignee.asset is False:
        raise HTTPException(status_code=400, detail="User is not active")
    return assignee


def _change_assignment(
    session: Session,
    reporte: Reporte,
    assigned_to: Optional[uuid.UUID],
    user: Profile,
    comentario: Optional[str] = None,
) -> None:
    """Move a report to ``assigned_to`` (or nobody), keeping the history and telling both sides."""
    previous = reporte.assigned_to
    if previous == assigned_to:
        return

    if assigned_to is not None:
        _require_assignable(session, assigned_to)

    apply_update(session, reporte, TABLE, {"assigned_to": assigned_to}, user.id)
    session.add(ReporteHistorial(
        reporte_id=reporte.id,
        assigned_from=previous,
        assigned_to=assigned_to,
        assigned_by=user.id,
        comentario=comentario,
    ))

    data = {"reporte_id": str(reporte.id)}

    if assigned_to is not None and assigned_to != user.id:
        create_notification(
            session,
            assigned_to,
            NotificationType.reporte_asignado,
            "Report assigned",
            f"Report '{reporte.nombre}' was assigned to you",
            data,
        )

    if previous is not None and previous != user.id:
        if assigned_to is not None:
            create_notification(
                session,
                previous,
                NotificationType.reporte_reasignado,
                "Report reassigned",
                f"Report '{reporte.nombre}' was reassigned to another user",
                data,
            )
        else:
            create_notification(
                session,
                previous,
                NotificationType.reporte_desasignado,
                "Report unassigned",
                f"You are no longer assigned to report '{reporte.nombre}'",
                data,
            )

    logger.info("Report %s assignment %s -> %s by %s", reporte.id, previous, assigned_to, user.id)


@router.get("/")
async def get_reportes(
    search: Optional[str] = None,
    categoria_id: Optional[uuid.UUID] = None,
    estado_id: Optional[uuid.UUID] = None,
    assigned_to: Optional[uuid.UUID] = None,
    priority: Optional[Priority] = None,
    only_public: bool = False,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_reporte)),
):
    query = (
        select(Reporte)
        .where(Reporte.deleted_at.is_(None))
        .order_by(Reporte.created_at.desc())
    )

    if categoria_id:
        query = query.where(Reporte.categoria_id == categoria_id)
    if estado_id:
        query = query.where(Reporte.estado_id == estado_id)
    if assigned_to:
        query = query.where(Reporte.assigned_to == assigned_to)
    if priority:
        query = query.where(Reporte.priority == priority)
    if only_public:
        query = query.where(Reporte.activo.is_(True))

    reportes = session.exec(query).all()

    if search:
        needle = normalize_text(search.strip())
        reportes = [
            r for r in reportes
            if needle in normalize_text(" ".join(filter(None, [r.nombre, r.descripcion, r.direccion])))
        ]

    return {"reportes": [serialize_reporte(r) for r in reportes]}


@router.get("/export")
async def export_reportes(
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_reporte)),
):
    reportes = list_live(session, Reporte)

    categorias = {c.id: c.nombre for c in session.exec(select(Category)).all()}
    estados = {e.id: e.nombre for e in session.exec(select(Estado)).all()}

    rows = [
        {
            "Nombre": r.nombre,
            "Descripción": r.descripcion,
            "Categoría": categorias.get(r.categoria_id, ""),
            "Estado": estados.get(r.estado_id, ""),
            "Activo": STATUS_LABELS[reporte_status(r)],
            "Fecha de Creación": format_date(r.created_at),
        }
        for r in reportes
    ]

    filename = export_filename("reportes")
    log_data_export(session, TABLE, len(rows), metadata={"file_name": filename}, user_id=user.id)
    session.commit()

    return csv_response(to_csv(rows, EXPORT_HEADERS), filename)


@router.get("/{reporte_id}")
async def get_reporte(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_reporte)),
):
    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")
    return serialize_reporte(reporte)


@router.get("/{reporte_id}/historial")
async def get_reporte_historial(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_reporte)),
):
    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")

    entries = session.exec(
        select(ReporteHistorial)
        .where(ReporteHistorial.reporte_id == reporte.id)
        .order_by(ReporteHistorial.fecha_asignacion.desc())
    ).all()

    user_ids = {e.assigned_from for e in entries} | {e.assigned_to for e in entries} | {e.assigned_by for e in entries}
    user_ids.discard(None)
    emails = {
        p.id: p.email
        for p in session.exec(select(Profile).where(Profile.id.in_(user_ids))).all()
    } if user_ids else {}

    return {
        "historial": [
            {
                **entry.model_dump(mode="json"),
                "assigned_from_email": emails.get(entry.assigned_from),
                "assigned_to_email": emails.get(entry.assigned_to),
                "assigned_by_email": emails.get(entry.assigned_by),
            }
            for entry in entries
        ]
    }


@router.post("/")
async def create_reporte(
    payload: ValidatedCreateReporte,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.crear_reporte)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    _require_live_active(session, Category, payload.categoria_id, "Category")
    _require_live_active(session, Estado, payload.estado_id, "Estado")

    data = payload.model_dump(exclude={"assigned_to"})
    reporte = Reporte(**data, created_by=user.id)

    record_insert(session, reporte, TABLE, user.id)
    session.flush()

    if payload.assigned_to is not None:
        _change_assignment(session, reporte, payload.assigned_to, user)

    commit(session, manager)
    session.refresh(reporte)

    logger.info("Report %s created by %s", reporte.id, user.id)
    return serialize_reporte(reporte)


@router.patch("/{reporte_id}")
async def update_reporte(
    reporte_id: str,
    payload: ValidatedUpdateReporte,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_reporte)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")

    changes = payload.model_dump(exclude_unset=True)
    for field in REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be empty")
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")

    if changes.get("categoria_id") and changes["categoria_id"] != reporte.categoria_id:
        _require_live_active(session, Category, changes["categoria_id"], "Category")
    if changes.get("estado_id") and changes["estado_id"] != reporte.estado_id:
        _require_live_active(session, Estado, changes["estado_id"], "Estado")

    assignment_changed = "assigned_to" in changes
    assigned_to = changes.pop("assigned_to", None)

    if changes:
        apply_update(session, reporte, TABLE, changes, user.id)
    if assignment_changed:
        _change_assignment(session, reporte, assigned_to, user)

    commit(session, manager)
    session.refresh(reporte)

    return serialize_reporte(reporte)


def _delete(session: Session, reporte: Reporte, user: Profile) -> None:
    soft_delete(session, reporte, TABLE, user.id)
    notify_deletion(
        session,
        TABLE,
        reporte.nombre,
        user.id,
        [reporte.created_by, reporte.assigned_to],
        {"reporte_id": str(reporte.id)},
    )


def _toggle(session: Session, reporte: Reporte, user: Profile) -> None:
    # Resolved reports come back as public
    activo = True if reporte.activo is None else not reporte.activo
    apply_update(session, reporte, TABLE, {"activo": activo}, user.id)


@router.delete("/{reporte_id}")
async def delete_reporte(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.eliminar_reporte)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")

    _delete(session, reporte, user)
    commit(session, manager)

    return {"ok": True, "message": "Report deleted successfully"}


@router.post("/{reporte_id}/toggle-status")
async def toggle_reporte_status(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_reporte)),
):
    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")

    _toggle(session, reporte, user)
    session.commit()
    session.refresh(reporte)

    return serialize_reporte(reporte)


def _set_activo(reporte_id: str, activo: Optional[bool], session: Session, user: Profile) -> dict:
    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")

    apply_update(session, reporte, TABLE, {"activo": activo}, user.id)
    session.commit()
    session.refresh(reporte)

    return serialize_reporte(reporte)


@router.post("/{reporte_id}/mark-resolved")
async def mark_reporte_resolved(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_reporte)),
):
    return _set_activo(reporte_id, None, session, user)


@router.post("/{reporte_id}/activate")
async def activate_reporte(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_reporte)),
):
    return _set_activo(reporte_id, True, session, user)


@router.post("/{reporte_id}/deactivate")
async def deactivate_reporte(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_reporte)),
):
    return _set_activo(reporte_id, False, session, user)


@router.post("/{reporte_id}/mark-pending")
async def mark_reporte_pending(
    reporte_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_reporte)),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")

    _change_assignment(session, reporte, None, user)
    if reporte.activo is not True:
        apply_update(session, reporte, TABLE, {"activo": True}, user.id)

    commit(session, manager)
    session.refresh(reporte)

    return serialize_reporte(reporte)


@router.post("/{reporte_id}/imagenes/upload-url")
async def create_image_upload_urls(
    reporte_id: str,
    payload: UploadUrlRequest,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.editar_reporte)),
):
    if not upload_limiter.check(str(user.id)):
        log_security_event(
            session,
            "RATE_LIMIT_EXCEEDED",
            "Too many image upload requests",
            user_id=user.id,
            metadata={"reporte_id": reporte_id},
        )
        session.commit()
        raise HTTPException(status_code=429, detail="Too many requests, try again later")

    reporte = get_live_or_404(session, Reporte, reporte_id, "Report")

    for f in payload.files:
        validate_file_upload(f.filename, f.size, f.content_type)

    previous = list(reporte.imagenes)
    if previous:
        folder = report_folder(reporte.nombre, reporte_id=reporte.id)
    else:
        folder = report_folder(reporte.nombre, reporte.latitud, reporte.longitud)

    uploads = []
    for f in payload.files:
        key = object_key(folder, f.filename)
        uploads.append({
            "key": key,
            "upload_url": generate_upload_url(key, f.content_type),
            "content_type": f.content_type,
        })

    apply_update(session, reporte, TABLE, {"imagenes": [u["key"] for u in uploads]}, user.id)
    session.commit()

    # Replaced images go away once the new keys are stored
    if previous:
        delete_s3_objects(previous)

    logger.info("Issued %d upload URLs for report %s", len(uploads), reporte.id)
    return {"folder": folder, "uploads": uploads}


def _bulk_change_category(categoria_id: Optional[uuid.UUID]):
    def mutate(session: Session, reporte: Reporte, user: Profile) -> None:
        apply_update(session, reporte, TABLE, {"categoria_id": categoria_id}, user.id)
    return mutate


def _bulk_change_estado(estado_id: Optional[uuid.UUID]):
    def mutate(session: Session, reporte: Reporte, user: Profile) -> None:
        apply_update(session, reporte, TABLE, {"estado_id": estado_id}, user.id)
    return mutate


def _bulk_change_assignment(assigned_to: Optional[uuid.UUID], comentario: Optional[str]):
    def mutate(session: Session, reporte: Reporte, user: Profile) -> None:
        _change_assignment(session, reporte, assigned_to, user, comentario)
    return mutate


@router.post("/bulk", response_model=BulkResult)
async def bulk_reporte_action(
    payload: BulkActionRequest,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    if payload.action == BulkActionType.delete:
        check_permission(session, user, Permission.eliminar_reporte)
        mutate = _delete
    elif payload.action == BulkActionType.toggle_status:
        check_permission(session, user, Permission.editar_reporte)
        mutate = _toggle
    elif payload.action == BulkActionType.change_category:
        check_permission(session, user, Permission.editar_reporte)
        if payload.categoria_id is None:
            raise HTTPException(status_code=400, detail="categoria_id is required")
        _require_live_active(session, Category, payload.categoria_id, "Category")
        mutate = _bulk_change_category(payload.categoria_id)
    elif payload.action == BulkActionType.change_estado:
        check_permission(session, user, Permission.editar_reporte)
        if payload.estado_id is None:
            raise HTTPException(status_code=400, detail="estado_id is required")
        _require_live_active(session, Estado, payload.estado_id, "Estado")
        mutate = _bulk_change_estado(payload.estado_id)
    elif payload.action == BulkActionType.change_assignment:
        check_permission(session, user, Permission.editar_reporte)
        if payload.user_id is not None:
            _require_assignable(session, payload.user_id)
        mutate = _bulk_change_assignment(payload.user_id, payload.comentario)
    else:
        raise HTTPException(status_code=400, detail="Invalid action")

    return run_bulk(
        session,
        Reporte,
        payload.ids,
        payload.action,
        TABLE,
        lambda reporte: mutate(session, reporte, user),
        manager,
    )
