import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlmodel import Session

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.enums import ActivityType, OperationType, Permission
from georeport.models.profile import Profile
from georeport.utils.audit_log import has_users, log_data_export, registrar_actividad
from georeport.utils.audit_queries import (
    filter_activities,
    filter_changes,
    get_change_history,
    get_user_activities,
)
from georeport.utils.auth_helper import get_active_user, require_permission
from georeport.utils.csv_export import csv_response, export_filename, format_date, to_csv

logger = get_logger(__name__)

router = APIRouter()

ACTIVITY_HEADERS = ["Tipo", "Descripción", "Usuario", "Tabla Afectada", "ID Registro", "Fecha"]
CHANGE_HEADERS = ["Operación", "Tabla", "ID Registro", "Descripción", "Campos Modificados", "Usuario", "Fecha"]


class ActividadCreate(BaseModel):
    activity_type: ActivityType
    descripcion: str = Field(min_length=1, max_length=1000)
    tabla_afectada: Optional[str] = None
    registro_id: Optional[str] = None
    metadatos: Dict[str, Any] = Field(default_factory=dict)


@router.get("/has-users")
async def check_has_users(session: Session = Depends(get_session)):
    return {"has_users": has_users(session)}


@router.get("/actividades")
async def list_actividades(
    user_id: Optional[uuid.UUID] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
    activity_type: Optional[ActivityType] = None,
    user_email: Optional[str] = None,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_auditoria)),
):
    rows = get_user_activities(session, user_id, limit, offset)
    return {"actividades": filter_activities(rows, search, activity_type, user_email)}


@router.post("/actividades")
async def create_actividad(
    payload: ActividadCreate,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    actividad = registrar_actividad(
        session,
        payload.activity_type,
        payload.descripcion,
        tabla_afectada=payload.tabla_afectada,
        registro_id=payload.registro_id,
        metadatos=payload.metadatos,
        user_id=user.id,
    )
    session.commit()
    session.refresh(actividad)

    return actividad


@router.get("/actividades/export")
async def export_actividades(
    user_id: Optional[uuid.UUID] = None,
    limit: Optional[int] = Query(0, ge=0),
    search: Optional[str] = None,
    activity_type: Optional[ActivityType] = None,
    user_email: Optional[str] = None,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_auditoria)),
):
    rows = filter_activities(
        get_user_activities(session, user_id, limit),
        search,
        activity_type,
        user_email,
    )

    content = to_csv(
        (
            {
                "Tipo": row.activity_type.value,
                "Descripción": row.descripcion,
                "Usuario": row.user_email,
                "Tabla Afectada": row.tabla_afectada or "",
                "ID Registro": row.registro_id or "",
                "Fecha": format_date(row.created_at),
            }
            for row in rows
        ),
        ACTIVITY_HEADERS,
    )

    filename = export_filename("actividades")
    log_data_export(session, "actividades", len(rows), metadata={"file_name": filename}, user_id=user.id)
    session.commit()

    return csv_response(content, filename)


@router.get("/cambios")
async def list_cambios(
    tabla_nombre: Optional[str] = None,
    registro_id: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
    operation_type: Optional[OperationType] = None,
    user_email: Optional[str] = None,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_auditoria)),
):
    rows = get_change_history(session, tabla_nombre, registro_id, user_id, limit, offset)
    return {"cambios": filter_changes(rows, search, operation_type, user_email)}


@router.get("/cambios/export")
async def export_cambios(
    tabla_nombre: Optional[str] = None,
    registro_id: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None,
    limit: Optional[int] = Query(0, ge=0),
    search: Optional[str] = None,
    operation_type: Optional[OperationType] = None,
    user_email: Optional[str] = None,
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_auditoria)),
):
    rows = filter_changes(
        get_change_history(session, tabla_nombre, registro_id, user_id, limit),
        search,
        operation_type,
        user_email,
    )

    content = to_csv(
        (
            {
                "Operación": row.operation_type.value,
                "Tabla": row.tabla_nombre,
                "ID Registro": row.registro_id,
                "Descripción": row.descripcion_cambio,
                "Campos Modificados": "; ".join(row.campos_modificados),
                "Usuario": row.user_email,
                "Fecha": format_date(row.created_at),
            }
            for row in rows
        ),
        CHANGE_HEADERS,
    )

    filename = export_filename("historial_cambios")
    log_data_export(session, "cambios_historial", len(rows), metadata={"file_name": filename}, user_id=user.id)
    session.commit()

    return csv_response(content, filename)
