"""Read side of the audit log.

``get_user_activities`` and ``get_change_history`` return one page of rows,
newest first. The secondary filters (free text, type, user email) only scan
that page: narrowing a search never pulls rows from outside it. A limit of 0
asks for "everything", which is capped at ``AUDIT_UNBOUNDED_LIMIT``.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlmodel import Session, select

from georeport import config
from georeport.models.audit import Actividad, CambioHistorial
from georeport.models.enums import ActivityType, OperationType
from georeport.models.profile import Profile


class ActividadRow(BaseModel):
    id: str
    activity_type: ActivityType
    descripcion: str
    tabla_afectada: Optional[str]
    registro_id: Optional[str]
    metadatos: Dict[str, Any]
    created_at: datetime
    user_email: str


class CambioHistorialRow(BaseModel):
    id: str
    tabla_nombre: str
    registro_id: str
    operation_type: OperationType
    valores_anteriores: Optional[Dict[str, Any]]
    valores_nuevos: Optional[Dict[str, Any]]
    campos_modificados: List[str]
    descripcion_cambio: str
    created_at: datetime
    user_email: str


def effective_limit(limit: Optional[int]) -> int:
    if limit is None:
        return config.AUDIT_DEFAULT_LIMIT
    if limit == 0:
        return config.AUDIT_UNBOUNDED_LIMIT
    return min(limit, config.AUDIT_UNBOUNDED_LIMIT)


def get_user_activities(
    session: Session,
    p_user_id: Optional[uuid.UUID] = None,
    p_limit: Optional[int] = None,
    p_offset: int = 0,
) -> List[ActividadRow]:
    query = (
        select(Actividad, Profile.email)
        .join(Profile, Profile.id == Actividad.user_id, isouter=True)
        .order_by(Actividad.created_at.desc())
        .offset(p_offset)
        .limit(effective_limit(p_limit))
    )

    if p_user_id:
        query = query.where(Actividad.user_id == p_user_id)

    return [
        ActividadRow(
            id=str(actividad.id),
            activity_type=actividad.activity_type,
            descripcion=actividad.descripcion,
            tabla_afectada=actividad.tabla_afectada,
            registro_id=actividad.registro_id,
            metadatos=actividad.metadatos or {},
            created_at=actividad.created_at,
            user_email=email or "system",
        )
        for actividad, email in session.exec(query).all()
    ]


def get_change_history(
    session: Session,
    p_tabla_nombre: Optional[str] = None,
    p_registro_id: Optional[str] = None,
    p_user_id: Optional[uuid.UUID] = None,
    p_limit: Optional[int] = None,
    p_offset: int = 0,
) -> List[CambioHistorialRow]:
    query = (
        select(CambioHistorial, Profile.email)
        .join(Profile, Profile.id == CambioHistorial.user_id, isouter=True)
        .order_by(CambioHistorial.created_at.desc())
        .offset(p_offset)
        .limit(effective_limit(p_limit))
    )

    if p_tabla_nombre:
        query = query.where(CambioHistorial.tabla_nombre == p_tabla_nombre)
    if p_registro_id:
        query = query.where(CambioHistorial.registro_id == str(p_registro_id))
    if p_user_id:
        query = query.where(CambioHistorial.user_id == p_user_id)

    return [
        CambioHistorialRow(
            id=str(cambio.id),
            tabla_nombre=cambio.tabla_nombre,
            registro_id=cambio.registro_id,
            operation_type=cambio.operation_type,
            valores_anteriores=cambio.valores_anteriores,
            valores_nuevos=cambio.valores_nuevos,
            campos_modificados=cambio.campos_modificados or [],
            descripcion_cambio=cambio.descripcion_cambio,
            created_at=cambio.created_at,
            user_email=email or "system",
        )
        for cambio, email in session.exec(query).all()
    ]


def _matches_text(search: Optional[str], *values: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.strip().lower()
    return any(needle in (value or "").lower() for value in values)


def _matches_email(user_email: Optional[str], email: str) -> bool:
    return not user_email or user_email.strip().lower() in email.lower()


def filter_activities(
    rows: List[ActividadRow],
    search: Optional[str] = None,
    activity_type: Optional[ActivityType] = None,
    user_email: Optional[str] = None,
) -> List[ActividadRow]:
    return [
        row for row in rows
        if _matches_text(search, row.descripcion, row.tabla_afectada, row.user_email)
        and (activity_type is None or row.activity_type == activity_type)
        and _matches_email(user_email, row.user_email)
    ]


def filter_changes(
    rows: List[CambioHistorialRow],
    search: Optional[str] = None,
    operation_type: Optional[OperationType] = None,
    user_email: Optional[str] = None,
) -> List[CambioHistorialRow]:
    return [
        row for row in rows
        if _matches_text(search, row.descripcion_cambio, row.tabla_nombre, row.registro_id, row.user_email)
        and (operation_type is None or row.operation_type == operation_type)
        and _matches_email(user_email, row.user_email)
    ]
