"""Append-only audit writers: activity log, change history and security events."""

import uuid
from typing import Any, Dict, List, Optional

from sqlmodel import Session, SQLModel, func, select

from georeport.logging_utils import get_logger
from georeport.models.audit import Actividad, CambioHistorial
from georeport.models.enums import ActivityType, OperationType
from georeport.models.profile import Profile

logger = get_logger(__name__)

# Bookkeeping columns that never count as a modified field
IGNORED_FIELDS = {"updated_at"}

# Routine view events are not worth an audit row
SKIPPED_SECURITY_EVENTS = ("VIEW_ATTEMPT", "REPORT_VIEW", "DATA_VIEW")


def snapshot(record: SQLModel) -> Dict[str, Any]:
    return record.model_dump(mode="json")


def changed_fields(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> List[str]:
    before = before or {}
    after = after or {}
    keys = (set(before) | set(after)) - IGNORED_FIELDS
    return sorted(k for k in keys if before.get(k) != after.get(k))


def record_change(
    session: Session,
    tabla_nombre: str,
    registro_id: Any,
    operation_type: OperationType,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
    user_id: Optional[uuid.UUID],
    descripcion: Optional[str] = None,
) -> CambioHistorial:
    campos = changed_fields(before, after) if operation_type == OperationType.UPDATE else []

    if descripcion is None:
        if campos:
            descripcion = f"{operation_type.value} on {tabla_nombre}: {', '.join(campos)}"
        else:
            descripcion = f"{operation_type.value} on {tabla_nombre}"

    cambio = CambioHistorial(
        user_id=user_id,
        tabla_nombre=tabla_nombre,
        registro_id=str(registro_id),
        operation_type=operation_type,
        valores_anteriores=before,
        valores_nuevos=after,
        campos_modificados=campos,
        descripcion_cambio=descripcion,
    )
    session.add(cambio)
    return cambio


def registrar_actividad(
    session: Session,
    activity_type: ActivityType,
    descripcion: str,
    tabla_afectada: Optional[str] = None,
    registro_id: Optional[Any] = None,
    metadatos: Optional[Dict[str, Any]] = None,
    user_id: Optional[uuid.UUID] = None,
) -> Actividad:
    actividad = Actividad(
        user_id=user_id,
        activity_type=activity_type,
        descripcion=descripcion,
        tabla_afectada=tabla_afectada,
        registro_id=str(registro_id) if registro_id is not None else None,
        metadatos=metadatos or {},
    )
    session.add(actividad)
    return actividad


def _activity_type_for_event(event_type: str) -> ActivityType:
    prefix = event_type.split("_", 1)[0].upper()
    try:
        return ActivityType(prefix)
    except ValueError:
        return ActivityType.READ


def log_security_event(
    session: Session,
    event_type: str,
    description: str,
    user_id: Optional[uuid.UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[Actividad]:
    if any(marker in event_type for marker in SKIPPED_SECURITY_EVENTS):
        return None

    logger.warning("Security event %s: %s", event_type, description)

    return registrar_actividad(
        session,
        _activity_type_for_event(event_type),
        description,
        metadatos={**(metadata or {}), "event_type": event_type, "security_event": True},
        user_id=user_id,
    )


def log_data_export(
    session: Session,
    table_name: str,
    records_count: int,
    export_format: str = "CSV",
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[uuid.UUID] = None,
) -> Actividad:
    return registrar_actividad(
        session,
        ActivityType.EXPORT,
        f"Exported {records_count} records from {table_name} as {export_format}",
        tabla_afectada=table_name,
        metadatos={
            **(metadata or {}),
            "records_count": records_count,
            "export_format": export_format,
        },
        user_id=user_id,
    )


def log_data_import(
    session: Session,
    table_name: str,
    records_count: int,
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[uuid.UUID] = None,
) -> Actividad:
    return registrar_actividad(
        session,
        ActivityType.IMPORT,
        f"Imported {records_count} records into {table_name}",
        tabla_afectada=table_name,
        metadatos={**(metadata or {}), "records_count": records_count},
        user_id=user_id,
    )


def log_user_login(session: Session, user_id: uuid.UUID, metadata: Optional[Dict[str, Any]] = None) -> Actividad:
    return registrar_actividad(
        session,
        ActivityType.LOGIN,
        "User logged in",
        tabla_afectada="profiles",
        registro_id=user_id,
        metadatos=metadata,
        user_id=user_id,
    )


def log_user_logout(session: Session, user_id: uuid.UUID, metadata: Optional[Dict[str, Any]] = None) -> Actividad:
    return registrar_actividad(
        session,
        ActivityType.LOGOUT,
        "User logged out",
        tabla_afectada="profiles",
        registro_id=user_id,
        metadatos=metadata,
        user_id=user_id,
    )


def has_users(session: Session) -> bool:
    count = session.exec(
        select(func.count(Profile.id)).where(Profile.deleted_at.is_(None))
    ).one()
    return count > 0
