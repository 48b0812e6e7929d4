from typing import List, Optional
import uuid
from sqlalchemy import JSON, Boolean, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

from georeport.models.enums import Priority


class Reporte(SQLModel, table=True):
    __tablename__ = "reportes"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    # Ownership
    created_by: uuid.UUID = Field(foreign_key="profiles.id", index=True)
    assigned_to: Optional[uuid.UUID] = Field(default=None, foreign_key="profiles.id", index=True)

    # Classification
    categoria_id: uuid.UUID = Field(foreign_key="categories.id", index=True)
    estado_id: uuid.UUID = Field(foreign_key="estados.id", index=True)
    priority: Priority = Field(default=Priority.medio)

    nombre: str
    descripcion: str

    # True: public, False: private, None: resolved
    activo: Optional[bool] = Field(default=True, sa_column=Column(Boolean, nullable=True))

    # Location
    latitud: Optional[float] = None
    longitud: Optional[float] = None
    direccion: Optional[str] = None
    referencia_direccion: Optional[str] = None

    # Storage keys
    imagenes: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))


class ReporteHistorial(SQLModel, table=True):
    __tablename__ = "reporte_historial"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    reporte_id: uuid.UUID = Field(foreign_key="reportes.id", index=True)
    assigned_from: Optional[uuid.UUID] = Field(default=None, foreign_key="profiles.id")
    assigned_to: Optional[uuid.UUID] = Field(default=None, foreign_key="profiles.id")
    assigned_by: uuid.UUID = Field(foreign_key="profiles.id")

    comentario: Optional[str] = None
    fecha_asignacion: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)


def reporte_status(reporte: Reporte) -> str:
    """Lifecycle label derived from ``activo`` and ``assigned_to``."""
    if reporte.activo is None:
        return "resuelto"
    if reporte.assigned_to:
        return "en_proceso" if reporte.activo else "en_proceso_privado"
    return "pendiente" if reporte.activo else "pendiente_privado"
