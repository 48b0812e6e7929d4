from typing import List, Optional
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

from georeport.models.enums import ActivityType, OperationType


class Actividad(SQLModel, table=True):
    __tablename__ = "actividades"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    # Actor; None for anonymous or system events
    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="profiles.id", index=True)

    activity_type: ActivityType = Field(index=True)
    descripcion: str
    tabla_afectada: Optional[str] = None
    registro_id: Optional[str] = None
    metadatos: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))


class CambioHistorial(SQLModel, table=True):
    __tablename__ = "cambios_historial"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="profiles.id", index=True)

    tabla_nombre: str = Field(index=True)
    registro_id: str = Field(index=True)
    operation_type: OperationType

    valores_anteriores: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    valores_nuevos: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    campos_modificados: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    descripcion_cambio: str
