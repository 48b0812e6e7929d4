from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Estado(SQLModel, table=True):
    __tablename__ = "estados"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    created_by: uuid.UUID = Field(foreign_key="profiles.id")

    nombre: str
    descripcion: str
    activo: bool = Field(default=True)
    color: str = Field(default="#6B7280")
    icono: str = Field(default="Circle")
