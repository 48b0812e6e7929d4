from typing import List, Optional
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Role(SQLModel, table=True):
    __tablename__ = "roles"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    created_by: uuid.UUID = Field(foreign_key="profiles.id")

    nombre: str
    descripcion: str
    permisos: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    activo: bool = Field(default=True)
    color: str = Field(default="#8B5CF6")
    icono: str = Field(default="Shield")


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    user_id: uuid.UUID = Field(foreign_key="profiles.id", index=True)
    role_id: uuid.UUID = Field(foreign_key="roles.id", index=True)

    assigned_by: Optional[uuid.UUID] = Field(default=None, foreign_key="profiles.id")
    assigned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deleted_at: Optional[datetime] = Field(default=None)
