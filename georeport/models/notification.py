from typing import Optional
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

from georeport import config
from georeport.models.enums import NotificationType


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Ownership
    user_id: uuid.UUID = Field(foreign_key="profiles.id", index=True)

    type: NotificationType = Field(index=True)

    title: str
    message: str

    # e.g. {"reporte_id": "..."} for deep links
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    read: bool = Field(default=False, index=True)


class NotificationSettings(SQLModel, table=True):
    __tablename__ = "notification_settings"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    user_id: uuid.UUID = Field(foreign_key="profiles.id", unique=True)

    enabled: bool = Field(default=True)
    auto_delete_read: bool = Field(default=False)
    retention_days: int = Field(default=config.NOTIFICATION_RETENTION_DAYS)
    theme: str = Field(default="system")
