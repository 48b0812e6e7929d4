from typing import List, Optional
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    email: str = Field(index=True, unique=True)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None

    confirmed: Optional[bool] = Field(default=False)
    asset: Optional[bool] = Field(default=True)  # active flag for users

    # Role names, denormalized for display
    role: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    @property
    def display_name(self) -> str:
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.email
