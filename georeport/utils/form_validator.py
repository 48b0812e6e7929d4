import os
import re
import unicodedata
import uuid
from typing import List, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field, field_validator

from georeport import config
from georeport.models.enums import Permission, Priority
from georeport.utils.bulk_actions import BulkActionType

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
SUSPICIOUS_EXTENSIONS = (".exe", ".bat", ".cmd", ".scr", ".js", ".php", ".asp")


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and punctuation, for accent-insensitive search."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    without_marks = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return re.sub(r"[^\w\s]", "", without_marks)


class _Stripped(BaseModel):
    @field_validator("nombre", "descripcion", mode="before", check_fields=False)
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class ValidatedCreateCategory(_Stripped):
    nombre: str = Field(min_length=2, max_length=100)
    descripcion: Optional[str] = Field(default=None, max_length=500)
    activo: bool = True
    color: str = Field(default="#3B82F6", pattern=HEX_COLOR)
    icono: str = Field(default="Folder", min_length=1, max_length=50)


class ValidatedUpdateCategory(_Stripped):
    nombre: Optional[str] = Field(default=None, min_length=2, max_length=100)
    descripcion: Optional[str] = Field(default=None, max_length=500)
    activo: Optional[bool] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    icono: Optional[str] = Field(default=None, min_length=1, max_length=50)


class ValidatedCreateEstado(_Stripped):
    nombre: str = Field(min_length=2, max_length=100)
    descripcion: str = Field(min_length=1, max_length=500)
    activo: bool = True
    color: str = Field(default="#6B7280", pattern=HEX_COLOR)
    icono: str = Field(default="Circle", min_length=1, max_length=50)


class ValidatedUpdateEstado(_Stripped):
    nombre: Optional[str] = Field(default=None, min_length=2, max_length=100)
    descripcion: Optional[str] = Field(default=None, min_length=1, max_length=500)
    activo: Optional[bool] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    icono: Optional[str] = Field(default=None, min_length=1, max_length=50)


class ValidatedCreateRole(_Stripped):
    nombre: str = Field(min_length=2, max_length=100)
    descripcion: str = Field(min_length=1, max_length=500)
    permisos: List[Permission] = Field(default_factory=list)
    activo: bool = True
    color: str = Field(default="#8B5CF6", pattern=HEX_COLOR)
    icono: str = Field(default="Shield", min_length=1, max_length=50)


class ValidatedUpdateRole(_Stripped):
    nombre: Optional[str] = Field(default=None, min_length=2, max_length=100)
    descripcion: Optional[str] = Field(default=None, min_length=1, max_length=500)
    permisos: Optional[List[Permission]] = None
    activo: Optional[bool] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    icono: Optional[str] = Field(default=None, min_length=1, max_length=50)


class ValidatedCreateProfile(BaseModel):
    email: str = Field(pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$", max_length=254)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = None
    confirmed: bool = False
    asset: bool = True

    @field_validator("email")
    @classmethod
    def no_suspicious_patterns(cls, value: str) -> str:
        if ".." in value or "--" in value:
            raise ValueError("Email contains suspicious patterns")
        return value.lower()


class ValidatedUpdateProfile(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = None
    confirmed: Optional[bool] = None
    asset: Optional[bool] = None


class ValidatedCreateReporte(_Stripped):
    nombre: str = Field(min_length=3, max_length=200)
    descripcion: str = Field(min_length=5, max_length=2000)
    categoria_id: uuid.UUID
    estado_id: uuid.UUID
    assigned_to: Optional[uuid.UUID] = None
    latitud: Optional[float] = Field(default=None, ge=-90, le=90)
    longitud: Optional[float] = Field(default=None, ge=-180, le=180)
    direccion: Optional[str] = Field(default=None, max_length=300)
    referencia_direccion: Optional[str] = Field(default=None, max_length=300)
    priority: Priority = Priority.medio

    @field_validator("assigned_to", mode="before")
    @classmethod
    def blank_assignment_is_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value


class ValidatedUpdateReporte(_Stripped):
    nombre: Optional[str] = Field(default=None, min_length=3, max_length=200)
    descripcion: Optional[str] = Field(default=None, min_length=5, max_length=2000)
    categoria_id: Optional[uuid.UUID] = None
    estado_id: Optional[uuid.UUID] = None
    assigned_to: Optional[uuid.UUID] = None
    activo: Optional[bool] = None
    latitud: Optional[float] = Field(default=None, ge=-90, le=90)
    longitud: Optional[float] = Field(default=None, ge=-180, le=180)
    direccion: Optional[str] = Field(default=None, max_length=300)
    referencia_direccion: Optional[str] = Field(default=None, max_length=300)
    priority: Optional[Priority] = None

    @field_validator("assigned_to", mode="before")
    @classmethod
    def blank_assignment_is_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value


class UploadFileMeta(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    size: int = Field(ge=1)
    content_type: str


class BulkActionRequest(BaseModel):
    ids: List[str] = Field(min_length=1)
    action: BulkActionType
    categoria_id: Optional[uuid.UUID] = None
    estado_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    comentario: Optional[str] = Field(default=None, max_length=500)


def validate_file_upload(filename: str, file_size: int, content_type: str) -> None:
    """Reject uploads that are too big, not images, or have a suspicious name."""
    max_bytes = config.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if file_size > max_bytes:
        raise HTTPException(status_code=400, detail=f"File exceeds {config.MAX_UPLOAD_SIZE_MB}MB limit")

    if content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="File type not allowed, only images are accepted")

    name = os.path.basename(filename).lower()
    if any(pattern in name for pattern in SUSPICIOUS_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Suspicious file name")

    if len(name.split(".")) > 2:
        raise HTTPException(status_code=400, detail="Multiple extensions are not allowed")
