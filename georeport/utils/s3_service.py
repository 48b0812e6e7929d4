import os
import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import boto3

from georeport import config
from georeport.logging_utils import get_logger

logger = get_logger(__name__)

FOLDER = "reportes"

s3 = boto3.client(
    service_name="s3",
    endpoint_url=config.STORAGE_ENDPOINT_URL,
    aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
    aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
    region_name=config.STORAGE_REGION,
)


def slugify_name(nombre: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", nombre)
    return re.sub(r"\s+", "_", cleaned.strip()).lower()


def _coord(value: Optional[float]) -> str:
    return f"{value:.6f}" if value else "no-coord"


def report_folder(
    nombre: str,
    latitud: Optional[float] = None,
    longitud: Optional[float] = None,
    reporte_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> str:
    """Folder for a report's images.

    Reports that already own images are stored under their id so that a new
    upload replaces the previous set; first uploads get a descriptive folder.
    """
    if reporte_id is not None:
        return f"{FOLDER}/{reporte_id}"

    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y%m%d_%H%M%S")
    return f"{FOLDER}/{slugify_name(nombre)}_{_coord(latitud)}_{_coord(longitud)}_{stamp}"


def object_key(folder: str, filename: str) -> str:
    base, ext = os.path.splitext(os.path.basename(filename))
    return f"{folder}/{slugify_name(base) or 'image'}-{uuid.uuid4().hex[:8]}{ext.lower()}"


def generate_upload_url(key: str, content_type: str, expires_in: int = config.SIGNED_URL_EXPIRES) -> str:
    return s3.generate_presigned_url(
        "put_object",
        Params={"Bucket": config.STORAGE_BUCKET, "Key": key, "ContentType": content_type},
        ExpiresIn=expires_in,
    )


def generate_signed_url(key: str, expires_in: int = config.SIGNED_URL_EXPIRES) -> Optional[str]:
    try:
        return s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": config.STORAGE_BUCKET, "Key": key},
            ExpiresIn=expires_in,
        )
    except Exception as e:
        logger.error("Error generating signed URL for %s: %s", key, e)
        return None


def delete_s3_objects(keys: List[str]) -> None:
    for key in keys:
        try:
            s3.delete_object(Bucket=config.STORAGE_BUCKET, Key=key)
        except Exception as e:
            logger.error("Error deleting S3 object %s: %s", key, e)


def signed_image_urls(keys: List[str]) -> List[str]:
    return [url for url in (generate_signed_url(key) for key in keys) if url]
