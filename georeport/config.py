import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./georeport.db")
DB_ECHO = _flag("DB_ECHO")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "your_really_long_secret_key")
JWT_ALGORITHM = "HS256"

# HTTP
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")

# Object storage (S3 compatible)
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "georeport")
STORAGE_ENDPOINT_URL = os.getenv("STORAGE_ENDPOINT_URL")
STORAGE_REGION = os.getenv("STORAGE_REGION", "auto")
SIGNED_URL_EXPIRES = int(os.getenv("SIGNED_URL_EXPIRES", "3600"))
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# Audit log paging
AUDIT_DEFAULT_LIMIT = int(os.getenv("AUDIT_DEFAULT_LIMIT", "50"))
AUDIT_UNBOUNDED_LIMIT = int(os.getenv("AUDIT_UNBOUNDED_LIMIT", "1000"))

# Rate limiting
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_SEC = int(os.getenv("RATE_LIMIT_WINDOW_SEC", "60"))

# Notifications
NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "30"))
