from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from georeport import config
from georeport.db.db import init_db
from georeport.logging_utils import configure_logging, get_logger
from georeport.routers import (
    auditoria,
    categories,
    dashboard,
    estados,
    notifications,
    reportes,
    roles,
    session,
    users,
)
from georeport.utils.realtime import NotificationSubscriptionManager

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    logger.info("GeoReport API started")
    yield
    app.state.subscriptions.close_all()
    logger.info("GeoReport API stopped")


app = FastAPI(title="GeoReport API", lifespan=lifespan)

app.state.subscriptions = NotificationSubscriptionManager()

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(session.router, prefix="/session", tags=["Session"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(roles.router, prefix="/roles", tags=["Roles"])
app.include_router(categories.router, prefix="/categories", tags=["Categories"])
app.include_router(estados.router, prefix="/estados", tags=["Estados"])
app.include_router(reportes.router, prefix="/reportes", tags=["Reportes"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(auditoria.router, prefix="/auditoria", tags=["Auditoria"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])


@app.get("/")
def root():
    return {"status": "ok"}
