from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, func, select

from georeport.db.db import get_session
from georeport.models.category import Category
from georeport.models.enums import Permission, Priority
from georeport.models.estado import Estado
from georeport.models.profile import Profile
from georeport.models.reporte import Reporte, reporte_status
from georeport.models.role import Role
from georeport.utils.auth_helper import require_permission

router = APIRouter()


class DashboardStats(BaseModel):
    total_reportes: int
    reportes_current_month: int
    reportes_by_status: Dict[str, int]
    reportes_by_estado: Dict[str, int]
    reportes_by_categoria: Dict[str, int]
    reportes_by_priority: Dict[str, int]
    active_users: int
    active_roles: int
    active_categories: int
    active_estados: int


def _count_active(session: Session, model, active_column) -> int:
    return session.exec(
        select(func.count(model.id))
        .where(model.deleted_at.is_(None))
        .where(active_column.is_(True))
    ).one()


def _count_by(reportes, key) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for reporte in reportes:
        name = key(reporte)
        counts[name] = counts.get(name, 0) + 1
    return counts


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    session: Session = Depends(get_session),
    user: Profile = Depends(require_permission(Permission.ver_reporte)),
):
    """Counters for the dashboard landing page"""
    now = datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    reportes = session.exec(select(Reporte).where(Reporte.deleted_at.is_(None))).all()

    categorias = {c.id: c.nombre for c in session.exec(select(Category)).all()}
    estados = {e.id: e.nombre for e in session.exec(select(Estado)).all()}

    # SQLite hands back naive datetimes
    current_month = [
        r for r in reportes
        if (r.created_at if r.created_at.tzinfo else r.created_at.replace(tzinfo=timezone.utc)) >= month_start
    ]

    return DashboardStats(
        total_reportes=len(reportes),
        reportes_current_month=len(current_month),
        reportes_by_status=_count_by(reportes, reporte_status),
        reportes_by_estado=_count_by(reportes, lambda r: estados.get(r.estado_id, "unknown")),
        reportes_by_categoria=_count_by(reportes, lambda r: categorias.get(r.categoria_id, "unknown")),
        reportes_by_priority=_count_by(reportes, lambda r: Priority(r.priority).value),
        active_users=_count_active(session, Profile, Profile.asset),
        active_roles=_count_active(session, Role, Role.activo),
        active_categories=_count_active(session, Category, Category.activo),
        active_estados=_count_active(session, Estado, Estado.activo),
    )
