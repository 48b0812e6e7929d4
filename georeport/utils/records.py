"""Helpers shared by the CRUD routers: live lookups, soft deletes and bulk runs."""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Type, TypeVar

from fastapi import HTTPException
from sqlmodel import Session, SQLModel, select

from georeport.logging_utils import get_logger
from georeport.models.enums import OperationType
from georeport.utils.audit_log import record_change, snapshot
from georeport.utils.bulk_actions import BulkActionRunner, BulkActionType, BulkResult
from georeport.utils.bulk_selection import BulkSelection
from georeport.utils.notifier import discard_pending, publish_pending
from georeport.utils.realtime import NotificationSubscriptionManager

logger = get_logger(__name__)

M = TypeVar("M", bound=SQLModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_uuid(value: Any, label: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def list_live(session: Session, model: Type[M], ids: Optional[Iterable[Any]] = None) -> List[M]:
    """Rows that are not soft-deleted, newest first."""
    query = (
        select(model)
        .where(model.deleted_at.is_(None))
        .order_by(model.created_at.desc())
    )

    if ids is not None:
        parsed = []
        for value in ids:
            try:
                parsed.append(uuid.UUID(str(value)))
            except ValueError:
                continue
        query = query.where(model.id.in_(parsed))

    return list(session.exec(query).all())


def get_live_or_404(session: Session, model: Type[M], record_id: Any, label: str = "Record") -> M:
    record = session.get(model, parse_uuid(record_id, f"{label.lower()} ID"))
    if not record or record.deleted_at is not None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return record


def commit(session: Session, manager: Optional[NotificationSubscriptionManager] = None) -> None:
    session.commit()
    if manager is not None:
        publish_pending(session, manager)
    else:
        discard_pending(session)


def rollback(session: Session) -> None:
    session.rollback()
    discard_pending(session)


def apply_update(
    session: Session,
    record: SQLModel,
    table_name: str,
    changes: dict,
    user_id: uuid.UUID,
    descripcion: Optional[str] = None,
) -> dict:
    """Set ``changes`` on ``record`` and write the change-history row; returns the old snapshot."""
    before = snapshot(record)

    for field, value in changes.items():
        setattr(record, field, value)
    record.updated_at = utcnow()

    session.add(record)
    record_change(
        session,
        table_name,
        record.id,
        OperationType.UPDATE,
        before,
        snapshot(record),
        user_id,
        descripcion,
    )
    return before


def record_insert(session: Session, record: SQLModel, table_name: str, user_id: uuid.UUID) -> None:
    session.add(record)
    record_change(session, table_name, record.id, OperationType.INSERT, None, snapshot(record), user_id)


def soft_delete(session: Session, record: SQLModel, table_name: str, user_id: uuid.UUID, active_field: Optional[str] = "activo") -> None:
    """Mark a row deleted; rows are never physically removed."""
    if record.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Record already deleted")

    changes = {"deleted_at": utcnow()}
    if active_field:
        changes[active_field] = False

    apply_update(session, record, table_name, changes, user_id, f"Soft delete on {table_name}")
    logger.info("Soft-deleted %s %s by %s", table_name, record.id, user_id)


def run_bulk(
    session: Session,
    model: Type[M],
    ids: List[str],
    action: BulkActionType,
    entity: str,
    mutation: Callable[[M], None],
    manager: Optional[NotificationSubscriptionManager] = None,
) -> BulkResult:
    """Apply ``mutation`` to each live selected row, committing record by record."""
    if not ids:
        raise HTTPException(status_code=400, detail="No records selected")

    live = list_live(session, model, ids)
    selection = BulkSelection.from_ids(live, ids)

    runner: BulkActionRunner[M] = BulkActionRunner(action, entity)
    runner.prepare(selection.get_selected_data(), missing_ids=selection.stale_ids())

    def step(record: M) -> None:
        mutation(record)
        commit(session, manager)

    return runner.run(step, on_failure=lambda: rollback(session))
