import asyncio
import contextlib
from datetime import timedelta
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from jose import JWTError
from pydantic import BaseModel, Field
from sqlmodel import Session, func, select

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.notification import Notification, NotificationSettings
from georeport.models.profile import Profile
from georeport.utils.audit_log import snapshot
from georeport.utils.auth_helper import decode_token, get_active_user, get_db_user
from georeport.utils.bulk_actions import BulkActionRunner, BulkActionType, BulkResult
from georeport.utils.bulk_selection import BulkSelection
from georeport.utils.form_validator import BulkActionRequest
from georeport.utils.notifier import get_subscription_manager, queue_event
from georeport.utils.realtime import NotificationSubscriptionManager
from georeport.utils.records import commit, parse_uuid, rollback, utcnow

logger = get_logger(__name__)

router = APIRouter()


class UpdateNotificationSettings(BaseModel):
    enabled: Optional[bool] = None
    auto_delete_read: Optional[bool] = None
    retention_days: Optional[int] = Field(default=None, ge=1, le=365)
    theme: Optional[Literal["light", "dark", "system"]] = None


def get_settings(session: Session, user_id) -> NotificationSettings:
    settings = session.exec(
        select(NotificationSettings).where(NotificationSettings.user_id == user_id)
    ).first()

    if not settings:
        settings = NotificationSettings(user_id=user_id)
        session.add(settings)
        session.flush()

    return settings


def _get_own_or_404(session: Session, notification_id: str, user: Profile) -> Notification:
    notif = session.exec(
        select(Notification)
        .where(Notification.id == parse_uuid(notification_id, "notification ID"))
        .where(Notification.user_id == user.id)
    ).first()

    if not notif:
        raise HTTPException(status_code=404, detail="Notification not found")

    return notif


def _delete(session: Session, notif: Notification) -> None:
    queue_event(session, "DELETE", notif.user_id, old=snapshot(notif))
    session.delete(notif)


def _mark_read(session: Session, notif: Notification, settings: NotificationSettings) -> None:
    if settings.auto_delete_read:
        _delete(session, notif)
        return

    before = snapshot(notif)
    notif.read = True
    notif.updated_at = utcnow()
    session.add(notif)
    queue_event(session, "UPDATE", notif.user_id, new=snapshot(notif), old=before)


def _require_enabled(settings: NotificationSettings) -> None:
    if not settings.enabled:
        raise HTTPException(status_code=400, detail="Notifications are disabled")


@router.get("/")
async def get_my_notifications(
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    settings = get_settings(session, user.id)
    session.commit()

    if not settings.enabled:
        return {"notifications": []}

    query = (
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )

    if unread_only:
        query = query.where(Notification.read.is_(False))

    return {"notifications": session.exec(query).all()}


@router.get("/count")
async def get_unread_notifications_count(
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    count = session.exec(
        select(func.count(Notification.id))
        .where(Notification.user_id == user.id)
        .where(Notification.read.is_(False))
    ).one()

    return {"count": count}


@router.get("/settings", response_model=NotificationSettings)
async def get_notification_settings(
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    settings = get_settings(session, user.id)
    session.commit()
    session.refresh(settings)
    return settings


@router.put("/settings", response_model=NotificationSettings)
async def update_notification_settings(
    payload: UpdateNotificationSettings,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    settings = get_settings(session, user.id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(settings, field, value)
    settings.updated_at = utcnow()

    session.add(settings)
    session.commit()
    session.refresh(settings)

    logger.info("Notification settings updated for user %s", user.id)
    return settings


@router.post("/mark-all-read")
async def mark_all_notifications_read(
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    settings = get_settings(session, user.id)
    _require_enabled(settings)

    notifications = session.exec(
        select(Notification)
        .where(Notification.user_id == user.id)
        .where(Notification.read.is_(False))
    ).all()

    for notif in notifications:
        _mark_read(session, notif, settings)

    commit(session, manager)

    return {"ok": True, "count": len(notifications)}


@router.post("/cleanup")
async def cleanup_old_notifications(
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    """Delete read notifications older than the user's retention window."""
    settings = get_settings(session, user.id)
    cutoff = utcnow() - timedelta(days=settings.retention_days)

    expired = session.exec(
        select(Notification)
        .where(Notification.user_id == user.id)
        .where(Notification.read.is_(True))
        .where(Notification.created_at < cutoff)
    ).all()

    for notif in expired:
        _delete(session, notif)

    commit(session, manager)

    logger.info("Removed %d expired notifications for user %s", len(expired), user.id)
    return {"ok": True, "deleted": len(expired)}


@router.post("/bulk", response_model=BulkResult)
async def bulk_notification_action(
    payload: BulkActionRequest,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    if payload.action not in (BulkActionType.delete, BulkActionType.mark_read):
        raise HTTPException(status_code=400, detail="Invalid action")

    settings = get_settings(session, user.id)
    _require_enabled(settings)

    owned = session.exec(
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc())
    ).all()
    selection = BulkSelection.from_ids(owned, payload.ids)

    records: List[Notification] = selection.get_selected_data()
    if payload.action == BulkActionType.mark_read:
        records = [n for n in records if not n.read]

    def step(notif: Notification) -> None:
        if payload.action == BulkActionType.delete:
            _delete(session, notif)
        else:
            _mark_read(session, notif, settings)
        commit(session, manager)

    runner: BulkActionRunner[Notification] = BulkActionRunner(payload.action, "notifications")
    runner.prepare(records, missing_ids=selection.stale_ids())
    return runner.run(step, on_failure=lambda: rollback(session))


@router.post("/{notification_id}/mark-read")
async def mark_notification_read(
    notification_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    settings = get_settings(session, user.id)
    _require_enabled(settings)

    notif = _get_own_or_404(session, notification_id, user)
    _mark_read(session, notif, settings)
    commit(session, manager)

    return {"ok": True, "deleted": settings.auto_delete_read}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
    manager: NotificationSubscriptionManager = Depends(get_subscription_manager),
):
    notif = _get_own_or_404(session, notification_id, user)
    _delete(session, notif)
    commit(session, manager)

    return {"ok": True}


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    token: str = Query(...),
    session: Session = Depends(get_session),
):
    try:
        user = get_db_user(session, decode_token(token))
    except (JWTError, HTTPException):
        await websocket.close(code=1008)
        return

    manager: NotificationSubscriptionManager = websocket.app.state.subscriptions
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_message(message: dict) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, message)

    subscription = manager.acquire(user.id, on_message)
    await websocket.accept()

    async def forward():
        while True:
            await websocket.send_json(await queue.get())

    sender = asyncio.create_task(forward())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Notification socket closed for user %s", user.id)
    finally:
        subscription.release()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
