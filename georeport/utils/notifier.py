import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import Request
from sqlmodel import Session

from georeport.logging_utils import get_logger
from georeport.models.enums import DELETION_NOTIFICATION_TYPES, NotificationType
from georeport.models.notification import Notification
from georeport.utils.realtime import NotificationSubscriptionManager

logger = get_logger(__name__)

OUTBOX_KEY = "notification_outbox"

TABLE_LABELS = {
    "categories": "Category",
    "estados": "Estado",
    "roles": "Role",
    "reportes": "Report",
    "profiles": "User",
}


def get_subscription_manager(request: Request) -> NotificationSubscriptionManager:
    return request.app.state.subscriptions


def queue_event(session: Session, event_type: str, user_id: Any, new: Optional[dict] = None, old: Optional[dict] = None):
    """Remember a realtime event until the session commits."""
    session.info.setdefault(OUTBOX_KEY, []).append((event_type, str(user_id), new, old))


def create_notification(
    session: Session,
    user_id: uuid.UUID,
    type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data or {},
    )
    session.add(notification)
    session.flush()
    queue_event(session, "INSERT", user_id, new=notification.model_dump(mode="json"))
    return notification


def notify_deletion(
    session: Session,
    table_name: str,
    record_name: str,
    deleted_by: uuid.UUID,
    recipients: Iterable[Optional[uuid.UUID]],
    data: Optional[Dict[str, Any]] = None,
) -> List[Notification]:
    """Tell the owners of a soft-deleted record, skipping whoever deleted it."""
    label = TABLE_LABELS.get(table_name, table_name)
    notification_type = DELETION_NOTIFICATION_TYPES[table_name]

    sent = []
    for recipient in dict.fromkeys(r for r in recipients if r is not None):
        if recipient == deleted_by:
            continue
        sent.append(create_notification(
            session,
            recipient,
            notification_type,
            f"{label} deleted",
            f"{label} '{record_name}' was deleted",
            data,
        ))

    return sent


def publish_pending(session: Session, manager: NotificationSubscriptionManager) -> int:
    """Push the events queued on ``session`` to realtime subscribers; call after commit."""
    outbox: List[Tuple[str, str, Optional[dict], Optional[dict]]] = session.info.pop(OUTBOX_KEY, [])

    delivered = 0
    for event_type, user_id, new, old in outbox:
        try:
            delivered += manager.publish(user_id, event_type, new=new, old=old)
        except Exception:
            logger.exception("Failed to publish %s event for user %s", event_type, user_id)

    return delivered


def discard_pending(session: Session) -> None:
    session.info.pop(OUTBOX_KEY, None)
