"""Per-recipient notification records and their live fan-out."""
import logging
import time

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from proflink.core.ids import generate_document_id
from proflink.models.notification import Notification
from proflink.services.realtime import RealtimeHub, notifications_channel, realtime_hub

logger = logging.getLogger(__name__)


def now_millis() -> int:
    return int(time.time() * 1000)


def serialize_notification(notification: Notification) -> dict:
    return {
        'id': notification.id,
        'type': notification.type,
        'to': notification.recipient_uid,
        'from': notification.sender_uid,
        'title': notification.title,
        'body': notification.body,
        'appointment_id': notification.appointment_id,
        'created_at': notification.created_at,
        'read': bool(notification.read),
    }


def write_notification(
    db: Session,
    *,
    recipient_uid: str,
    sender_uid: str | None,
    notification_type: str,
    title: str,
    body: str,
    appointment_id: str | None = None,
    hub: RealtimeHub | None = None,
) -> Notification:
    notification = Notification(
        id=generate_document_id(),
        recipient_uid=recipient_uid,
        sender_uid=sender_uid,
        type=notification_type,
        title=title,
        body=body,
        appointment_id=appointment_id,
        created_at=now_millis(),
        read=False,
    )
    db.add(notification)
    db.commit()
    logger.info('Notification %s (%s) written for %s', notification.id, notification_type, recipient_uid)

    (hub or realtime_hub).publish(
        notifications_channel(recipient_uid),
        {'event': 'notification_added', 'notification': serialize_notification(notification)},
    )
    return notification


def list_notifications(db: Session, recipient_uid: str, unread_only: bool = False) -> list[Notification]:
    query = db.query(Notification).filter(Notification.recipient_uid == recipient_uid)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc()).all()


def count_notifications(db: Session, recipient_uid: str) -> dict:
    notifications = list_notifications(db, recipient_uid)
    return {
        'total': len(notifications),
        'unread': sum(1 for notification in notifications if not notification.read),
    }


def _get_owned_notification(db: Session, recipient_uid: str, notification_id: str) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.recipient_uid == recipient_uid,
    ).first()
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Notification not found.')
    return notification


def mark_notification_read(
    db: Session,
    recipient_uid: str,
    notification_id: str,
    hub: RealtimeHub | None = None,
) -> Notification:
    notification = _get_owned_notification(db, recipient_uid, notification_id)
    notification.read = True
    db.commit()
    (hub or realtime_hub).publish(
        notifications_channel(recipient_uid),
        {'event': 'notification_read', 'id': notification_id},
    )
    return notification


def delete_notification(
    db: Session,
    recipient_uid: str,
    notification_id: str,
    hub: RealtimeHub | None = None,
) -> None:
    notification = _get_owned_notification(db, recipient_uid, notification_id)
    db.delete(notification)
    db.commit()
    (hub or realtime_hub).publish(
        notifications_channel(recipient_uid),
        {'event': 'notification_removed', 'id': notification_id},
    )


def clear_notifications(db: Session, recipient_uid: str, hub: RealtimeHub | None = None) -> int:
    removed = db.query(Notification).filter(
        Notification.recipient_uid == recipient_uid,
    ).delete(synchronize_session=False)
    db.commit()
    (hub or realtime_hub).publish(
        notifications_channel(recipient_uid),
        {'event': 'notifications_cleared', 'removed': removed},
    )
    return removed
