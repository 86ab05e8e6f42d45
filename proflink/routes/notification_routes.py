from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proflink.auth.dependencies import get_current_user
from proflink.core import config
from proflink.database import get_db
from proflink.models.user import User
from proflink.routes.common import database_unavailable, ensure_database_ready
from proflink.services import notifications
from proflink.services.realtime import notifications_channel, stream_channel

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    id: str
    type: str
    to: str
    sender: str | None = Field(default=None, serialization_alias='from')
    title: str
    body: str
    appointment_id: str | None = None
    created_at: int
    read: bool

    @classmethod
    def from_notification(cls, notification) -> 'NotificationResponse':
        return cls(
            id=notification.id,
            type=notification.type,
            to=notification.recipient_uid,
            sender=notification.sender_uid,
            title=notification.title,
            body=notification.body,
            appointment_id=notification.appointment_id,
            created_at=notification.created_at,
            read=bool(notification.read),
        )


class NotificationCountResponse(BaseModel):
    total: int
    unread: int


@router.get('', response_model=list[NotificationResponse], response_model_by_alias=True)
def list_my_notifications(
    unread_only: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    try:
        items = notifications.list_notifications(db, current_user.uid, unread_only=unread_only)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return [NotificationResponse.from_notification(item) for item in items]


@router.get('/count', response_model=NotificationCountResponse)
def count_my_notifications(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_database_ready()
    try:
        return notifications.count_notifications(db, current_user.uid)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/stream')
async def stream_my_notifications(request: Request, current_user: User = Depends(get_current_user)):
    return StreamingResponse(
        stream_channel(request, notifications_channel(current_user.uid), config.REALTIME_KEEPALIVE_SECONDS),
        media_type='text/event-stream',
    )


@router.post('/{notification_id}/read', response_model=NotificationResponse, response_model_by_alias=True)
def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    try:
        notification = notifications.mark_notification_read(db, current_user.uid, notification_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    return NotificationResponse.from_notification(notification)


@router.delete('/{notification_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    try:
        notifications.delete_notification(db, current_user.uid, notification_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('', status_code=status.HTTP_200_OK)
def clear_notifications(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_database_ready()
    try:
        removed = notifications.clear_notifications(db, current_user.uid)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    return {'removed': removed}
