from datetime import datetime
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proflink.auth.dependencies import get_current_user, require_faculty, require_student
from proflink.core import config
from proflink.database import get_db
from proflink.models.user import User
from proflink.routes.common import database_unavailable, ensure_database_ready
from proflink.services.appointment_workflow import AppointmentWorkflow
from proflink.services.realtime import appointments_channel, stream_channel
from proflink.services.side_effects import SideEffectQueue, get_side_effect_queue

router = APIRouter(tags=['appointments'])

StatusFilter = Literal['pending', 'accepted', 'declined', 'rescheduled', 'cancelled']


class CreateAppointmentRequest(BaseModel):
    faculty_id: str | None = None
    requested_time: datetime | None = None
    reason: str | None = None

    @field_validator('faculty_id')
    @classmethod
    def validate_faculty_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class DecisionRequest(BaseModel):
    decision: Literal['accepted', 'declined']


class RescheduleRequest(BaseModel):
    new_time: datetime | None = None


class NotesRequest(BaseModel):
    notes: str | None = None


class FeedbackRequest(BaseModel):
    feedback: str | None = None
    rating: int | None = None


class AppointmentResponse(BaseModel):
    id: str
    student_id: str
    student_name: str
    student_email: str
    faculty_id: str
    faculty_name: str
    faculty_email: str
    requested_time: datetime
    reschedule_time: datetime | None = None
    reason: str
    status: str
    meeting_link: str | None = None
    faculty_notes: str | None = None
    student_feedback: str | None = None
    student_rating: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_appointment(cls, appointment) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            student_id=appointment.student_uid,
            student_name=appointment.student_name or '',
            student_email=appointment.student_email or '',
            faculty_id=appointment.faculty_uid,
            faculty_name=appointment.faculty_name or '',
            faculty_email=appointment.faculty_email or '',
            requested_time=appointment.requested_time,
            reschedule_time=appointment.reschedule_time,
            reason=appointment.reason or '',
            status=appointment.status,
            meeting_link=appointment.meeting_link,
            faculty_notes=appointment.faculty_notes,
            student_feedback=appointment.student_feedback,
            student_rating=appointment.student_rating,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class AppointmentListResponse(BaseModel):
    appointments: list[AppointmentResponse]
    counts: dict[str, int]


def _run(db: Session, action):
    ensure_database_ready()
    try:
        return AppointmentResponse.from_appointment(action())
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def request_appointment(
    data: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    workflow = AppointmentWorkflow(db, side_effects)
    response = _run(
        db,
        lambda: workflow.request_appointment(current_user, data.faculty_id, data.requested_time, data.reason),
    )
    background_tasks.add_task(side_effects.flush)
    return response


@router.get('', response_model=AppointmentListResponse)
def list_my_appointments(
    status_filter: StatusFilter | None = Query(default=None, alias='status'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    workflow = AppointmentWorkflow(db, SideEffectQueue())
    try:
        appointments = workflow.list_for(current_user, status_filter)
        counts = workflow.counts_for(current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_appointment(appointment) for appointment in appointments],
        counts=counts,
    )


@router.get('/stream')
async def stream_my_appointments(request: Request, current_user: User = Depends(get_current_user)):
    return StreamingResponse(
        stream_channel(request, appointments_channel(current_user.uid), config.REALTIME_KEEPALIVE_SECONDS),
        media_type='text/event-stream',
    )


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    workflow = AppointmentWorkflow(db, SideEffectQueue())
    return _run(db, lambda: workflow.get_for(current_user, appointment_id))


@router.post('/{appointment_id}/decision', response_model=AppointmentResponse)
def decide_appointment(
    appointment_id: str,
    data: DecisionRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_faculty),
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    workflow = AppointmentWorkflow(db, side_effects)
    response = _run(db, lambda: workflow.decide(current_user, appointment_id, data.decision))
    background_tasks.add_task(side_effects.flush)
    return response


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: str,
    data: RescheduleRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_faculty),
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    workflow = AppointmentWorkflow(db, side_effects)
    response = _run(db, lambda: workflow.reschedule(current_user, appointment_id, data.new_time))
    background_tasks.add_task(side_effects.flush)
    return response


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    workflow = AppointmentWorkflow(db, side_effects)
    response = _run(db, lambda: workflow.cancel(current_user, appointment_id))
    background_tasks.add_task(side_effects.flush)
    return response


@router.post('/{appointment_id}/notes', response_model=AppointmentResponse)
def add_faculty_notes(
    appointment_id: str,
    data: NotesRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_faculty),
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    workflow = AppointmentWorkflow(db, side_effects)
    response = _run(db, lambda: workflow.add_faculty_notes(current_user, appointment_id, data.notes))
    background_tasks.add_task(side_effects.flush)
    return response


@router.post('/{appointment_id}/feedback', response_model=AppointmentResponse)
def submit_feedback(
    appointment_id: str,
    data: FeedbackRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    workflow = AppointmentWorkflow(db, side_effects)
    response = _run(db, lambda: workflow.submit_feedback(current_user, appointment_id, data.feedback, data.rating))
    background_tasks.add_task(side_effects.flush)
    return response
