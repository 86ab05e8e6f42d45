"""Appointment lifecycle: request, faculty decisions, cancellation, annotations.

Status moves::

    pending      -> accepted | declined | rescheduled | cancelled
    rescheduled  -> accepted | declined | rescheduled | cancelled
    accepted     -> rescheduled

``declined`` and ``cancelled`` are terminal. Notes and feedback are
annotations on accepted appointments and never change the status.
Transitions are last-write-wins; nothing here locks the row.

Every change enqueues its notification on the side-effect queue, which
runs after the primary commit and never fails the caller.
"""
import logging
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from proflink.core import config
from proflink.core.clock import as_utc, utcnow
from proflink.core.ids import generate_document_id
from proflink.models.appointment import Appointment
from proflink.models.user import User
from proflink.services.notifications import write_notification
from proflink.services.realtime import appointments_channel, realtime_hub
from proflink.services.side_effects import SideEffectQueue

logger = logging.getLogger(__name__)

STATUSES = ('pending', 'accepted', 'declined', 'rescheduled', 'cancelled')
DECISIONS = ('accepted', 'declined')
DECISION_SOURCE_STATUSES = {'pending', 'rescheduled'}
RESCHEDULE_SOURCE_STATUSES = {'pending', 'rescheduled', 'accepted'}
CANCEL_SOURCE_STATUSES = {'pending', 'rescheduled'}
MEETING_ROOM_SUFFIX_LENGTH = 8
MAX_REASON_LENGTH = 1000
MAX_NOTES_LENGTH = 2000
MAX_ID_ATTEMPTS = 10


def generate_meeting_link(appointment_id: str) -> str:
    room_name = f'ProfLink-{appointment_id[-MEETING_ROOM_SUFFIX_LENGTH:]}'
    return f'{config.MEETING_BASE_URL.rstrip("/")}/{room_name}'


def display_name(user: User) -> str:
    return user.name or user.email or user.uid


def publish_appointment_update(*, appointment_id: str, status_value: str, participants: list[str]) -> None:
    event = {'event': 'appointment_updated', 'appointment_id': appointment_id, 'status': status_value}
    for uid in participants:
        realtime_hub.publish(appointments_channel(uid), event)


class AppointmentWorkflow:
    def __init__(self, db: Session, side_effects: SideEffectQueue):
        self.db = db
        self.side_effects = side_effects

    def _insert_with_unique_room(self, **fields) -> Appointment:
        """Insert a new appointment whose meeting-room suffix no other appointment uses.

        ``room_suffix`` carries a unique index; a clash on insert rolls back
        and retries with a fresh id.
        """
        for _ in range(MAX_ID_ATTEMPTS):
            appointment_id = generate_document_id()
            appointment = Appointment(
                id=appointment_id,
                room_suffix=appointment_id[-MEETING_ROOM_SUFFIX_LENGTH:],
                **fields,
            )
            self.db.add(appointment)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning('Appointment id %s clashed with an existing meeting room; retrying', appointment_id)
                continue
            self.db.refresh(appointment)
            return appointment
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Could not allocate an appointment id. Please try again.',
        )

    def _get(self, appointment_id: str) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Appointment not found.')
        return appointment

    def _get_for_faculty(self, actor: User, appointment_id: str) -> Appointment:
        appointment = self._get(appointment_id)
        if appointment.faculty_uid != actor.uid:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the assigned faculty member can update this appointment.',
            )
        return appointment

    def _get_for_student(self, actor: User, appointment_id: str) -> Appointment:
        appointment = self._get(appointment_id)
        if appointment.student_uid != actor.uid:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the student who requested this appointment can update it.',
            )
        return appointment

    def _notify(
        self,
        appointment: Appointment,
        *,
        recipient_uid: str,
        sender_uid: str,
        notification_type: str,
        title: str,
        body: str,
    ) -> None:
        self.side_effects.enqueue(
            f'notify:{notification_type}',
            write_notification,
            recipient_uid=recipient_uid,
            sender_uid=sender_uid,
            notification_type=notification_type,
            title=title,
            body=body,
            appointment_id=appointment.id,
        )
        self.side_effects.enqueue(
            'publish:appointment_updated',
            publish_appointment_update,
            with_session=False,
            appointment_id=appointment.id,
            status_value=appointment.status,
            participants=[appointment.student_uid, appointment.faculty_uid],
        )

    @staticmethod
    def _require_future(value: datetime, message: str) -> datetime:
        value = as_utc(value)
        if value <= utcnow():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
        return value

    def request_appointment(
        self,
        student: User,
        faculty_uid: str | None,
        requested_time: datetime | None,
        reason: str | None = None,
    ) -> Appointment:
        if student.role != 'student':
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only students can request appointments.',
            )
        if not faculty_uid or requested_time is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Please select a faculty and a requested time.',
            )
        requested_time = self._require_future(requested_time, 'Requested time must be in the future.')

        reason = (reason or '').strip()
        if len(reason) > MAX_REASON_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'Reason must be {MAX_REASON_LENGTH} characters or fewer.',
            )

        faculty = self.db.query(User).filter(User.uid == faculty_uid).first()
        if faculty is None or faculty.role != 'faculty':
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Faculty member not found.')

        appointment = self._insert_with_unique_room(
            student_uid=student.uid,
            student_name=display_name(student),
            student_email=student.email or '',
            faculty_uid=faculty.uid,
            faculty_name=display_name(faculty),
            faculty_email=faculty.email or '',
            requested_time=requested_time,
            reason=reason,
            status='pending',
        )
        logger.info('Appointment %s requested by %s with %s', appointment.id, student.uid, faculty.uid)

        self._notify(
            appointment,
            recipient_uid=faculty.uid,
            sender_uid=student.uid,
            notification_type='appointment_request',
            title='New Appointment Request',
            body=f'{display_name(student)} requested an appointment',
        )
        return appointment

    def cancel(self, student: User, appointment_id: str) -> Appointment:
        appointment = self._get_for_student(student, appointment_id)
        if appointment.status not in CANCEL_SOURCE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'A {appointment.status} appointment cannot be cancelled.',
            )

        appointment.status = 'cancelled'
        self.db.commit()
        self.db.refresh(appointment)
        logger.info('Appointment %s cancelled by %s', appointment.id, student.uid)

        self._notify(
            appointment,
            recipient_uid=appointment.faculty_uid,
            sender_uid=student.uid,
            notification_type='appointment_cancelled',
            title='Appointment Cancelled',
            body=f'{appointment.student_name} cancelled their appointment.',
        )
        return appointment

    def submit_feedback(self, student: User, appointment_id: str, feedback: str | None, rating: int | None) -> Appointment:
        feedback = (feedback or '').strip()
        if not feedback or not rating:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Please provide both feedback and rating.',
            )
        if not 1 <= rating <= 5:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Rating must be between 1 and 5.',
            )

        appointment = self._get_for_student(student, appointment_id)
        if appointment.status != 'accepted':
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Feedback can only be left on accepted appointments.',
            )
        if appointment.student_feedback:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Feedback has already been submitted.',
            )

        appointment.student_feedback = feedback
        appointment.student_rating = rating
        appointment.feedback_submitted_at = utcnow()
        self.db.commit()
        self.db.refresh(appointment)

        self._notify(
            appointment,
            recipient_uid=appointment.faculty_uid,
            sender_uid=student.uid,
            notification_type='appointment_feedback',
            title='New Feedback Received',
            body=f'{appointment.student_name} rated your appointment {rating}/5.',
        )
        return appointment

    def decide(self, faculty: User, appointment_id: str, decision: str) -> Appointment:
        if decision not in DECISIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Decision must be accepted or declined.',
            )

        appointment = self._get_for_faculty(faculty, appointment_id)
        if appointment.status not in DECISION_SOURCE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'A {appointment.status} appointment cannot be {decision}.',
            )

        appointment.status = decision
        if decision == 'accepted':
            appointment.meeting_link = generate_meeting_link(appointment.id)
        self.db.commit()
        self.db.refresh(appointment)
        logger.info('Appointment %s %s by %s', appointment.id, decision, faculty.uid)

        self._notify(
            appointment,
            recipient_uid=appointment.student_uid,
            sender_uid=faculty.uid,
            notification_type=f'appointment_{decision}',
            title=f'Appointment {decision}',
            body=f'Your appointment request was {decision}.',
        )
        return appointment

    def reschedule(self, faculty: User, appointment_id: str, new_time: datetime | None) -> Appointment:
        if new_time is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Pick a new time first.')

        appointment = self._get_for_faculty(faculty, appointment_id)
        if appointment.status not in RESCHEDULE_SOURCE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'A {appointment.status} appointment cannot be rescheduled.',
            )
        new_time = self._require_future(new_time, 'The new time must be in the future.')

        appointment.status = 'rescheduled'
        appointment.reschedule_time = new_time
        self.db.commit()
        self.db.refresh(appointment)
        logger.info('Appointment %s rescheduled by %s', appointment.id, faculty.uid)

        self._notify(
            appointment,
            recipient_uid=appointment.student_uid,
            sender_uid=faculty.uid,
            notification_type='appointment_rescheduled',
            title='Appointment Rescheduled',
            body=f'Your appointment has been rescheduled to {new_time:%Y-%m-%d %H:%M} UTC',
        )
        return appointment

    def add_faculty_notes(self, faculty: User, appointment_id: str, notes: str | None) -> Appointment:
        notes = (notes or '').strip()
        if not notes:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Please enter notes.')
        if len(notes) > MAX_NOTES_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.',
            )

        appointment = self._get_for_faculty(faculty, appointment_id)
        if appointment.status != 'accepted':
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Notes can only be added to accepted appointments.',
            )

        appointment.faculty_notes = notes
        appointment.notes_updated_at = utcnow()
        self.db.commit()
        self.db.refresh(appointment)

        self._notify(
            appointment,
            recipient_uid=appointment.student_uid,
            sender_uid=faculty.uid,
            notification_type='faculty_notes',
            title='Faculty Notes Added',
            body=f'{appointment.faculty_name} added notes to your appointment.',
        )
        return appointment

    def list_for(self, user: User, status_filter: str | None = None) -> list[Appointment]:
        column = Appointment.student_uid if user.role == 'student' else Appointment.faculty_uid
        query = self.db.query(Appointment).filter(column == user.uid)
        if status_filter:
            query = query.filter(Appointment.status == status_filter)
        return query.order_by(Appointment.created_at.desc()).all()

    def counts_for(self, user: User) -> dict[str, int]:
        appointments = self.list_for(user)
        counts = {'all': len(appointments), **{value: 0 for value in STATUSES}}
        for appointment in appointments:
            if appointment.status in counts:
                counts[appointment.status] += 1
        return counts

    def get_for(self, user: User, appointment_id: str) -> Appointment:
        appointment = self._get(appointment_id)
        if user.uid not in (appointment.student_uid, appointment.faculty_uid):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='You are not a participant in this appointment.',
            )
        return appointment
