"""Profile statistics derived from appointment rows at read time.

Stored counters on profile documents are never trusted; every read
recomputes them.
"""
from datetime import datetime

from sqlalchemy.orm import Session

from proflink.core.clock import as_utc, utcnow
from proflink.models.appointment import Appointment


def effective_time(appointment: Appointment) -> datetime:
    return as_utc(appointment.reschedule_time or appointment.requested_time)


def is_completed(appointment: Appointment, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return appointment.status == 'accepted' and effective_time(appointment) < now


def _base_statistics(appointments: list[Appointment], now: datetime) -> dict:
    return {
        'totalAppointments': len(appointments),
        'completedAppointments': sum(1 for item in appointments if is_completed(item, now)),
        'cancelledAppointments': sum(1 for item in appointments if item.status == 'cancelled'),
    }


def student_statistics(db: Session, student_uid: str, now: datetime | None = None) -> dict:
    appointments = db.query(Appointment).filter(Appointment.student_uid == student_uid).all()
    return _base_statistics(appointments, now or utcnow())


def faculty_statistics(db: Session, faculty_uid: str, now: datetime | None = None) -> dict:
    appointments = db.query(Appointment).filter(Appointment.faculty_uid == faculty_uid).all()
    statistics = _base_statistics(appointments, now or utcnow())
    ratings = [item.student_rating for item in appointments if item.student_rating]
    statistics['averageRating'] = round(sum(ratings) / len(ratings), 2) if ratings else 0
    return statistics
