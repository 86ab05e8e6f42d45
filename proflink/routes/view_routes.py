"""Role-gated pages: landing, dashboards and the role-dispatched profile."""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proflink.auth.dependencies import get_current_user, get_optional_user, require_faculty, require_student
from proflink.database import get_db
from proflink.models.user import User
from proflink.routes.appointment_routes import AppointmentResponse
from proflink.routes.common import database_unavailable, ensure_database_ready
from proflink.routes.profile_routes import ProfileResponse, load_faculty_profile, load_student_profile
from proflink.services import notifications
from proflink.services.appointment_workflow import AppointmentWorkflow
from proflink.services.directory_sync import list_faculty_directory
from proflink.services.side_effects import SideEffectQueue

router = APIRouter(tags=['views'])

RECENT_APPOINTMENTS_LIMIT = 5
DASHBOARD_PATHS = {'student': '/dashboard/student', 'faculty': '/dashboard/faculty'}


@router.get('/')
def landing(current_user: User | None = Depends(get_optional_user)):
    if current_user is None:
        return {'status': 'ProfLink API Running', 'links': {'login': '/auth/login', 'register': '/auth/register'}}
    return {'status': 'ProfLink API Running', 'home': DASHBOARD_PATHS[current_user.role]}


def _dashboard(db: Session, user: User) -> dict:
    ensure_database_ready()
    workflow = AppointmentWorkflow(db, SideEffectQueue())
    try:
        appointments = workflow.list_for(user)
        counts = workflow.counts_for(user)
        notification_counts = notifications.count_notifications(db, user.uid)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return {
        'user': {'uid': user.uid, 'name': user.name, 'email': user.email, 'role': user.role, 'code': user.code},
        'counts': counts,
        'recent_appointments': [
            AppointmentResponse.from_appointment(appointment).model_dump(mode='json')
            for appointment in appointments[:RECENT_APPOINTMENTS_LIMIT]
        ],
        'notifications': notification_counts,
    }


@router.get('/dashboard/student')
def student_dashboard(current_user: User = Depends(require_student), db: Session = Depends(get_db)):
    dashboard = _dashboard(db, current_user)
    try:
        dashboard['faculty_available'] = len(list_faculty_directory(db))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return dashboard


@router.get('/dashboard/faculty')
def faculty_dashboard(current_user: User = Depends(require_faculty), db: Session = Depends(get_db)):
    return _dashboard(db, current_user)


@router.get('/profile', response_model=ProfileResponse)
def my_profile(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if current_user.role == 'faculty':
        return load_faculty_profile(db, current_user)
    return load_student_profile(db, current_user)
