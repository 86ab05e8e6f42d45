from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proflink.auth.dependencies import require_faculty, require_student
from proflink.database import get_db
from proflink.models.user import User
from proflink.routes.common import database_unavailable
from proflink.services import profile_store, statistics
from proflink.services.directory_sync import enqueue_directory_sync
from proflink.services.side_effects import SideEffectQueue, get_side_effect_queue

router = APIRouter(tags=['profiles'])


class PersonalInfoResponse(BaseModel):
    name: str
    email: str
    code: str | None = None


class ProfileResponse(BaseModel):
    profile_id: str
    role: str
    personal: PersonalInfoResponse
    profile: dict[str, Any]
    statistics: dict[str, Any]


def build_profile_response(user: User, document: dict, stats: dict) -> ProfileResponse:
    return ProfileResponse(
        profile_id=user.profile_doc_id,
        role=user.role,
        personal=PersonalInfoResponse(name=user.name or '', email=user.email or '', code=user.code),
        profile=document,
        statistics=stats,
    )


def load_student_profile(db: Session, user: User) -> ProfileResponse:
    try:
        document = profile_store.get_student_profile(db, user.uid, user.profile_doc_id)
        stats = statistics.student_statistics(db, user.uid)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return build_profile_response(user, document, stats)


def load_faculty_profile(db: Session, user: User) -> ProfileResponse:
    try:
        document = profile_store.get_faculty_profile(db, user.uid, user.profile_doc_id)
        stats = statistics.faculty_statistics(db, user.uid)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return build_profile_response(user, document, stats)


@router.get('/student', response_model=ProfileResponse)
def get_student_profile(current_user: User = Depends(require_student), db: Session = Depends(get_db)):
    return load_student_profile(db, current_user)


@router.put('/student', response_model=ProfileResponse)
def save_student_profile(
    data: dict[str, Any] = Body(...),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    try:
        profile_store.save_student_profile(db, current_user.uid, current_user.profile_doc_id, data)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    return load_student_profile(db, current_user)


@router.get('/faculty', response_model=ProfileResponse)
def get_faculty_profile(current_user: User = Depends(require_faculty), db: Session = Depends(get_db)):
    return load_faculty_profile(db, current_user)


@router.put('/faculty', response_model=ProfileResponse)
def save_faculty_profile(
    background_tasks: BackgroundTasks,
    data: dict[str, Any] = Body(...),
    current_user: User = Depends(require_faculty),
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    try:
        saved = profile_store.save_faculty_profile(db, current_user.uid, current_user.profile_doc_id, data)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    enqueue_directory_sync(side_effects, current_user, saved)
    background_tasks.add_task(side_effects.flush)
    return load_faculty_profile(db, current_user)
