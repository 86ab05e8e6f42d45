"""Typed read/write helpers for the role profile documents.

Saves are merge-style upserts: nested maps are merged key by key and any
field missing from the update is left untouched. Lists and scalars are
replaced wholesale.
"""
import copy
import logging
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from proflink.models.profile import FacultyProfile, StudentProfile
from proflink.models.user import User
from proflink.schemas import (
    DEFAULT_FACULTY_PROFILE,
    DEFAULT_STUDENT_PROFILE,
    FacultyProfileDocument,
    StudentProfileDocument,
)

logger = logging.getLogger(__name__)

PROFILE_TYPES = {
    'student': (StudentProfile, StudentProfileDocument, DEFAULT_STUDENT_PROFILE),
    'faculty': (FacultyProfile, FacultyProfileDocument, DEFAULT_FACULTY_PROFILE),
}


def deep_merge(base: dict, patch: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _validate_update(schema: type[BaseModel], data: dict | BaseModel) -> dict:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_unset=True)
    try:
        document = schema.model_validate(data)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    return document.model_dump(by_alias=True, exclude_unset=True)


def _save_profile(kind: str, db: Session, user_id: str, profile_id: str, data: dict | BaseModel) -> dict:
    model, schema, _ = PROFILE_TYPES[kind]
    patch = _validate_update(schema, data)

    profile = db.query(model).filter(model.user_uid == user_id, model.profile_id == profile_id).first()
    if profile is None:
        profile = model(user_uid=user_id, profile_id=profile_id, data={})
        db.add(profile)

    profile.data = deep_merge(profile.data or {}, patch)

    user = db.query(User).filter(User.uid == user_id).first()
    if user is not None and not user.profile_complete:
        user.profile_complete = True

    db.commit()
    db.refresh(profile)
    logger.info('Saved %s profile %s for user %s', kind, profile_id, user_id)
    return dict(profile.data)


def _get_profile(kind: str, db: Session, user_id: str, profile_id: str) -> dict[str, Any]:
    model, schema, defaults = PROFILE_TYPES[kind]
    profile = db.query(model).filter(model.user_uid == user_id, model.profile_id == profile_id).first()
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Profile not found.')

    try:
        document = schema.model_validate(profile.data or {})
    except ValidationError as exc:
        logger.error('Stored %s profile %s for user %s is malformed: %s', kind, profile_id, user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Stored profile is malformed.',
        ) from exc

    return deep_merge(defaults, document.model_dump(by_alias=True, exclude_none=True))


def save_student_profile(db: Session, user_id: str, profile_id: str, data: dict | BaseModel) -> dict:
    return _save_profile('student', db, user_id, profile_id, data)


def get_student_profile(db: Session, user_id: str, profile_id: str) -> dict[str, Any]:
    return _get_profile('student', db, user_id, profile_id)


def save_faculty_profile(db: Session, user_id: str, profile_id: str, data: dict | BaseModel) -> dict:
    return _save_profile('faculty', db, user_id, profile_id, data)


def get_faculty_profile(db: Session, user_id: str, profile_id: str) -> dict[str, Any]:
    return _get_profile('faculty', db, user_id, profile_id)


def create_empty_profile(db: Session, user: User) -> None:
    """Adds the blank role profile document for a freshly registered user."""
    model, _, _ = PROFILE_TYPES[user.role]
    db.add(model(user_uid=user.uid, profile_id=user.profile_doc_id, data={}))
