from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proflink.auth.dependencies import get_current_user
from proflink.database import get_db
from proflink.models.user import User
from proflink.routes.common import database_unavailable
from proflink.services.directory_sync import list_faculty_directory

router = APIRouter(tags=['directory'])


class DirectoryEntryResponse(BaseModel):
    uid: str
    name: str
    email: str
    role: str
    title: str
    department: str
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('', response_model=list[DirectoryEntryResponse])
def list_directory(
    department: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    try:
        return list_faculty_directory(db, department=department)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
