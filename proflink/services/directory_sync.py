import logging

from sqlalchemy.orm import Session

from proflink.core.clock import utcnow
from proflink.models.directory import DirectoryEntry
from proflink.models.user import User
from proflink.services.side_effects import SideEffectQueue

logger = logging.getLogger(__name__)

DIRECTORY_SYNC_TASK = 'directory_sync'


def mirror_faculty_to_directory(db: Session, *, uid: str, name: str, email: str, title: str, department: str) -> DirectoryEntry:
    entry = db.query(DirectoryEntry).filter(DirectoryEntry.uid == uid).first()
    if entry is None:
        entry = DirectoryEntry(uid=uid)
        db.add(entry)

    entry.name = name
    entry.email = email
    entry.role = 'faculty'
    entry.title = title
    entry.department = department
    entry.updated_at = utcnow()
    db.commit()
    logger.info('Directory entry for %s synced', uid)
    return entry


def enqueue_directory_sync(side_effects: SideEffectQueue, user: User, profile: dict) -> None:
    academic_info = profile.get('academicInfo') or {}
    side_effects.enqueue(
        DIRECTORY_SYNC_TASK,
        mirror_faculty_to_directory,
        uid=user.uid,
        name=user.name or '',
        email=user.email or '',
        title=academic_info.get('title') or '',
        department=academic_info.get('department') or '',
    )


def list_faculty_directory(db: Session, department: str | None = None) -> list[DirectoryEntry]:
    # Full scan filtered by role, like the student-side browse.
    entries = [entry for entry in db.query(DirectoryEntry).all() if entry.role == 'faculty']
    if department:
        wanted = department.strip().lower()
        entries = [entry for entry in entries if (entry.department or '').lower() == wanted]
    return sorted(entries, key=lambda entry: (entry.name or '').lower())
