"""Registration, login and session lifecycle.

Session states::

    anonymous -> pending-verification -> authenticated{student|faculty}
    authenticated -> anonymous   (logout, or the stored record no longer matches the token)
"""
import logging
from threading import Lock

import jwt
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from proflink.auth import jwt_handler
from proflink.auth.passwords import hash_password, verify_password
from proflink.core.clock import utcnow
from proflink.core.ids import generate_document_id
from proflink.models.counter import Counter
from proflink.models.user import User
from proflink.services.directory_sync import enqueue_directory_sync
from proflink.services.email_service import send_verification_email
from proflink.services.profile_store import create_empty_profile
from proflink.services.side_effects import SideEffectQueue

logger = logging.getLogger(__name__)

CODE_PREFIXES = {'student': 'STU', 'faculty': 'FAC'}
SESSION_ANONYMOUS = 'anonymous'
SESSION_PENDING_VERIFICATION = 'pending-verification'
SESSION_AUTHENTICATED = 'authenticated'
VERIFICATION_EMAIL_TASK = 'send_verification_email'

_registration_lock = Lock()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def counter_name(role: str) -> str:
    return f'{role}_code'


def ensure_counters(db: Session) -> None:
    """Seed one code counter per role so registrations only ever update existing rows."""
    existing = {name for (name,) in db.query(Counter.name).all()}
    for role in CODE_PREFIXES:
        if counter_name(role) not in existing:
            db.add(Counter(name=counter_name(role), value=0))
    try:
        db.commit()
    except IntegrityError:
        # Another worker seeded them first.
        db.rollback()


def allocate_code(db: Session, role: str) -> str:
    """Increment the role counter inside the caller's transaction and format its code.

    The counter row is read with ``FOR UPDATE`` so concurrent registrations
    on a server database serialize on it; the caller must commit.
    """
    name = counter_name(role)
    counter = db.query(Counter).filter(Counter.name == name).with_for_update().first()
    if counter is None:
        counter = Counter(name=name, value=0)
        db.add(counter)
    counter.value = (counter.value or 0) + 1
    db.flush()
    return f'{CODE_PREFIXES[role]}-{counter.value:05d}'


def _send_verification(*, uid: str, email: str, name: str) -> None:
    token = jwt_handler.create_email_verification_token(uid)
    send_verification_email(email, name, token)


def _enqueue_verification(side_effects: SideEffectQueue, user: User) -> None:
    side_effects.enqueue(
        VERIFICATION_EMAIL_TASK,
        _send_verification,
        with_session=False,
        uid=user.uid,
        email=user.email,
        name=user.name,
    )


def register(
    db: Session,
    side_effects: SideEffectQueue,
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    role: str,
) -> User:
    email = normalize_email(email)
    if db.query(User).filter(User.email == email).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='An account with this email already exists.',
        )

    # Hold the process lock until commit so SQLite, which has no row locks,
    # still hands out each code once.
    with _registration_lock:
        try:
            user = User(
                email=email,
                hashed_password=hash_password(password),
                name=f'{first_name.strip()} {last_name.strip()}'.strip(),
                role=role,
                code=allocate_code(db, role),
                profile_doc_id=generate_document_id(),
                email_verified=False,
                profile_complete=False,
                session_version=0,
            )
            db.add(user)
            db.flush()
            create_empty_profile(db, user)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if db.query(User).filter(User.email == email).first() is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='An account with this email already exists.',
                ) from exc
            logger.warning('Code allocation for a new %s account clashed: %s', role, exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail='Could not allocate an account code. Please try again.',
            ) from exc

    db.refresh(user)
    logger.info('Registered %s account %s (%s)', role, user.uid, user.code)

    _enqueue_verification(side_effects, user)
    if role == 'faculty':
        enqueue_directory_sync(side_effects, user, {})
    return user


def login(db: Session, *, email: str, password: str, role: str) -> tuple[User, str]:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None or not verify_password(password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password.')

    if not user.email_verified:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Please verify your email before logging in.',
        )

    if user.role != role:
        if role == 'student':
            detail = 'This is a faculty account. Please select Faculty to login.'
        else:
            detail = 'This is a student account. Please select Student to login.'
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)
    token = jwt_handler.create_access_token(user.uid, user.role, user.session_version)
    logger.info('User %s logged in as %s', user.uid, user.role)
    return user, token


def logout(db: Session, user: User) -> None:
    user.session_version = (user.session_version or 0) + 1
    db.commit()
    logger.info('User %s logged out', user.uid)


def verify_email(db: Session, token: str) -> User:
    try:
        payload = jwt_handler.decode_token(token, purpose=jwt_handler.EMAIL_VERIFICATION_PURPOSE)
    except jwt.PyJWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid or expired verification link.',
        ) from exc

    user = db.query(User).filter(User.uid == payload.get('sub')).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User record not found.')

    if not user.email_verified:
        user.email_verified = True
        db.commit()
        db.refresh(user)
        logger.info('Email verified for %s', user.uid)
    return user


def resend_verification(db: Session, side_effects: SideEffectQueue, email: str) -> None:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None or user.email_verified:
        return
    _enqueue_verification(side_effects, user)


def session_state(user: User | None) -> str:
    if user is None:
        return SESSION_ANONYMOUS
    if not user.email_verified:
        return SESSION_PENDING_VERIFICATION
    return SESSION_AUTHENTICATED
