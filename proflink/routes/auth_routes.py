import re
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proflink.auth.dependencies import get_current_user, get_optional_user
from proflink.database import get_db
from proflink.models.user import User
from proflink.routes.common import database_unavailable
from proflink.services import identity
from proflink.services.side_effects import SideEffectQueue, get_side_effect_queue

router = APIRouter(tags=['auth'])

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MIN_PASSWORD_LENGTH = 6


def _validate_email(value: str) -> str:
    normalized = value.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError('Please enter a valid email address')
    return normalized


class RegisterRequest(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    confirm_password: str
    role: Literal['student', 'faculty'] = 'student'

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Please fill in all fields')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long')
        return value

    @model_validator(mode='after')
    def validate_passwords_match(self) -> 'RegisterRequest':
        if self.password != self.confirm_password:
            raise ValueError('Passwords do not match')
        return self


class LoginRequest(BaseModel):
    email: str
    password: str
    role: Literal['student', 'faculty']

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)


class VerifyEmailRequest(BaseModel):
    token: str


class ResendVerificationRequest(BaseModel):
    email: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)


class UserResponse(BaseModel):
    uid: str
    email: str
    name: str
    role: str
    code: str | None = None
    profile_doc_id: str
    email_verified: bool
    profile_complete: bool

    class Config:
        from_attributes = True


class RegisterResponse(BaseModel):
    user: UserResponse
    session_state: str
    message: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    user: UserResponse


class SessionResponse(BaseModel):
    state: str
    role: str | None = None
    user: UserResponse | None = None


@router.post('/register', response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    try:
        user = identity.register(
            db,
            side_effects,
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            password=data.password,
            role=data.role,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    background_tasks.add_task(side_effects.flush)
    return RegisterResponse(
        user=UserResponse.model_validate(user),
        session_state=identity.session_state(user),
        message='Account created successfully! Please verify your email before logging in.',
    )


@router.post('/login', response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user, token = identity.login(db, email=data.email, password=data.password, role=data.role)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    return LoginResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post('/logout', status_code=status.HTTP_204_NO_CONTENT)
def logout(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        identity.logout(db, current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/verify-email', response_model=UserResponse)
def verify_email(data: VerifyEmailRequest, db: Session = Depends(get_db)):
    try:
        return identity.verify_email(db, data.token)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/resend-verification', status_code=status.HTTP_202_ACCEPTED)
def resend_verification(
    data: ResendVerificationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    side_effects: SideEffectQueue = Depends(get_side_effect_queue),
):
    identity.resend_verification(db, side_effects, data.email)
    background_tasks.add_task(side_effects.flush)
    return {'message': 'If the account exists and is unverified, a new verification email is on its way.'}


@router.get('/me', response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get('/session', response_model=SessionResponse)
def session(current_user: User | None = Depends(get_optional_user)):
    """Report ``anonymous`` or ``authenticated``.

    Unverified accounts never hold a bearer token, so ``pending-verification``
    is only reported by the register response.
    """
    return SessionResponse(
        state=identity.session_state(current_user),
        role=current_user.role if current_user else None,
        user=UserResponse.model_validate(current_user) if current_user else None,
    )
