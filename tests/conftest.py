import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from proflink.auth.passwords import hash_password  # noqa: E402
from proflink.core.ids import generate_document_id  # noqa: E402
from proflink.database import Base  # noqa: E402
from proflink.models import appointment, counter, directory, notification, profile, side_effect  # noqa: E402,F401
from proflink.models.user import User  # noqa: E402
from proflink.services.side_effects import SideEffectQueue  # noqa: E402

TEST_PASSWORD = 'secret123'


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def side_effects(session_factory):
    return SideEffectQueue(session_factory)


@pytest.fixture
def make_user(db):
    def _make_user(role: str, email: str, name: str = '', verified: bool = True) -> User:
        user = User(
            email=email,
            hashed_password=hash_password(TEST_PASSWORD),
            name=name or email.split('@')[0].title(),
            role=role,
            profile_doc_id=generate_document_id(),
            email_verified=verified,
            profile_complete=False,
            session_version=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def student(make_user):
    return make_user('student', 'alice@example.edu', 'Alice Student')


@pytest.fixture
def faculty(make_user):
    return make_user('faculty', 'bob@example.edu', 'Bob Faculty')
