from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from proflink.core import config


DATABASE_URL = config.DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_notification_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('meeting_link', 'ALTER TABLE appointments ADD COLUMN meeting_link VARCHAR'),
            ('faculty_notes', 'ALTER TABLE appointments ADD COLUMN faculty_notes TEXT'),
            ('notes_updated_at', 'ALTER TABLE appointments ADD COLUMN notes_updated_at TIMESTAMP'),
            ('student_feedback', 'ALTER TABLE appointments ADD COLUMN student_feedback TEXT'),
            ('student_rating', 'ALTER TABLE appointments ADD COLUMN student_rating INTEGER'),
            ('feedback_submitted_at', 'ALTER TABLE appointments ADD COLUMN feedback_submitted_at TIMESTAMP'),
            ('room_suffix', 'ALTER TABLE appointments ADD COLUMN room_suffix VARCHAR(8)'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

            missing_suffix = connection.execute(
                text('SELECT id FROM appointments WHERE room_suffix IS NULL')
            ).scalars().all()
            for appointment_id in missing_suffix:
                connection.execute(
                    text('UPDATE appointments SET room_suffix = :suffix WHERE id = :id'),
                    {'suffix': appointment_id[-8:], 'id': appointment_id},
                )
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS ix_appointments_room_suffix ON appointments(room_suffix)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_student_created ON appointments(student_uid, created_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_faculty_created ON appointments(faculty_uid, created_at)')
            )

        _appointment_schema_checked = True


def ensure_notification_schema() -> None:
    global _notification_schema_checked

    if _notification_schema_checked:
        return

    with _schema_lock:
        if _notification_schema_checked:
            return

        inspector = inspect(engine)

        if 'notifications' not in inspector.get_table_names():
            _notification_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('notifications')}

        with engine.begin() as connection:
            if 'appointment_id' not in existing_columns:
                connection.execute(text('ALTER TABLE notifications ADD COLUMN appointment_id VARCHAR'))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_notifications_recipient_created ON notifications(recipient_uid, created_at)')
            )

        _notification_schema_checked = True
