import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from proflink.core import config
from proflink.database import Base, SessionLocal, engine, ensure_appointment_schema, ensure_notification_schema
from proflink.models import appointment, counter, directory, notification, profile, side_effect, user  # noqa: F401
from proflink.routes import (
    appointment_routes,
    auth_routes,
    directory_routes,
    notification_routes,
    profile_routes,
    view_routes,
)
from proflink.services.identity import ensure_counters

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI(title='ProfLink API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
        ensure_notification_schema()
        db = SessionLocal()
        try:
            ensure_counters(db)
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


app.include_router(view_routes.router)
app.include_router(auth_routes.router, prefix='/auth')
app.include_router(profile_routes.router, prefix='/profiles')
app.include_router(directory_routes.router, prefix='/directory')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(notification_routes.router, prefix='/notifications')
