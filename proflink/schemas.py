"""Document schemas for the role profile collections.

Profile documents keep the camelCase keys clients send and read back
(``academicInfo``, ``consultationSettings`` ...). Every field is optional
so the same schema validates both partial updates and stored documents.
"""
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')


def _clean_list(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    return [value.strip() for value in values if value and value.strip()]


class StudentAcademicInfo(DocumentModel):
    student_id: str | None = None
    year: str | None = None
    major: str | None = None
    department: str | None = None
    gpa: float | None = Field(default=None, ge=0, le=4)
    expected_graduation: str | None = None


class StudentPreferences(DocumentModel):
    preferred_departments: list[str] | None = None
    consultation_types: list[str] | None = None
    notification_settings: dict[str, Any] | None = None

    @field_validator('preferred_departments', 'consultation_types')
    @classmethod
    def clean_lists(cls, value: list[str] | None) -> list[str] | None:
        return _clean_list(value)


class StudentProfileDocument(DocumentModel):
    academic_info: StudentAcademicInfo | None = None
    preferences: StudentPreferences | None = None
    # Derived from appointments on read; accepted but never persisted.
    statistics: dict[str, Any] | None = Field(default=None, exclude=True)


class FacultyAcademicInfo(DocumentModel):
    employee_id: str | None = None
    title: str | None = None
    department: str | None = None
    office: str | None = None
    expertise: list[str] | None = None
    education: list[str] | None = None
    publications: int | None = Field(default=None, ge=0)
    years_experience: int | None = Field(default=None, ge=0)

    @field_validator('expertise', 'education')
    @classmethod
    def clean_lists(cls, value: list[str] | None) -> list[str] | None:
        return _clean_list(value)


class ConsultationSettings(DocumentModel):
    default_duration: int | None = Field(default=None, gt=0, le=480)
    max_daily_appointments: int | None = Field(default=None, ge=1)
    buffer_time: int | None = Field(default=None, ge=0)
    advance_booking_days: int | None = Field(default=None, ge=0)
    consultation_types: list[str] | None = None

    @field_validator('consultation_types')
    @classmethod
    def clean_types(cls, value: list[str] | None) -> list[str] | None:
        return _clean_list(value)


class Availability(DocumentModel):
    weekly_schedule: dict[str, Any] | None = None
    time_zone: str | None = None

    @field_validator('weekly_schedule')
    @classmethod
    def validate_weekly_schedule(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if value is None:
            return None
        normalized = {}
        for day, slots in value.items():
            key = day.strip().lower()
            if key not in WEEKDAYS:
                raise ValueError(f'Unknown weekday in schedule: {day}')
            normalized[key] = slots
        return normalized

    @field_validator('time_zone')
    @classmethod
    def validate_time_zone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f'Unknown time zone: {value}') from exc
        return value


class FacultyProfileDocument(DocumentModel):
    academic_info: FacultyAcademicInfo | None = None
    consultation_settings: ConsultationSettings | None = None
    availability: Availability | None = None
    statistics: dict[str, Any] | None = Field(default=None, exclude=True)


DEFAULT_STUDENT_PROFILE = {
    'academicInfo': {
        'studentId': '',
        'year': '',
        'major': '',
        'department': '',
        'gpa': 0,
        'expectedGraduation': None,
    },
    'preferences': {
        'preferredDepartments': [],
        'consultationTypes': [],
        'notificationSettings': {},
    },
}

DEFAULT_FACULTY_PROFILE = {
    'academicInfo': {
        'employeeId': '',
        'title': '',
        'department': '',
        'office': '',
        'expertise': [],
        'education': [],
        'publications': 0,
        'yearsExperience': 0,
    },
    'consultationSettings': {
        'defaultDuration': 30,
        'maxDailyAppointments': 5,
        'bufferTime': 10,
        'advanceBookingDays': 7,
        'consultationTypes': ['virtual'],
    },
    'availability': {
        'weeklySchedule': {},
        'timeZone': 'Asia/Manila',
    },
}
