from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from proflink.core.clock import as_utc
from proflink.models.appointment import Appointment
from proflink.models.notification import Notification
from proflink.models.side_effect import SideEffectFailure
from proflink.services.appointment_workflow import AppointmentWorkflow, generate_meeting_link


def future(days: int = 3, hour: int = 10) -> datetime:
    base = datetime.now(timezone.utc) + timedelta(days=days)
    return base.replace(hour=hour, minute=0, second=0, microsecond=0)


@pytest.fixture
def workflow(db, side_effects):
    return AppointmentWorkflow(db, side_effects)


@pytest.fixture
def pending(workflow, student, faculty, side_effects):
    appointment = workflow.request_appointment(student, faculty.uid, future(), 'advising')
    side_effects.flush()
    return appointment


def test_request_creates_pending_appointment_and_notifies_faculty(workflow, db, student, faculty, side_effects) -> None:
    requested = future()

    appointment = workflow.request_appointment(student, faculty.uid, requested, '  advising  ')

    assert appointment.status == 'pending'
    assert appointment.reason == 'advising'
    assert as_utc(appointment.requested_time) == requested
    assert appointment.student_email == 'alice@example.edu'
    assert appointment.faculty_name == 'Bob Faculty'
    assert appointment.meeting_link is None

    assert side_effects.flush() == []
    notification = db.query(Notification).filter(Notification.recipient_uid == faculty.uid).one()
    assert notification.type == 'appointment_request'
    assert notification.sender_uid == student.uid
    assert notification.appointment_id == appointment.id
    assert notification.body == 'Alice Student requested an appointment'
    assert notification.read is False


@pytest.mark.parametrize(('faculty_id', 'requested_time'), [(None, future()), ('some-uid', None), ('', future())])
def test_request_requires_faculty_and_time(workflow, student, faculty_id, requested_time) -> None:
    with pytest.raises(HTTPException) as exception_info:
        workflow.request_appointment(student, faculty_id, requested_time, 'advising')

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Please select a faculty and a requested time.'


def test_request_rejects_past_time(workflow, student, faculty) -> None:
    with pytest.raises(HTTPException) as exception_info:
        workflow.request_appointment(student, faculty.uid, future(days=-1), 'advising')

    assert exception_info.value.status_code == 400


def test_request_rejects_non_faculty_target(workflow, student, make_user) -> None:
    other_student = make_user('student', 'carol@example.edu')

    with pytest.raises(HTTPException) as exception_info:
        workflow.request_appointment(student, other_student.uid, future(), 'advising')

    assert exception_info.value.status_code == 404


def test_request_is_student_only(workflow, faculty, make_user) -> None:
    other_faculty = make_user('faculty', 'dave@example.edu')

    with pytest.raises(HTTPException) as exception_info:
        workflow.request_appointment(faculty, other_faculty.uid, future(), 'advising')

    assert exception_info.value.status_code == 403


def test_advising_scenario_accept_then_feedback(workflow, db, student, faculty, side_effects) -> None:
    requested = future()
    appointment = workflow.request_appointment(student, faculty.uid, requested, 'advising')
    side_effects.flush()
    assert appointment.status == 'pending'

    accepted = workflow.decide(faculty, appointment.id, 'accepted')
    assert accepted.status == 'accepted'
    assert accepted.meeting_link == f'https://meet.jit.si/ProfLink-{appointment.id[-8:]}'
    assert side_effects.flush() == []

    student_notification = db.query(Notification).filter(Notification.recipient_uid == student.uid).one()
    assert student_notification.type == 'appointment_accepted'
    assert student_notification.body == 'Your appointment request was accepted.'

    annotated = workflow.submit_feedback(student, appointment.id, 'helpful', 5)
    assert annotated.status == 'accepted'
    assert annotated.student_rating == 5
    assert annotated.student_feedback == 'helpful'
    assert annotated.feedback_submitted_at is not None
    assert as_utc(annotated.requested_time) == requested


def test_feedback_cannot_be_resubmitted(workflow, db, student, faculty, pending) -> None:
    workflow.decide(faculty, pending.id, 'accepted')
    workflow.submit_feedback(student, pending.id, 'helpful', 5)

    with pytest.raises(HTTPException) as exception_info:
        workflow.submit_feedback(student, pending.id, 'changed my mind', 1)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Feedback has already been submitted.'
    db.expire_all()
    stored = db.query(Appointment).filter(Appointment.id == pending.id).one()
    assert stored.student_feedback == 'helpful'
    assert stored.student_rating == 5


def test_room_suffix_clash_retries_with_fresh_id(workflow, student, faculty, monkeypatch) -> None:
    ids = iter(['aaaaaaaaaaaa12345678', 'bbbbbbbbbbbb12345678', 'cccccccccccc87654321'])
    monkeypatch.setattr('proflink.services.appointment_workflow.generate_document_id', lambda: next(ids))

    first = workflow.request_appointment(student, faculty.uid, future(days=1), 'a')
    second = workflow.request_appointment(student, faculty.uid, future(days=2), 'b')

    assert first.room_suffix == '12345678'
    assert second.id == 'cccccccccccc87654321'
    assert second.room_suffix == '87654321'
    assert len(workflow.list_for(student)) == 2


def test_meeting_links_are_unique_per_appointment(workflow, student, faculty) -> None:
    links = set()
    for day in range(1, 6):
        appointment = workflow.request_appointment(student, faculty.uid, future(days=day), 'advising')
        links.add(workflow.decide(faculty, appointment.id, 'accepted').meeting_link)

    assert len(links) == 5
    assert all(links)


def test_generate_meeting_link_uses_id_suffix() -> None:
    assert generate_meeting_link('abcdefghijkl12345678') == 'https://meet.jit.si/ProfLink-12345678'


def test_decide_rejects_unknown_decision(workflow, faculty, pending) -> None:
    with pytest.raises(HTTPException) as exception_info:
        workflow.decide(faculty, pending.id, 'cancelled')

    assert exception_info.value.status_code == 400


def test_decide_is_limited_to_assigned_faculty(workflow, make_user, pending) -> None:
    other_faculty = make_user('faculty', 'erin@example.edu')

    with pytest.raises(HTTPException) as exception_info:
        workflow.decide(other_faculty, pending.id, 'accepted')

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only the assigned faculty member can update this appointment.'


def test_decide_rejects_terminal_status(workflow, faculty, pending) -> None:
    workflow.decide(faculty, pending.id, 'declined')

    with pytest.raises(HTTPException) as exception_info:
        workflow.decide(faculty, pending.id, 'accepted')

    assert exception_info.value.status_code == 409


def test_reschedule_without_time_is_rejected_and_status_kept(workflow, db, faculty, pending) -> None:
    with pytest.raises(HTTPException) as exception_info:
        workflow.reschedule(faculty, pending.id, None)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Pick a new time first.'
    db.expire_all()
    assert db.query(Appointment).filter(Appointment.id == pending.id).one().status == 'pending'


def test_reschedule_sets_new_time_and_keeps_requested_time(workflow, db, student, faculty, pending, side_effects) -> None:
    original_time = as_utc(pending.requested_time)
    new_time = future(days=5, hour=14)

    rescheduled = workflow.reschedule(faculty, pending.id, new_time)

    assert rescheduled.status == 'rescheduled'
    assert as_utc(rescheduled.reschedule_time) == new_time
    assert as_utc(rescheduled.requested_time) == original_time

    side_effects.flush()
    notification = db.query(Notification).filter(Notification.recipient_uid == student.uid).one()
    assert notification.type == 'appointment_rescheduled'


def test_accepted_appointment_can_be_rescheduled_then_accepted_again(workflow, faculty, pending) -> None:
    workflow.decide(faculty, pending.id, 'accepted')
    workflow.reschedule(faculty, pending.id, future(days=6))

    accepted = workflow.decide(faculty, pending.id, 'accepted')

    assert accepted.status == 'accepted'


@pytest.mark.parametrize('source_status', ['pending', 'rescheduled'])
def test_cancel_allowed_from_pending_and_rescheduled(workflow, db, student, faculty, pending, side_effects, source_status) -> None:
    if source_status == 'rescheduled':
        workflow.reschedule(faculty, pending.id, future(days=4))

    cancelled = workflow.cancel(student, pending.id)

    assert cancelled.status == 'cancelled'
    side_effects.flush()
    notification = db.query(Notification).filter(
        Notification.recipient_uid == faculty.uid,
        Notification.type == 'appointment_cancelled',
    ).one()
    assert notification.appointment_id == pending.id


@pytest.mark.parametrize('decision', ['accepted', 'declined'])
def test_cancel_rejected_outside_pending_and_rescheduled(workflow, db, student, faculty, pending, decision) -> None:
    workflow.decide(faculty, pending.id, decision)

    with pytest.raises(HTTPException) as exception_info:
        workflow.cancel(student, pending.id)

    assert exception_info.value.status_code == 409
    db.expire_all()
    assert db.query(Appointment).filter(Appointment.id == pending.id).one().status == decision


def test_cancel_is_limited_to_requesting_student(workflow, make_user, pending) -> None:
    other_student = make_user('student', 'frank@example.edu')

    with pytest.raises(HTTPException) as exception_info:
        workflow.cancel(other_student, pending.id)

    assert exception_info.value.status_code == 403


def test_notes_and_feedback_require_accepted_status(workflow, student, faculty, pending) -> None:
    with pytest.raises(HTTPException) as notes_error:
        workflow.add_faculty_notes(faculty, pending.id, 'bring transcript')
    with pytest.raises(HTTPException) as feedback_error:
        workflow.submit_feedback(student, pending.id, 'great', 4)

    assert notes_error.value.status_code == 409
    assert feedback_error.value.status_code == 409


def test_faculty_notes_annotate_without_status_change(workflow, db, student, faculty, pending, side_effects) -> None:
    workflow.decide(faculty, pending.id, 'accepted')

    annotated = workflow.add_faculty_notes(faculty, pending.id, '  bring transcript ')

    assert annotated.status == 'accepted'
    assert annotated.faculty_notes == 'bring transcript'
    side_effects.flush()
    types = {n.type for n in db.query(Notification).filter(Notification.recipient_uid == student.uid)}
    assert types == {'appointment_accepted', 'faculty_notes'}


@pytest.mark.parametrize(
    ('feedback', 'rating', 'detail'),
    [
        ('', 5, 'Please provide both feedback and rating.'),
        ('helpful', None, 'Please provide both feedback and rating.'),
        ('helpful', 6, 'Rating must be between 1 and 5.'),
    ],
)
def test_feedback_validation(workflow, student, faculty, pending, feedback, rating, detail) -> None:
    workflow.decide(faculty, pending.id, 'accepted')

    with pytest.raises(HTTPException) as exception_info:
        workflow.submit_feedback(student, pending.id, feedback, rating)

    assert exception_info.value.detail == detail


def test_notification_failure_does_not_fail_transition(workflow, db, faculty, pending, side_effects, monkeypatch) -> None:
    def broken_write(db, **kwargs):
        raise RuntimeError('realtime store down')

    monkeypatch.setattr('proflink.services.appointment_workflow.write_notification', broken_write)

    accepted = workflow.decide(faculty, pending.id, 'accepted')
    failed = side_effects.flush()

    assert failed == ['notify:appointment_accepted']
    db.expire_all()
    assert db.query(Appointment).filter(Appointment.id == pending.id).one().status == 'accepted'
    assert accepted.meeting_link
    failure = db.query(SideEffectFailure).one()
    assert failure.task_name == 'notify:appointment_accepted'
    assert failure.error == 'realtime store down'


def test_list_and_counts_are_scoped_to_the_user(workflow, student, faculty, make_user) -> None:
    other_student = make_user('student', 'gina@example.edu')
    first = workflow.request_appointment(student, faculty.uid, future(days=1), 'a')
    workflow.request_appointment(student, faculty.uid, future(days=2), 'b')
    workflow.request_appointment(other_student, faculty.uid, future(days=3), 'c')
    workflow.decide(faculty, first.id, 'accepted')

    assert len(workflow.list_for(student)) == 2
    assert len(workflow.list_for(faculty)) == 3
    assert [a.id for a in workflow.list_for(student, 'accepted')] == [first.id]
    counts = workflow.counts_for(faculty)
    assert counts['all'] == 3
    assert counts['pending'] == 2
    assert counts['accepted'] == 1
    assert counts['cancelled'] == 0


def test_get_for_rejects_non_participants(workflow, make_user, pending) -> None:
    outsider = make_user('student', 'hank@example.edu')

    with pytest.raises(HTTPException) as exception_info:
        workflow.get_for(outsider, pending.id)

    assert exception_info.value.status_code == 403
