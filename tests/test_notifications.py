import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from coaching.api.v1.notifications import dispatcher, service
from coaching.api.v1.notifications.dispatcher import NotificationIntent
from coaching.core.enrollment import BatchEnrollmentSnapshot, ScheduleSlot
from coaching.core.exceptions import NotFoundError
from coaching.core.models import Notification
from coaching.tasks import scheduler as scheduler_module
from coaching.tasks.attendance_checks import (
    check_teacher_lateness,
    cleanup_notifications,
    send_class_reminders,
)
from coaching.tasks.scheduler import ATTENDANCE_SCANS_JOB_ID, PeriodicScheduler

from tests.factories import FIXED_NOW, RecordingPublisher, make_batch, make_record, make_user


SLOT = ScheduleSlot(day="tuesday", start_time="09:00", end_time="10:00", room="R1")


def _snapshot(students=()):
    return BatchEnrollmentSnapshot(
        batch_id=uuid.uuid4(),
        name="Physics XI",
        teacher_id=uuid.uuid4(),
        status="active",
        active_student_ids=tuple(students),
        weekly_schedule=(SLOT,),
    )


def _at(hour, minute):
    return datetime(2026, 3, 10, hour, minute, tzinfo=timezone.utc)


def _intent(role="ADMIN", recipient=None):
    return NotificationIntent(
        recipient_user_id=recipient,
        recipient_role=role,
        type="attendance",
        category="academic",
        priority="low",
        title="Attendance Submitted",
        message="Attendance submitted",
    )


class FailingPublisher(RecordingPublisher):
    async def publish(self, notification) -> None:
        raise ConnectionError("socket closed")


# ----- Absence fan-out -----
def test_absence_fan_out_skips_students_without_guardian():
    absent = [(uuid.uuid4(), "Ann"), (uuid.uuid4(), "Ben"), (uuid.uuid4(), "Cid")]
    guardians = {absent[0][0]: uuid.uuid4(), absent[2][0]: uuid.uuid4()}
    intents = dispatcher.decide_absence_notifications(
        _snapshot(), date(2024, 3, 1), uuid.uuid4(), absent, guardians
    )

    assert len(intents) == 3
    guardian_alerts = [i for i in intents if i.recipient_role == "PARENT"]
    assert {i.recipient_user_id for i in guardian_alerts} == set(guardians.values())
    assert all(i.priority == "medium" for i in guardian_alerts)
    summary = [i for i in intents if i.recipient_role == "ADMIN"]
    assert len(summary) == 1
    assert summary[0].recipient_user_id is None
    assert summary[0].entity_data["absent_count"] == 3


def test_absence_alert_names_student_and_batch():
    sid, guardian = uuid.uuid4(), uuid.uuid4()
    intents = dispatcher.decide_absence_notifications(
        _snapshot(), date(2024, 3, 1), uuid.uuid4(), [(sid, "Sia Two")], {sid: guardian}, include_summary=False
    )
    assert len(intents) == 1
    assert intents[0].message == "Your child Sia Two was absent from Physics XI class on 2024-03-01"
    assert intents[0].title == "Student Absence Alert"


def test_summary_is_sent_even_without_absences():
    intents = dispatcher.decide_absence_notifications(_snapshot(), date(2024, 3, 1), uuid.uuid4(), [], {})
    assert [i.recipient_role for i in intents] == ["ADMIN"]


def test_admin_change_notice_is_role_addressed():
    actor = uuid.uuid4()
    (intent,) = dispatcher.decide_admin_change_notice(_snapshot(), date(2024, 3, 1), actor, "deleted")
    assert intent.recipient_user_id is None
    assert intent.recipient_role == "ADMIN"
    assert intent.title == "Attendance Deleted"
    assert intent.message == "Attendance for Physics XI on 2024-03-01 was deleted"
    assert intent.sender_id == actor


# ----- Teacher lateness -----
@pytest.mark.parametrize("minutes_late, expected", [(9, 0), (10, 2), (45, 2)])
def test_lateness_threshold_is_inclusive(minutes_late, expected):
    admins = [uuid.uuid4(), uuid.uuid4()]
    intents = dispatcher.decide_teacher_lateness_alert(
        _snapshot(), SLOT, "Tara", minutes_late, None, admins, threshold_minutes=10
    )
    assert len(intents) == expected


def test_lateness_alert_shape():
    admin = uuid.uuid4()
    (intent,) = dispatcher.decide_teacher_lateness_alert(_snapshot(), SLOT, "Tara", 12, "absent", [admin])
    assert intent.recipient_user_id == admin
    assert intent.type == "teacher_absent"
    assert intent.category == "administrative"
    assert intent.priority == "high"
    assert intent.title == "Teacher Absent Alert"
    assert intent.entity_data["minutes_late"] == 12


@pytest.mark.parametrize("status", ["present", "late"])
def test_no_lateness_alert_once_teacher_is_recorded(status):
    assert dispatcher.decide_teacher_lateness_alert(_snapshot(), SLOT, "Tara", 30, status, [uuid.uuid4()]) == []


# ----- Class reminders -----
@pytest.mark.parametrize("minutes_until, fires", [(14, False), (15, True), (19, True), (20, False)])
def test_reminder_window(minutes_until, fires):
    batch = _snapshot(students=[uuid.uuid4()])
    intents = dispatcher.decide_class_reminders(batch, SLOT, minutes_until, lead_minutes=15, window_minutes=5)
    assert bool(intents) is fires


def test_reminders_go_to_teacher_and_active_students():
    students = [uuid.uuid4(), uuid.uuid4()]
    batch = _snapshot(students=students)
    intents = dispatcher.decide_class_reminders(batch, SLOT, 15)
    assert [i.recipient_user_id for i in intents] == [batch.teacher_id] + students
    assert [i.recipient_role for i in intents] == ["TEACHER", "STUDENT", "STUDENT"]


# ----- Emit -----
async def test_emit_stores_and_pushes(db_session, publisher):
    admin = await make_user(db_session, "ADMIN")
    stored = await service.emit(db_session, [_intent(recipient=admin.id)], publisher, now=FIXED_NOW)
    assert len(stored) == 1
    assert publisher.published == stored
    assert stored[0].delivered_at is not None


async def test_emit_keeps_notification_when_push_fails(db_session):
    stored = await service.emit(db_session, [_intent()], FailingPublisher(), now=FIXED_NOW)
    assert len(stored) == 1
    assert stored[0].delivered_at is None
    assert await db_session.scalar(select(func.count(Notification.id))) == 1


async def test_emit_skips_intents_that_cannot_be_stored(db_session, publisher):
    broken = _intent(role=None)
    stored = await service.emit(db_session, [broken, _intent()], publisher, now=FIXED_NOW)
    assert len(stored) == 1
    assert await db_session.scalar(select(func.count(Notification.id))) == 1


# ----- Inbox -----
async def test_role_addressed_notifications_reach_all_admins(db_session, publisher):
    admin = await make_user(db_session, "ADMIN")
    root = await make_user(db_session, "SUPER_ADMIN")
    teacher = await make_user(db_session, "TEACHER")
    await service.emit(db_session, [_intent()], publisher, now=FIXED_NOW)

    assert await service.unread_count(db_session, admin.id, "ADMIN") == 1
    assert await service.unread_count(db_session, root.id, "SUPER_ADMIN") == 1
    assert await service.unread_count(db_session, teacher.id, "TEACHER") == 0


async def test_mark_read_updates_inbox(db_session, publisher):
    parent = await make_user(db_session, "PARENT")
    other = await make_user(db_session, "PARENT")
    (stored,) = await service.emit(db_session, [_intent("PARENT", parent.id)], publisher, now=FIXED_NOW)

    with pytest.raises(NotFoundError):
        await service.mark_read(db_session, other.id, "PARENT", stored.id, FIXED_NOW)

    read = await service.mark_read(db_session, parent.id, "PARENT", stored.id, FIXED_NOW)
    assert read.is_read
    assert read.read_at is not None
    inbox = await service.list_notifications(db_session, parent.id, "PARENT")
    assert inbox.unread_count == 0
    assert len(inbox.notifications) == 1
    unread = await service.list_notifications(db_session, parent.id, "PARENT", unread_only=True)
    assert unread.notifications == []


async def test_cleanup_removes_only_old_read_notifications(db_session, publisher):
    old = FIXED_NOW - timedelta(days=31)
    (old_read,) = await service.emit(db_session, [_intent()], publisher, now=old)
    (old_unread,) = await service.emit(db_session, [_intent()], publisher, now=old)
    (recent_read,) = await service.emit(db_session, [_intent()], publisher, now=FIXED_NOW - timedelta(days=2))
    for n in (old_read, recent_read):
        n.is_read = True
    await db_session.commit()

    removed = await cleanup_notifications(db_session, FIXED_NOW)
    assert removed == 1
    remaining = set((await db_session.execute(select(Notification.id))).scalars().all())
    assert remaining == {old_unread.id, recent_read.id}


# ----- Periodic scans -----
@pytest.fixture()
async def scheduled(db_session):
    admin = await make_user(db_session, "ADMIN")
    await make_user(db_session, "ADMIN", status="INACTIVE")
    teacher = await make_user(db_session, "TEACHER", name="Tara Teacher")
    s1 = await make_user(db_session, "STUDENT")
    s2 = await make_user(db_session, "STUDENT")
    dropped = await make_user(db_session, "STUDENT")
    batch = await make_batch(db_session, teacher, students=[s1, s2], inactive_students=[dropped])
    return {"admin": admin, "teacher": teacher, "students": (s1, s2), "batch": batch}


async def test_lateness_scan_alerts_active_admins(db_session, scheduled, publisher):
    sent = await check_teacher_lateness(db_session, _at(9, 12), publisher)
    assert [n.recipient_user_id for n in sent] == [scheduled["admin"].id]
    assert "Tara Teacher" in sent[0].message
    assert "12 minutes" in sent[0].message


async def test_lateness_scan_quiet_before_threshold(db_session, scheduled, publisher):
    assert await check_teacher_lateness(db_session, _at(9, 9), publisher) == []


async def test_lateness_scan_respects_recorded_teacher_status(db_session, scheduled, publisher):
    s1, _ = scheduled["students"]
    await make_record(db_session, scheduled["batch"], FIXED_NOW.date(), {s1: "present"}, teacher_status="present")
    assert await check_teacher_lateness(db_session, _at(9, 30), publisher) == []


async def test_lateness_scan_alerts_when_teacher_recorded_absent(db_session, scheduled, publisher):
    s1, _ = scheduled["students"]
    await make_record(db_session, scheduled["batch"], FIXED_NOW.date(), {s1: "present"}, teacher_status="absent")
    sent = await check_teacher_lateness(db_session, _at(9, 30), publisher)
    assert len(sent) == 1


async def test_lateness_scan_ignores_other_weekdays(db_session, scheduled, publisher):
    wednesday = _at(9, 30) + timedelta(days=1)
    assert await check_teacher_lateness(db_session, wednesday, publisher) == []


async def test_reminder_scan_fires_once_per_window(db_session, scheduled, publisher):
    sent = await send_class_reminders(db_session, _at(8, 45), publisher, window_minutes=5)
    recipients = {n.recipient_user_id for n in sent}
    s1, s2 = scheduled["students"]
    assert recipients == {scheduled["teacher"].id, s1.id, s2.id}

    # The next scan lands outside the window
    assert await send_class_reminders(db_session, _at(8, 50), publisher, window_minutes=5) == []
    assert await send_class_reminders(db_session, _at(8, 40), publisher, window_minutes=5) == []


async def test_scheduler_pass_runs_every_scan(session_factory, db_session, scheduled, publisher):
    periodic = PeriodicScheduler(session_factory, 300, clock=lambda: _at(8, 45), publisher=publisher)
    await periodic.run_once()
    assert len(publisher.published) == 3


async def test_scheduler_pass_survives_failing_scan(session_factory, db_session, scheduled, publisher, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(scheduler_module, "check_teacher_lateness", broken)
    periodic = PeriodicScheduler(session_factory, 300, clock=lambda: _at(8, 45), publisher=publisher)
    await periodic.run_once()
    assert len(publisher.published) == 3


async def test_scheduler_registers_interval_job(session_factory):
    periodic = PeriodicScheduler(session_factory, 300, clock=lambda: _at(3, 0))
    periodic.start()
    periodic.start()
    job = periodic.scheduler.get_job(ATTENDANCE_SCANS_JOB_ID)
    assert job.trigger.interval == timedelta(seconds=300)
    assert job.func == periodic.run_once
    assert len(periodic.scheduler.get_jobs()) == 1

    periodic.stop()
    assert not periodic.scheduler.running
    periodic.stop()
