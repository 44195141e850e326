import uuid

import pytest

from coaching.core import enrollment
from coaching.core.exceptions import NotFoundError

from tests.factories import make_batch, make_user


async def test_snapshot_reflects_roster_and_schedule(db_session):
    teacher = await make_user(db_session, "TEACHER")
    assistant = await make_user(db_session, "TEACHER")
    active = await make_user(db_session, "STUDENT")
    gone = await make_user(db_session, "STUDENT")
    batch = await make_batch(
        db_session,
        teacher,
        students=[active],
        inactive_students=[gone],
        assistants=[assistant],
        schedule=[("monday", "17:00", "18:00"), ("thursday", "07:30", "08:30")],
    )

    snapshot = await enrollment.get_batch(db_session, batch.id)
    assert snapshot.is_teacher(teacher.id)
    assert snapshot.is_teacher(assistant.id)
    assert snapshot.is_active_student(active.id)
    assert not snapshot.is_active_student(gone.id)
    assert snapshot.slot_for("thursday").start_time == "07:30"
    assert snapshot.slot_for("friday") is None


async def test_unknown_batch(db_session):
    with pytest.raises(NotFoundError):
        await enrollment.get_batch(db_session, uuid.uuid4())


async def test_guardian_lookup(db_session):
    guardian = await make_user(db_session, "PARENT")
    child = await make_user(db_session, "STUDENT", parent=guardian)
    orphan = await make_user(db_session, "STUDENT")

    assert await enrollment.get_guardian_of(db_session, child.id) == guardian.id
    assert await enrollment.get_guardian_of(db_session, orphan.id) is None
    assert await enrollment.get_guardians_of(db_session, [child.id, orphan.id]) == {child.id: guardian.id}
    assert await enrollment.get_children_of(db_session, guardian.id) == [child.id]


async def test_active_admins_only(db_session):
    admin = await make_user(db_session, "ADMIN")
    root = await make_user(db_session, "SUPER_ADMIN")
    await make_user(db_session, "ADMIN", status="INACTIVE")
    await make_user(db_session, "TEACHER")

    assert set(await enrollment.list_active_admin_ids(db_session)) == {admin.id, root.id}


async def test_teacher_batches_include_assisted(db_session):
    teacher = await make_user(db_session, "TEACHER")
    assistant = await make_user(db_session, "TEACHER")
    own = await make_batch(db_session, assistant, name="Own")
    assisted = await make_batch(db_session, teacher, assistants=[assistant], name="Assisted")
    await make_batch(db_session, teacher, name="Other")

    assert set(await enrollment.list_batch_ids_for_teacher(db_session, assistant.id)) == {own.id, assisted.id}


async def test_scheduled_batches_skip_inactive(db_session):
    teacher = await make_user(db_session, "TEACHER")
    running = await make_batch(db_session, teacher, schedule=[("tuesday", "09:00", "10:00")])
    await make_batch(db_session, teacher, schedule=[("tuesday", "11:00", "12:00")], status="draft")
    await make_batch(db_session, teacher, schedule=[("wednesday", "09:00", "10:00")])

    scheduled = await enrollment.list_batches_scheduled_on(db_session, "tuesday")
    assert [b.batch_id for b in scheduled] == [running.id]
