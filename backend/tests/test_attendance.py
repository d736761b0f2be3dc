import sqlite3
import threading
from datetime import date, datetime, time

import pytest

import backend.config as config
import database.db as db
from backend.errors import ForbiddenError, NotFoundError, StateError, TimingError, ValidationError
from backend.services.attendance import (
    CheckInStatus,
    SessionStatus,
    check_in,
    check_out,
    derive_session_status,
    process_ended_classes,
    todays_classes,
)
from backend.services.conflicts import ScheduleCandidate, create_timetable_entry
from backend.services.geofence import Coord
from backend.services.intervals import build_interval

MONDAY = date(2026, 10, 19)
INSIDE_ROOM_1 = Coord(0.0004, 0.0)
OUTSIDE_ROOM_1 = Coord(0.002, 0.0)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(MONDAY, time(hour, minute))


def _entry(school, course, room, start, end, day="Monday") -> int:
    row = create_timetable_entry(
        ScheduleCandidate(
            academic_year_id=school["year"],
            course_id=school[course],
            class_room_id=school[room],
            interval=build_interval(day, start, end),
        )
    )
    return row["id"]


def _check_in(school, entry_id, course="course_x", *, now, coord=INSIDE_ROOM_1, teacher="teacher_t"):
    return check_in(
        teacher_id=school[teacher],
        timetable_id=entry_id,
        course_id=school[course],
        on_date=now.date(),
        now=now,
        coord=coord,
    )


def test_check_in_inside_geofence_opens_pending_session(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")

    session = _check_in(school, entry_id, now=_at(9, 5))

    assert session["status"] == SessionStatus.PENDING.value
    assert session["check_in_time"] == "09:05:00"
    assert session["check_out_time"] is None
    assert session["check_in_geofence"] == "within"
    assert session["check_in_within_range"] == 1
    assert session["check_in_distance"] == pytest.approx(44.48, abs=0.05)
    assert session["check_in_status"] == CheckInStatus.ON_TIME.value


def test_check_out_before_class_ends_is_rejected(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")
    session = _check_in(school, entry_id, now=_at(9, 5))

    with pytest.raises(TimingError) as excinfo:
        check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(9, 50), coord=INSIDE_ROOM_1)

    assert excinfo.value.message == "Class is still ongoing."
    assert db.get_attendance_session(session["id"])["check_out_time"] is None


def test_open_session_blocks_a_second_check_in(school):
    first = _entry(school, "course_x", "room_1", "08:00", "09:00")
    second = _entry(school, "course_y", "room_1", "09:00", "10:00")
    _check_in(school, first, now=_at(8, 5))

    with pytest.raises(StateError) as excinfo:
        _check_in(school, second, "course_y", now=_at(9, 10))

    assert excinfo.value.message == "You already have an active check-in. Please check out first."


def test_check_in_before_class_starts_is_rejected(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")

    with pytest.raises(TimingError):
        _check_in(school, entry_id, now=_at(8, 59))


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"timetable_id": 9999}, NotFoundError),
        ({"course": "course_y"}, ValidationError),
        ({"teacher": "teacher_u"}, ForbiddenError),
    ],
)
def test_check_in_validates_entry_course_and_teacher(school, kwargs, error):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")
    course = kwargs.get("course", "course_x")
    teacher = kwargs.get("teacher", "teacher_t")

    with pytest.raises(error):
        check_in(
            teacher_id=school[teacher],
            timetable_id=kwargs.get("timetable_id", entry_id),
            course_id=school[course],
            on_date=MONDAY,
            now=_at(9, 5),
            coord=INSIDE_ROOM_1,
        )


def test_check_in_on_another_weekday_is_rejected(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00", day="Tuesday")

    with pytest.raises(ValidationError):
        _check_in(school, entry_id, now=_at(9, 5))


def test_check_in_outside_geofence_is_rejected_when_enforced(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")

    with pytest.raises(ValidationError) as excinfo:
        _check_in(school, entry_id, now=_at(9, 5), coord=OUTSIDE_ROOM_1)

    assert excinfo.value.field == "coordinates"
    assert db.get_session_for_timetable(entry_id, MONDAY.isoformat()) is None

    failures = db.get_activity_logs(action="attempt_failed")
    assert len(failures) == 1
    assert failures[0]["timetable_id"] == entry_id
    assert failures[0]["payload"]["geofence"] == "outside"


def test_full_session_inside_geofence_completes(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")
    session = _check_in(school, entry_id, now=_at(9, 5))

    done = check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 2), coord=INSIDE_ROOM_1)

    assert done["status"] == SessionStatus.COMPLETED.value
    assert done["check_out_time"] == "10:02:00"
    assert done["check_out_geofence"] == "within"
    assert [log["action"] for log in db.get_activity_logs()] == ["check_out", "check_in"]


def test_late_check_in_is_present_after_check_out(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")
    session = _check_in(school, entry_id, now=_at(9, 20))
    assert session["check_in_status"] == CheckInStatus.LATE.value

    done = check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 0), coord=INSIDE_ROOM_1)

    assert done["status"] == SessionStatus.PRESENT.value


def test_classroom_without_geofence_is_recorded_as_unavailable(school):
    entry_id = _entry(school, "course_x", "room_3", "09:00", "10:00")
    session = _check_in(school, entry_id, now=_at(9, 5), coord=Coord(5.0, 5.0))

    assert session["check_in_geofence"] == "unavailable"
    assert session["check_in_within_range"] == 0
    assert session["check_in_distance"] is None

    done = check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 5), coord=Coord(5.0, 5.0))
    assert done["status"] == SessionStatus.INCOMPLETE.value


def test_outside_geofence_is_recorded_when_enforcement_is_off(school, monkeypatch):
    monkeypatch.setattr(config, "GPS_ENFORCEMENT_ENABLED", False)
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")

    session = _check_in(school, entry_id, now=_at(9, 5), coord=OUTSIDE_ROOM_1)
    assert session["check_in_geofence"] == "outside"
    assert session["check_in_within_range"] == 0

    done = check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 5), coord=INSIDE_ROOM_1)
    assert done["status"] == SessionStatus.INCOMPLETE.value


def test_client_status_is_kept_only_as_hint(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")
    session = _check_in(school, entry_id, now=_at(9, 5))

    done = check_out(
        session_id=session["id"],
        teacher_id=school["teacher_t"],
        now=_at(10, 5),
        coord=INSIDE_ROOM_1,
        status_hint="Present",
    )

    assert done["status"] == SessionStatus.COMPLETED.value
    assert done["status_hint"] == "present"


def test_check_out_rules(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")
    session = _check_in(school, entry_id, now=_at(9, 5))

    with pytest.raises(NotFoundError):
        check_out(session_id=9999, teacher_id=school["teacher_t"], now=_at(10, 5), coord=INSIDE_ROOM_1)
    with pytest.raises(ForbiddenError):
        check_out(session_id=session["id"], teacher_id=school["teacher_u"], now=_at(10, 5), coord=INSIDE_ROOM_1)
    with pytest.raises(ValidationError):
        check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 5), coord=OUTSIDE_ROOM_1)

    check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 5), coord=INSIDE_ROOM_1)

    with pytest.raises(StateError) as excinfo:
        check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 6), coord=INSIDE_ROOM_1)
    assert excinfo.value.message == "Already checked out."


def test_same_class_cannot_be_checked_into_twice(school):
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")
    session = _check_in(school, entry_id, now=_at(9, 5))
    check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 1), coord=INSIDE_ROOM_1)

    with pytest.raises(StateError) as excinfo:
        _check_in(school, entry_id, now=_at(10, 2))

    assert excinfo.value.message == "Attendance has already been recorded for this class today."


def test_ledger_refuses_a_second_open_session(school):
    first = _entry(school, "course_x", "room_1", "08:00", "09:00")
    second = _entry(school, "course_y", "room_1", "09:00", "10:00")
    common = {
        "teacher_id": school["teacher_t"],
        "classroom_id": school["room_1"],
        "academic_year_id": school["year"],
        "date": MONDAY.isoformat(),
        "status": "pending",
        "check_in_time": "08:05:00",
    }

    with db.transaction() as conn:
        db.insert_attendance_session(conn, course_id=school["course_x"], timetable_id=first, **common)

    with pytest.raises(sqlite3.IntegrityError):
        with db.transaction() as conn:
            db.insert_attendance_session(conn, course_id=school["course_y"], timetable_id=second, **common)

    assert db.count_attendance_sessions(db.AttendanceFilter(teacher_id=school["teacher_t"])) == 1


def test_failed_attempts_are_not_logged_when_disabled(school, monkeypatch):
    monkeypatch.setattr(db, "LOG_FAILED_ATTEMPTS", False)
    entry_id = _entry(school, "course_x", "room_1", "09:00", "10:00")

    with pytest.raises(TimingError):
        _check_in(school, entry_id, now=_at(8, 30))

    assert db.get_activity_logs() == []


def test_derive_session_status():
    assert derive_session_status("within", "within", "on_time") is SessionStatus.COMPLETED
    assert derive_session_status("within", "within", "late") is SessionStatus.PRESENT
    assert derive_session_status("within", "outside", "on_time") is SessionStatus.INCOMPLETE
    assert derive_session_status("unavailable", "within", "on_time") is SessionStatus.INCOMPLETE
    assert derive_session_status(None, None, None) is SessionStatus.INCOMPLETE


def test_process_ended_classes_marks_absent_and_incomplete(school):
    attended = _entry(school, "course_x", "room_1", "08:00", "09:00")
    missed = _entry(school, "course_y", "room_1", "09:00", "10:00")
    unassigned = _entry(school, "course_z", "room_2", "08:00", "09:00")
    later = _entry(school, "course_p", "room_2", "11:00", "12:00")
    session = _check_in(school, attended, now=_at(8, 5))

    stats = process_ended_classes(now=_at(10, 30), academic_year_id=school["year"])

    assert stats == {"processed": 2, "absent_marked": 1, "incomplete_marked": 1}
    assert db.get_attendance_session(session["id"])["status"] == "incomplete"
    absent = db.get_session_for_timetable(missed, MONDAY.isoformat())
    assert absent["status"] == "absent"
    assert absent["check_in_time"] is None
    assert db.get_session_for_timetable(unassigned, MONDAY.isoformat()) is None
    assert db.get_session_for_timetable(later, MONDAY.isoformat()) is None

    rerun = process_ended_classes(now=_at(10, 31), academic_year_id=school["year"])
    assert rerun == {"processed": 2, "absent_marked": 0, "incomplete_marked": 0}

    # the open session can still be resolved afterwards
    done = check_out(session_id=session["id"], teacher_id=school["teacher_t"], now=_at(10, 40), coord=INSIDE_ROOM_1)
    assert done["status"] == SessionStatus.COMPLETED.value


def test_todays_classes_reports_attendance_state(school):
    first = _entry(school, "course_x", "room_1", "08:00", "09:00")
    second = _entry(school, "course_y", "room_1", "09:00", "10:00")
    _entry(school, "course_y", "room_1", "09:00", "10:00", day="Tuesday")
    _entry(school, "course_p", "room_2", "08:00", "09:00")
    _check_in(school, first, now=_at(8, 5))

    classes = todays_classes(teacher_id=school["teacher_t"], now=_at(8, 30), academic_year_id=school["year"])

    assert [c["timetable_id"] for c in classes] == [first, second]
    assert classes[0]["attendance_taken"] is True
    assert classes[0]["attendance"]["state"] == "checked_in"
    assert classes[1]["attendance_taken"] is False
    assert classes[1]["attendance"] is None
    assert classes[0]["classroom_name"] == "Room 1"


def test_racing_check_ins_leave_one_open_session(school):
    first = _entry(school, "course_x", "room_1", "08:00", "09:00")
    second = _entry(school, "course_y", "room_1", "09:00", "10:00")
    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(entry_id, course):
        barrier.wait()
        try:
            _check_in(school, entry_id, course, now=_at(9, 10))
            outcomes.append("ok")
        except StateError:
            outcomes.append("StateError")

    threads = [
        threading.Thread(target=attempt, args=(first, "course_x")),
        threading.Thread(target=attempt, args=(second, "course_y")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["StateError", "ok"]
    assert db.get_open_session(school["teacher_t"], MONDAY.isoformat()) is not None
    assert db.count_attendance_sessions(db.AttendanceFilter(teacher_id=school["teacher_t"])) == 1
