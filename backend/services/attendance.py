"""
Teacher attendance sessions: geofenced check-in/check-out against scheduled
classes, plus end-of-class processing.

Session lifecycle (one row per teacher/course/classroom/timetable/date):

    no session --check_in--> pending --check_out--> completed | present | incomplete
    no session --class ended--> absent
    pending    --class ended--> incomplete   (a late check-out still resolves it)

`status` is always derived here from timing and geofence evidence. A status
sent by the client is kept as `status_hint` only.
"""

import logging
import sqlite3
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from backend import config
from backend.errors import (
    AttendanceError,
    ForbiddenError,
    NotFoundError,
    StateError,
    TimingError,
    ValidationError,
)
from backend.services.geofence import (
    Coord,
    GeofenceResult,
    GeofenceStatus,
    classroom_center,
    evaluate,
)
from backend.services.intervals import Weekday, hms, parse_clock
from database.db import (
    AttendanceRow,
    TimetableFilter,
    complete_attendance_session,
    get_attendance_session,
    get_classroom,
    get_open_session,
    get_session_for_timetable,
    get_timetable_entries_for_day,
    get_timetable_entry,
    insert_attendance_session,
    list_timetable_entries,
    log_attempt,
    set_attendance_status,
    transaction,
)

logger = logging.getLogger(__name__)

ACTIVE_CHECK_IN_MESSAGE = "You already have an active check-in. Please check out first."


class SessionStatus(str, Enum):
    PENDING = "pending"
    PRESENT = "present"
    ABSENT = "absent"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


class CheckInStatus(str, Enum):
    ON_TIME = "on_time"
    LATE = "late"


def derive_session_status(
    check_in_geofence: str | None,
    check_out_geofence: str | None,
    check_in_status: str | None,
) -> SessionStatus:
    """Status of a checked-out session from its location and timing evidence."""
    within = GeofenceStatus.WITHIN.value
    if check_in_geofence != within or check_out_geofence != within:
        return SessionStatus.INCOMPLETE
    if check_in_status == CheckInStatus.LATE.value:
        return SessionStatus.PRESENT
    return SessionStatus.COMPLETED


def session_state(row: dict) -> str:
    if row.get("check_out_time"):
        return "completed"
    if row.get("check_in_time"):
        return "checked_in"
    return "not_checked_in"


def session_payload(row: dict) -> dict[str, Any]:
    out = dict(row)
    out["check_in_within_range"] = bool(row.get("check_in_within_range"))
    out["check_out_within_range"] = bool(row.get("check_out_within_range"))
    out["state"] = session_state(row)
    return out


def _geofence_payload(coord: Coord, result: GeofenceResult) -> dict[str, Any]:
    return {
        "latitude": coord.latitude,
        "longitude": coord.longitude,
        "distance": result.distance_meters,
        "geofence": result.status.value,
        "within_range": result.within_range,
    }


def _evaluate_for_classroom(conn: sqlite3.Connection, classroom_id: int, coord: Coord) -> GeofenceResult:
    classroom = get_classroom(classroom_id, conn=conn)
    if classroom is None:
        return evaluate(coord, None, 0.0)
    return evaluate(coord, classroom_center(classroom), float(classroom["radius_meters"]))


def check_in(
    *,
    teacher_id: int,
    timetable_id: int,
    course_id: int,
    on_date: date,
    now: datetime,
    coord: Coord,
) -> AttendanceRow:
    """
    Open an attendance session for a scheduled class.

    Rules, first violated wins: the entry exists and matches the declared
    course (and the teacher's assignment and the weekday); the teacher has no
    open session on `on_date`; the class has started. With GPS enforcement a
    position explicitly outside the geofence is rejected.
    """
    entry = None
    geofence: GeofenceResult | None = None
    try:
        with transaction() as conn:
            entry = get_timetable_entry(timetable_id, conn=conn)
            if entry is None:
                raise NotFoundError("Invalid timetable ID.", field="timetable_id")
            if entry["course_id"] != course_id:
                raise ValidationError("Course does not match timetable.", field="course_id")
            if entry["teacher_id"] != teacher_id:
                raise ForbiddenError("You are not assigned to this course.")
            if entry["day"] != Weekday.of(on_date).value:
                raise ValidationError("Class is not scheduled on this day.", field="timetable_id")

            date_key = on_date.isoformat()
            if get_open_session(teacher_id, date_key, conn=conn) is not None:
                raise StateError(ACTIVE_CHECK_IN_MESSAGE)

            starts_at = datetime.combine(on_date, parse_clock(entry["start_time"]))
            if now < starts_at:
                raise TimingError("Class has not started yet.")

            geofence = _evaluate_for_classroom(conn, entry["class_room_id"], coord)
            if config.GPS_ENFORCEMENT_ENABLED and geofence.status is GeofenceStatus.OUTSIDE:
                raise ValidationError(
                    "You are outside the allowed attendance location. Please move within range.",
                    field="coordinates",
                )

            late_after = starts_at + timedelta(minutes=config.LATE_CHECK_IN_MINUTES)
            punctuality = CheckInStatus.LATE if now > late_after else CheckInStatus.ON_TIME

            try:
                session_id = insert_attendance_session(
                    conn,
                    teacher_id=teacher_id,
                    course_id=entry["course_id"],
                    classroom_id=entry["class_room_id"],
                    timetable_id=timetable_id,
                    academic_year_id=entry["academic_year_id"],
                    date=date_key,
                    status=SessionStatus.PENDING.value,
                    check_in_time=hms(now.time()),
                    check_in_latitude=coord.latitude,
                    check_in_longitude=coord.longitude,
                    check_in_distance=geofence.distance_meters,
                    check_in_within_range=geofence.within_range,
                    check_in_geofence=geofence.status.value,
                    check_in_status=punctuality.value,
                )
            except sqlite3.IntegrityError:
                # a concurrent check-in won the race, or this class is already on the ledger
                if get_open_session(teacher_id, date_key, conn=conn) is not None:
                    raise StateError(ACTIVE_CHECK_IN_MESSAGE)
                raise StateError("Attendance has already been recorded for this class today.")

            log_attempt(
                "check_in",
                teacher_id,
                timetable_id,
                {
                    "attendance_id": session_id,
                    "status": SessionStatus.PENDING.value,
                    "check_in_status": punctuality.value,
                    **_geofence_payload(coord, geofence),
                },
                conn=conn,
            )
            session = get_attendance_session(session_id, conn=conn)
    except AttendanceError as exc:
        _record_failure(exc, teacher_id, entry["id"] if entry else None, coord, geofence, "check_in")
        raise

    logger.info(
        "Teacher %s checked in to timetable %s (%s, %s)",
        teacher_id,
        timetable_id,
        geofence.status.value,
        punctuality.value,
    )
    return session  # type: ignore[return-value]


def check_out(
    *,
    session_id: int,
    teacher_id: int,
    now: datetime,
    coord: Coord,
    status_hint: str | None = None,
) -> AttendanceRow:
    session = None
    geofence: GeofenceResult | None = None
    try:
        with transaction() as conn:
            session = get_attendance_session(session_id, conn=conn)
            if session is None:
                raise NotFoundError("Attendance record not found.", field="attendance_id")
            if session["teacher_id"] != teacher_id:
                raise ForbiddenError("You are not authorized to check out this attendance record.")
            if session["check_out_time"] is not None:
                raise StateError("Already checked out.")
            if session["check_in_time"] is None:
                raise StateError("There is no check-in to check out from for this class.")

            entry = get_timetable_entry(session["timetable_id"], conn=conn)
            if entry is None:
                raise NotFoundError("Timetable entry not found.")
            ends_at = datetime.combine(date.fromisoformat(session["date"]), parse_clock(entry["end_time"]))
            if now < ends_at:
                raise TimingError("Class is still ongoing.")

            geofence = _evaluate_for_classroom(conn, session["classroom_id"], coord)
            if config.GPS_ENFORCEMENT_ENABLED and geofence.status is GeofenceStatus.OUTSIDE:
                raise ValidationError(
                    "You are outside the allowed attendance location for check-out.",
                    field="coordinates",
                )

            status = derive_session_status(
                session["check_in_geofence"],
                geofence.status.value,
                session["check_in_status"],
            )
            hint = (status_hint or "").strip().lower() or None
            if hint and hint != status.value:
                logger.info(
                    "Ignoring client status %r for attendance %s; derived %s",
                    hint,
                    session_id,
                    status.value,
                )

            if not complete_attendance_session(
                conn,
                session_id,
                check_out_time=hms(now.time()),
                check_out_latitude=coord.latitude,
                check_out_longitude=coord.longitude,
                check_out_distance=geofence.distance_meters,
                check_out_within_range=geofence.within_range,
                check_out_geofence=geofence.status.value,
                status=status.value,
                status_hint=hint,
            ):
                raise StateError("Already checked out.")

            log_attempt(
                "check_out",
                teacher_id,
                session["timetable_id"],
                {
                    "attendance_id": session_id,
                    "status": status.value,
                    "status_hint": hint,
                    **_geofence_payload(coord, geofence),
                },
                conn=conn,
            )
            updated = get_attendance_session(session_id, conn=conn)
    except AttendanceError as exc:
        timetable_id = session["timetable_id"] if session and session["teacher_id"] == teacher_id else None
        _record_failure(exc, teacher_id, timetable_id, coord, geofence, "check_out")
        raise

    logger.info("Teacher %s checked out of attendance %s (%s)", teacher_id, session_id, status.value)
    return updated  # type: ignore[return-value]


def _record_failure(
    exc: AttendanceError,
    teacher_id: int,
    timetable_id: int | None,
    coord: Coord,
    geofence: GeofenceResult | None,
    stage: str,
) -> None:
    logger.warning("%s rejected for teacher %s: %s", stage, teacher_id, exc.message)
    payload: dict[str, Any] = {
        "stage": stage,
        "reason": exc.kind,
        "message": exc.message,
        "latitude": coord.latitude,
        "longitude": coord.longitude,
    }
    if geofence is not None:
        payload.update(_geofence_payload(coord, geofence))
    log_attempt("attempt_failed", teacher_id, timetable_id, payload)


def process_ended_classes(*, now: datetime, academic_year_id: int) -> dict[str, int]:
    """
    Resolve today's classes that have ended: no session becomes `absent`, a
    session still open becomes `incomplete`. Classes without a teacher are
    skipped. Safe to run repeatedly.
    """
    today = now.date()
    date_key = today.isoformat()
    stats = {"processed": 0, "absent_marked": 0, "incomplete_marked": 0}

    with transaction() as conn:
        entries = get_timetable_entries_for_day(academic_year_id, Weekday.of(today).value, conn=conn)
        for entry in entries:
            if entry["teacher_id"] is None:
                continue
            if now.time() < parse_clock(entry["end_time"]):
                continue
            stats["processed"] += 1

            session = get_session_for_timetable(entry["id"], date_key, conn=conn)
            if session is None:
                insert_attendance_session(
                    conn,
                    teacher_id=entry["teacher_id"],
                    course_id=entry["course_id"],
                    classroom_id=entry["class_room_id"],
                    timetable_id=entry["id"],
                    academic_year_id=entry["academic_year_id"],
                    date=date_key,
                    status=SessionStatus.ABSENT.value,
                )
                stats["absent_marked"] += 1
                continue

            if (
                session["check_in_time"]
                and not session["check_out_time"]
                and session["status"] != SessionStatus.INCOMPLETE.value
            ):
                set_attendance_status(conn, session["id"], SessionStatus.INCOMPLETE.value)
                stats["incomplete_marked"] += 1

    logger.info("End-of-class processing for %s: %s", date_key, stats)
    return stats


def todays_classes(*, teacher_id: int, now: datetime, academic_year_id: int | None) -> list[dict[str, Any]]:
    """The teacher's classes on `now`'s weekday with their attendance state."""
    today = now.date()
    rows = list_timetable_entries(
        TimetableFilter(
            academic_year_id=academic_year_id,
            teacher_id=teacher_id,
            day=Weekday.of(today).value,
        )
    )
    out = []
    for row in rows:
        session = get_session_for_timetable(row["id"], today.isoformat())
        out.append(
            {
                "timetable_id": row["id"],
                "course_id": row["course_id"],
                "course_name": row["course_name"],
                "course_code": row["course_code"],
                "classroom_id": row["class_room_id"],
                "classroom_name": row["classroom_name"] or "N/A",
                "start_time": row["start_time"],
                "end_time": row["end_time"],
                "attendance_taken": session is not None and session["check_in_time"] is not None,
                "attendance": session_payload(session) if session else None,
            }
        )
    return out
