"""
Timetable conflict detection and the guarded timetable write path.

A candidate entry is rejected when it overlaps an existing entry of the same
academic year and weekday that either uses the same classroom or belongs to a
course taught by the same teacher. Both checks are independent; either one
blocks the write.
"""

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum

from backend.errors import ConflictError, NotFoundError, ValidationError
from backend.services.intervals import TimeInterval, hms, overlaps, parse_clock, Weekday
from database.db import (
    TimetableRow,
    get_academic_year,
    get_classroom,
    get_course,
    get_timetable_entries_for_day,
    get_timetable_entry,
    insert_timetable_entry,
    transaction,
    update_timetable_row,
)

logger = logging.getLogger(__name__)

CLASSROOM_CONFLICT_MESSAGE = "Time slot conflicts with existing schedule for this classroom on the selected day."
TEACHER_CONFLICT_MESSAGE = "Teacher already has a scheduled class during this time slot."


class ConflictKind(str, Enum):
    NONE = "none"
    CLASSROOM = "classroom"
    TEACHER = "teacher"
    BOTH = "both"


@dataclass(frozen=True)
class ScheduleCandidate:
    academic_year_id: int
    course_id: int
    class_room_id: int
    interval: TimeInterval
    exclude_entry_id: int | None = None

    @property
    def day(self) -> Weekday:
        return self.interval.day


@dataclass(frozen=True)
class ConflictResult:
    kind: ConflictKind
    conflicting_classroom_name: str | None = None

    @property
    def has_conflict(self) -> bool:
        return self.kind is not ConflictKind.NONE

    def to_dict(self) -> dict:
        return {
            "has_conflict": self.has_conflict,
            "conflict_type": "" if self.kind is ConflictKind.NONE else self.kind.value,
            "classroom_name": self.conflicting_classroom_name or "",
        }


def _entry_interval(entry: TimetableRow) -> TimeInterval:
    return TimeInterval(
        Weekday(entry["day"]),
        parse_clock(entry["start_time"]),
        parse_clock(entry["end_time"]),
    )


def check_conflict(candidate: ScheduleCandidate, *, conn: sqlite3.Connection | None = None) -> ConflictResult:
    course = get_course(candidate.course_id, conn=conn)
    if course is None:
        raise NotFoundError("Course not found.", field="course_id")
    teacher_id = course["teacher_id"]

    entries = get_timetable_entries_for_day(
        candidate.academic_year_id,
        candidate.day.value,
        exclude_id=candidate.exclude_entry_id,
        conn=conn,
    )

    classroom_conflict = False
    teacher_conflict = False
    classroom_name: str | None = None

    for entry in entries:
        if not overlaps(candidate.interval, _entry_interval(entry)):
            continue
        if entry["class_room_id"] == candidate.class_room_id:
            classroom_conflict = True
            classroom_name = entry["classroom_name"]
        # no teacher on the course: never a teacher conflict
        if teacher_id is not None and entry["teacher_id"] == teacher_id:
            teacher_conflict = True

    if classroom_conflict and teacher_conflict:
        kind = ConflictKind.BOTH
    elif classroom_conflict:
        kind = ConflictKind.CLASSROOM
    elif teacher_conflict:
        kind = ConflictKind.TEACHER
    else:
        kind = ConflictKind.NONE
    return ConflictResult(kind, classroom_name)


def _raise_for_conflict(result: ConflictResult) -> None:
    if result.kind is ConflictKind.NONE:
        return
    if result.kind is ConflictKind.TEACHER:
        raise ConflictError(
            TEACHER_CONFLICT_MESSAGE,
            conflict_kind=result.kind.value,
            field="course_id",
        )
    message = CLASSROOM_CONFLICT_MESSAGE
    if result.kind is ConflictKind.BOTH:
        message = f"{CLASSROOM_CONFLICT_MESSAGE} {TEACHER_CONFLICT_MESSAGE}"
    raise ConflictError(
        message,
        conflict_kind=result.kind.value,
        field="start_time",
        classroom_name=result.conflicting_classroom_name,
    )


def _validate_references(conn: sqlite3.Connection, candidate: ScheduleCandidate) -> None:
    if get_academic_year(candidate.academic_year_id, conn=conn) is None:
        raise NotFoundError("Academic year not found.", field="academic_year_id")
    classroom = get_classroom(candidate.class_room_id, conn=conn)
    if classroom is None:
        raise NotFoundError("Classroom not found.", field="class_room_id")
    if not classroom["is_active"]:
        raise ValidationError("Classroom is not active.", field="class_room_id")


def _row_values(candidate: ScheduleCandidate) -> dict:
    return {
        "academic_year_id": candidate.academic_year_id,
        "course_id": candidate.course_id,
        "class_room_id": candidate.class_room_id,
        "day": candidate.day.value,
        "start_time": hms(candidate.interval.start),
        "end_time": hms(candidate.interval.end),
    }


def create_timetable_entry(candidate: ScheduleCandidate) -> TimetableRow:
    with transaction() as conn:
        _validate_references(conn, candidate)
        _raise_for_conflict(check_conflict(candidate, conn=conn))
        entry_id = insert_timetable_entry(conn, **_row_values(candidate))
        entry = get_timetable_entry(entry_id, conn=conn)

    logger.info(
        "Timetable entry %s created: course %s in classroom %s on %s %s-%s",
        entry_id,
        candidate.course_id,
        candidate.class_room_id,
        candidate.day.value,
        hms(candidate.interval.start),
        hms(candidate.interval.end),
    )
    return entry  # type: ignore[return-value]


def update_timetable_entry(entry_id: int, candidate: ScheduleCandidate) -> TimetableRow:
    scoped = ScheduleCandidate(
        academic_year_id=candidate.academic_year_id,
        course_id=candidate.course_id,
        class_room_id=candidate.class_room_id,
        interval=candidate.interval,
        exclude_entry_id=entry_id,
    )
    with transaction() as conn:
        if get_timetable_entry(entry_id, conn=conn) is None:
            raise NotFoundError("Timetable entry not found.")
        _validate_references(conn, scoped)
        _raise_for_conflict(check_conflict(scoped, conn=conn))
        update_timetable_row(conn, entry_id, **_row_values(scoped))
        entry = get_timetable_entry(entry_id, conn=conn)

    logger.info("Timetable entry %s updated", entry_id)
    return entry  # type: ignore[return-value]
