from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.security import require_admin
from backend.services.conflicts import (
    ScheduleCandidate,
    check_conflict,
    create_timetable_entry,
    update_timetable_entry,
)
from backend.services.intervals import Weekday, build_interval
from database.db import TimetableFilter, delete_timetable_entry, list_timetable_entries

router = APIRouter(dependencies=[Depends(require_admin)])

NOT_ASSIGNED = "Not Assigned"
NOT_AVAILABLE = "N/A"


class TimetablePayload(BaseModel):
    academic_year_id: int
    course_id: int
    class_room_id: int
    day: Weekday
    start_time: str  # HH:MM
    end_time: str    # HH:MM


class ConflictCheckPayload(TimetablePayload):
    exclude_id: int | None = None


def _candidate(payload: TimetablePayload, exclude_id: int | None = None) -> ScheduleCandidate:
    return ScheduleCandidate(
        academic_year_id=payload.academic_year_id,
        course_id=payload.course_id,
        class_room_id=payload.class_room_id,
        interval=build_interval(payload.day, payload.start_time, payload.end_time),
        exclude_entry_id=exclude_id,
    )


def _present(row: dict) -> dict:
    out = dict(row)
    out["teacher_name"] = row.get("teacher_name") or NOT_ASSIGNED
    out["classroom_name"] = row.get("classroom_name") or NOT_AVAILABLE
    out["academic_year_name"] = row.get("academic_year_name") or NOT_AVAILABLE
    return out


@router.get("/timetables")
def timetables(
    academic_year_id: int | None = None,
    course_id: int | None = None,
    class_room_id: int | None = None,
    teacher_id: int | None = None,
    day: Weekday | None = None,
):
    filters = TimetableFilter(
        academic_year_id=academic_year_id,
        course_id=course_id,
        class_room_id=class_room_id,
        teacher_id=teacher_id,
        day=day.value if day else None,
    )
    return {"success": True, "data": [_present(r) for r in list_timetable_entries(filters)]}


@router.post("/timetables/check-conflict")
def timetable_check_conflict(payload: ConflictCheckPayload):
    result = check_conflict(_candidate(payload, payload.exclude_id))
    return result.to_dict()


@router.post("/timetables")
def create_timetable(payload: TimetablePayload):
    entry = create_timetable_entry(_candidate(payload))
    return {
        "success": True,
        "message": "Time table entry created successfully.",
        "data": entry,
    }


@router.put("/timetables/{entry_id}")
def update_timetable(entry_id: int, payload: TimetablePayload):
    entry = update_timetable_entry(entry_id, _candidate(payload))
    return {
        "success": True,
        "message": "Time table entry updated successfully.",
        "data": entry,
    }


@router.delete("/timetables/{entry_id}")
def delete_timetable(entry_id: int):
    if not delete_timetable_entry(entry_id):
        raise HTTPException(status_code=404, detail="Timetable entry not found.")
    return {"success": True, "message": "Time table entry deleted successfully."}
