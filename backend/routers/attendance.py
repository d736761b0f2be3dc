from datetime import date as date_type
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.deps import get_academic_year_id, get_now
from backend.security import require_teacher
from backend.services.attendance import (
    SessionStatus,
    check_in,
    check_out,
    session_payload,
    todays_classes,
)
from backend.services.geofence import Coord
from backend.services.intervals import Weekday
from database.db import (
    AttendanceFilter,
    TimetableFilter,
    count_attendance_sessions,
    list_attendance_sessions,
    list_timetable_entries,
)

router = APIRouter()


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)

    def to_coord(self) -> Coord:
        return Coord(self.latitude, self.longitude)


class CheckInRequest(BaseModel):
    timetable_id: int
    course_id: int
    coordinates: Coordinates


class CheckOutRequest(BaseModel):
    attendance_id: int
    coordinates: Coordinates
    # accepted for older clients; the stored status is always derived server-side
    status: str | None = None


@router.get("/attendance/today")
def attendance_today(
    teacher_id: int = Depends(require_teacher),
    now: datetime = Depends(get_now),
    academic_year_id: int | None = Depends(get_academic_year_id),
):
    return {
        "success": True,
        "message": "Today's classes fetched successfully",
        "data": todays_classes(teacher_id=teacher_id, now=now, academic_year_id=academic_year_id),
    }


@router.post("/attendance/check-in")
def attendance_check_in(
    payload: CheckInRequest,
    teacher_id: int = Depends(require_teacher),
    now: datetime = Depends(get_now),
):
    session = check_in(
        teacher_id=teacher_id,
        timetable_id=payload.timetable_id,
        course_id=payload.course_id,
        on_date=now.date(),
        now=now,
        coord=payload.coordinates.to_coord(),
    )
    return {
        "success": True,
        "message": "Check-in successful",
        "data": session_payload(session),
    }


@router.post("/attendance/check-out")
def attendance_check_out(
    payload: CheckOutRequest,
    teacher_id: int = Depends(require_teacher),
    now: datetime = Depends(get_now),
):
    session = check_out(
        session_id=payload.attendance_id,
        teacher_id=teacher_id,
        now=now,
        coord=payload.coordinates.to_coord(),
        status_hint=payload.status,
    )
    return {
        "success": True,
        "message": "Check-out successful",
        "data": session_payload(session),
    }


@router.get("/attendance/timetable")
def attendance_timetable(
    teacher_id: int = Depends(require_teacher),
    academic_year_id: int | None = Depends(get_academic_year_id),
):
    rows = list_timetable_entries(TimetableFilter(academic_year_id=academic_year_id, teacher_id=teacher_id))
    week = list(Weekday)
    rows.sort(key=lambda r: (week.index(Weekday(r["day"])), r["start_time"], r["id"]))
    data = []
    for row in rows:
        item = dict(row)
        item["classroom_name"] = row.get("classroom_name") or "N/A"
        item["course_name"] = row.get("course_name") or "N/A"
        item["academic_year_name"] = row.get("academic_year_name") or "N/A"
        data.append(item)
    return {"success": True, "message": "Timetable fetched successfully", "data": data}


@router.get("/attendance/history")
def attendance_history(
    date: date_type | None = None,
    date_from: date_type | None = None,
    date_to: date_type | None = None,
    course_id: int | None = None,
    status: SessionStatus | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    teacher_id: int = Depends(require_teacher),
    now: datetime = Depends(get_now),
):
    if date is None and date_from is None and date_to is None:
        date = now.date()
    filters = AttendanceFilter(
        teacher_id=teacher_id,
        course_id=course_id,
        date=date.isoformat() if date else None,
        date_from=date_from.isoformat() if date_from else None,
        date_to=date_to.isoformat() if date_to else None,
        status=status.value if status else None,
    )
    rows = list_attendance_sessions(filters, limit=limit, offset=offset)
    return {
        "success": True,
        "data": [session_payload(r) for r in rows],
        "total": count_attendance_sessions(filters),
    }
