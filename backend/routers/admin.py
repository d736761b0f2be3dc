from datetime import date as date_type
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.deps import get_academic_year_id, get_now
from backend.security import require_admin
from backend.services.attendance import SessionStatus, process_ended_classes, session_payload
from database.db import (
    AttendanceFilter,
    count_attendance_sessions,
    get_activity_logs,
    list_attendance_sessions,
)

router = APIRouter(dependencies=[Depends(require_admin)])
ALLOWED_ACTIONS: set[str] = {"check_in", "check_out", "attempt_failed"}


@router.get("/admin/attendance")
def list_attendance(
    teacher_id: int | None = None,
    course_id: int | None = None,
    date: date_type | None = None,
    date_from: date_type | None = None,
    date_to: date_type | None = None,
    status: SessionStatus | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    filters = AttendanceFilter(
        teacher_id=teacher_id,
        course_id=course_id,
        date=date.isoformat() if date else None,
        date_from=date_from.isoformat() if date_from else None,
        date_to=date_to.isoformat() if date_to else None,
        status=status.value if status else None,
    )
    rows = list_attendance_sessions(filters, limit=limit, offset=offset)
    for row in rows:
        row["teacher_name"] = row.get("teacher_name") or "Not Assigned"
        row["course_name"] = row.get("course_name") or "N/A"
        row["classroom_name"] = row.get("classroom_name") or "N/A"
    return {
        "rows": [session_payload(r) for r in rows],
        "total": count_attendance_sessions(filters),
        "limit": limit,
        "offset": offset,
    }


@router.get("/admin/activity-logs")
def list_activity_logs(
    teacher_id: int | None = None,
    action: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    clean_action = action.strip() if action else None
    if clean_action and clean_action not in ALLOWED_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action filter.")
    rows = get_activity_logs(teacher_id=teacher_id, action=clean_action, limit=limit, offset=offset)
    return {"rows": rows, "limit": limit, "offset": offset}


@router.post("/admin/attendance/process")
def run_attendance_processing(
    now: datetime = Depends(get_now),
    academic_year_id: int | None = Depends(get_academic_year_id),
):
    if academic_year_id is None:
        raise HTTPException(status_code=400, detail="No active academic year.")
    stats = process_ended_classes(now=now, academic_year_id=academic_year_id)
    return {
        "ok": True,
        "message": "Attendance processing completed.",
        **stats,
    }
