from fastapi import APIRouter

from backend.config import (
    DEFAULT_RADIUS_METERS,
    GPS_ENFORCEMENT_ENABLED,
    LATE_CHECK_IN_MINUTES,
)

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config/attendance")
def attendance_config():
    return {
        "default_radius_meters": DEFAULT_RADIUS_METERS,
        "late_check_in_minutes": LATE_CHECK_IN_MINUTES,
        "gps_enforcement_enabled": GPS_ENFORCEMENT_ENABLED,
    }
