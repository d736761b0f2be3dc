import sqlite3

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.security import require_admin
from database.db import (
    add_academic_year,
    add_classroom,
    add_course,
    get_academic_years,
    get_classrooms,
    get_courses,
)

router = APIRouter(dependencies=[Depends(require_admin)])


class AcademicYearCreate(BaseModel):
    name: str
    status: str = Field(default="active", pattern="^(active|inactive)$")


class CourseCreate(BaseModel):
    name: str
    course_code: str
    academic_year_id: int
    teacher_id: int | None = None
    student_size: int = Field(default=0, ge=0)


class ClassroomCreate(BaseModel):
    name: str
    room_number: str | None = None
    capacity: int = Field(default=0, ge=0)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    radius_meters: float | None = Field(default=None, ge=0)
    is_active: bool = True


@router.get("/academic-years")
def academic_years():
    return get_academic_years()


@router.post("/academic-years")
def create_academic_year(payload: AcademicYearCreate):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required.")
    try:
        new_id = add_academic_year(name, payload.status)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Academic year already exists.")
    return {"id": new_id, "name": name, "status": payload.status}


@router.get("/courses")
def courses(academic_year_id: int | None = None):
    return get_courses(academic_year_id)


@router.post("/courses")
def create_course(payload: CourseCreate):
    name = payload.name.strip()
    code = payload.course_code.strip()
    if not name or not code:
        raise HTTPException(status_code=400, detail="Course name and code are required.")
    try:
        new_id = add_course(
            name,
            code,
            payload.academic_year_id,
            teacher_id=payload.teacher_id,
            student_size=payload.student_size,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="Course code already exists or the teacher/academic year is unknown.",
        )
    return {"id": new_id, "name": name, "course_code": code, "teacher_id": payload.teacher_id}


@router.get("/classrooms")
def classrooms():
    return get_classrooms()


@router.post("/classrooms")
def create_classroom(payload: ClassroomCreate):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required.")
    if (payload.latitude is None) != (payload.longitude is None):
        raise HTTPException(status_code=400, detail="Latitude and longitude must be set together.")
    try:
        new_id = add_classroom(
            name,
            payload.capacity,
            room_number=payload.room_number,
            latitude=payload.latitude,
            longitude=payload.longitude,
            radius_meters=payload.radius_meters,
            is_active=payload.is_active,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Classroom name already exists.")
    return {"id": new_id, "name": name}
