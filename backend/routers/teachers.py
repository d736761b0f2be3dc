import sqlite3

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.security import require_admin
from database.db import add_teacher, get_all_teachers, get_teacher_by_id

router = APIRouter(dependencies=[Depends(require_admin)])


class TeacherCreate(BaseModel):
    full_name: str
    department: str
    employee_id: str
    password: str | None = None


@router.get("/teachers")
def teachers():
    return get_all_teachers()


@router.get("/teachers/{teacher_id}")
def teacher_detail(teacher_id: int):
    row = get_teacher_by_id(teacher_id)
    if not row:
        return {"found": False}
    return {"found": True, **row}


@router.post("/teachers")
def create_teacher(payload: TeacherCreate):
    full_name = payload.full_name.strip()
    department = payload.department.strip()
    employee_id = payload.employee_id.strip()

    if not full_name or not department or not employee_id:
        raise HTTPException(status_code=400, detail="All fields are required.")

    try:
        new_id = add_teacher(full_name, department, employee_id, payload.password)
        return {
            "id": new_id,
            "full_name": full_name,
            "department": department,
            "employee_id": employee_id,
        }
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Employee ID already exists.")
