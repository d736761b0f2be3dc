import sqlite3
import time

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.security import ROLE_ADMIN, ROLE_TEACHER, issue_session_token, require_session
from database.db import create_tables, verify_admin_credentials, verify_teacher_credentials

router = APIRouter()


class AdminLogin(BaseModel):
    username: str
    password: str


class TeacherLogin(BaseModel):
    employee_id: str
    password: str


def _token_response(token: str, claims: dict) -> dict:
    now = int(time.time())
    return {
        "access_token": token,
        "token_type": "bearer",
        "username": claims["sub"],
        "role": claims["role"],
        "expires_at": claims["exp"],
        "expires_in": max(0, int(claims["exp"]) - now),
    }


def _issue_admin_token(payload: AdminLogin) -> dict:
    username = payload.username.strip()
    password = payload.password.strip()

    if not username:
        raise HTTPException(status_code=400, detail="Username is required.")
    if not password:
        raise HTTPException(status_code=400, detail="Password is required.")

    try:
        admin = verify_admin_credentials(username, password)
    except sqlite3.OperationalError:
        # Self-heal when DB schema is missing (e.g., startup/lifespan skipped).
        try:
            create_tables()
            admin = verify_admin_credentials(username, password)
        except sqlite3.OperationalError:
            raise HTTPException(
                status_code=503,
                detail="Authentication service unavailable. Please retry.",
            )

    if not admin:
        raise HTTPException(status_code=401, detail="Invalid admin credentials.")

    token, claims = issue_session_token(admin["username"], role=ROLE_ADMIN)
    return _token_response(token, claims)


@router.post("/auth/login")
def admin_login(payload: AdminLogin):
    return _issue_admin_token(payload)


@router.post("/auth/teacher/login")
def teacher_login(payload: TeacherLogin):
    employee_id = payload.employee_id.strip()
    if not employee_id or not payload.password:
        raise HTTPException(status_code=400, detail="Employee ID and password are required.")

    teacher = verify_teacher_credentials(employee_id, payload.password)
    if not teacher:
        raise HTTPException(status_code=401, detail="Invalid teacher credentials.")

    token, claims = issue_session_token(
        teacher["employee_id"],
        role=ROLE_TEACHER,
        teacher_id=teacher["id"],
    )
    return {**_token_response(token, claims), "teacher_id": teacher["id"]}


@router.get("/auth/me")
def auth_me(session: dict = Depends(require_session)):
    return {
        "username": session.get("sub"),
        "role": session.get("role"),
        "teacher_id": session.get("tid"),
        "expires_at": session.get("exp"),
        "issued_at": session.get("iat"),
    }
