from datetime import date

import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import database.db as db

# 2026-10-19 is a Monday.
MONDAY = date(2026, 10, 19)
TEACHER_PASSWORD = "teach-pass-1"


@pytest.fixture()
def database(tmp_path, monkeypatch):
    test_db = tmp_path / "rollcall_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)
    monkeypatch.setattr(config, "GPS_ENFORCEMENT_ENABLED", True)
    monkeypatch.setattr(config, "LATE_CHECK_IN_MINUTES", 15)

    db.create_tables()
    return test_db


@pytest.fixture()
def client(database):
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture()
def school(database):
    """
    One academic year, two teachers, three courses (one without a teacher)
    and three classrooms: two geofenced ~111 m apart, one without a geofence.
    """
    year_id = db.add_academic_year("2026/2027")
    teacher_t = db.add_teacher("Ada Mensah", "Mathematics", "EMP001", TEACHER_PASSWORD)
    teacher_u = db.add_teacher("Kofi Boateng", "Physics", "EMP002", TEACHER_PASSWORD)
    course_x = db.add_course("Calculus I", "MATH101", year_id, teacher_id=teacher_t)
    course_y = db.add_course("Linear Algebra", "MATH201", year_id, teacher_id=teacher_t)
    course_z = db.add_course("Orientation", "GEN100", year_id)
    course_p = db.add_course("Mechanics", "PHY101", year_id, teacher_id=teacher_u)
    room_1 = db.add_classroom("Room 1", 40, latitude=0.0, longitude=0.0, radius_meters=50)
    room_2 = db.add_classroom("Room 2", 40, latitude=0.001, longitude=0.0, radius_meters=50)
    room_3 = db.add_classroom("Room 3", 40)
    return {
        "year": year_id,
        "teacher_t": teacher_t,
        "teacher_u": teacher_u,
        "course_x": course_x,
        "course_y": course_y,
        "course_z": course_z,
        "course_p": course_p,
        "room_1": room_1,
        "room_2": room_2,
        "room_3": room_3,
    }


@pytest.fixture()
def admin_headers(client):
    res = client.post(
        "/auth/login",
        json={
            "username": config.ADMIN_USERNAME,
            "password": config.ADMIN_PASSWORD,
        },
    )
    assert res.status_code == 200
    token = res.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def teacher_headers(client, school):
    res = client.post(
        "/auth/teacher/login",
        json={"employee_id": "EMP001", "password": TEACHER_PASSWORD},
    )
    assert res.status_code == 200
    token = res.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
