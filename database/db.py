import hashlib
import hmac
import json
import logging
import secrets
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, TypedDict

from backend.config import (
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    ATTENDANCE_LOGS_ENABLED,
    DB_PATH,
    DEFAULT_RADIUS_METERS,
    LOG_FAILED_ATTEMPTS,
    LOG_GPS_ATTEMPTS,
)

logger = logging.getLogger(__name__)

PASSWORD_HASH_ALGO = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 120_000
INITIAL_MIGRATION_FILE = Path(__file__).resolve().parent / "migrations" / "001_initial.sql"


def _hash_password(password: str, *, salt: str | None = None) -> str:
    salt_value = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        PASSWORD_HASH_ITERATIONS,
    ).hex()
    return f"{PASSWORD_HASH_ALGO}${PASSWORD_HASH_ITERATIONS}${salt_value}${digest}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, rounds_text, salt_value, expected_digest = password_hash.split("$", 3)
        rounds = int(rounds_text)
    except (ValueError, TypeError, AttributeError):
        return False

    if algo != PASSWORD_HASH_ALGO or rounds <= 0:
        return False

    candidate_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        rounds,
    ).hex()
    return hmac.compare_digest(candidate_digest, expected_digest)


def connect_db(*, autocommit: bool = False) -> sqlite3.Connection:
    conn = sqlite3.connect(
        str(DB_PATH),
        check_same_thread=False,
        timeout=30.0,
        isolation_level=None if autocommit else "",
    )
    conn.row_factory = sqlite3.Row
    # recommended with FK tables
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """
    Write transaction that takes SQLite's write lock up front.

    Every read-check-then-write sequence (conflict check + insert, open-session
    check + insert) runs inside one of these so concurrent requests serialize.
    """
    conn = connect_db(autocommit=True)
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


@contextmanager
def _use_conn(conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
    if conn is not None:
        yield conn
        return
    owned = connect_db()
    try:
        yield owned
        owned.commit()
    finally:
        owned.close()


def _row_dict(row: sqlite3.Row | None) -> dict[str, Any] | None:
    return dict(row) if row is not None else None


def _ensure_default_admin(cursor: sqlite3.Cursor) -> None:
    username = (ADMIN_USERNAME or "").strip()
    password = (ADMIN_PASSWORD or "").strip()
    if not username or not password:
        return

    cursor.execute(
        """
        SELECT id
        FROM admin_users
        WHERE username = ? COLLATE NOCASE
        """,
        (username,),
    )
    if cursor.fetchone():
        return

    cursor.execute(
        """
        INSERT INTO admin_users (username, password_hash)
        VALUES (?, ?)
        """,
        (username, _hash_password(password)),
    )


def create_tables():
    conn = connect_db()
    conn.executescript(INITIAL_MIGRATION_FILE.read_text(encoding="utf-8"))
    cursor = conn.cursor()
    _ensure_default_admin(cursor)
    conn.commit()
    conn.close()


def clear_all_tables():
    conn = connect_db()
    cur = conn.cursor()
    for table in (
        "attendance_activity_logs",
        "teacher_attendances",
        "time_tables",
        "courses",
        "class_rooms",
        "academic_years",
        "teachers",
    ):
        cur.execute(f"DELETE FROM {table}")
    conn.commit()
    conn.close()


# -----------------------------
# Admin users
# -----------------------------
def create_admin_user(username: str, password: str) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO admin_users (username, password_hash)
        VALUES (?, ?)
        """,
        (username.strip(), _hash_password(password)),
    )
    admin_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return admin_id


def verify_admin_credentials(username: str, password: str) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, username, password_hash
        FROM admin_users
        WHERE username = ? COLLATE NOCASE
        """,
        (username.strip(),),
    )
    row = cur.fetchone()
    conn.close()

    if not row or not _verify_password(password, row["password_hash"]):
        return None
    return {"id": int(row["id"]), "username": str(row["username"])}


# -----------------------------
# Teachers
# -----------------------------
def get_all_teachers():
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("""
        SELECT id, full_name, department, employee_id, created_at
        FROM teachers
        ORDER BY full_name
    """)
    rows = [dict(r) for r in cur.fetchall()]
    conn.close()
    return rows


def add_teacher(full_name: str, department: str, employee_id: str, password: str | None = None) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("""
        INSERT INTO teachers (full_name, department, employee_id, password_hash)
        VALUES (?, ?, ?, ?)
    """, (full_name, department, employee_id, _hash_password(password) if password else None))
    teacher_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return teacher_id


def get_teacher_by_id(teacher_id: int):
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("""
        SELECT id, full_name, department, employee_id
        FROM teachers
        WHERE id = ?
    """, (teacher_id,))
    row = _row_dict(cur.fetchone())
    conn.close()
    return row


def verify_teacher_credentials(employee_id: str, password: str) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, full_name, employee_id, password_hash
        FROM teachers
        WHERE employee_id = ?
        """,
        (employee_id.strip(),),
    )
    row = cur.fetchone()
    conn.close()

    if not row or not row["password_hash"] or not _verify_password(password, row["password_hash"]):
        return None
    return {
        "id": int(row["id"]),
        "full_name": str(row["full_name"]),
        "employee_id": str(row["employee_id"]),
    }


# -----------------------------
# Academic years / courses / classrooms
# -----------------------------
class CourseRow(TypedDict):
    id: int
    name: str
    course_code: str
    teacher_id: int | None
    academic_year_id: int
    student_size: int


class ClassroomRow(TypedDict):
    id: int
    name: str
    room_number: str | None
    capacity: int
    latitude: float | None
    longitude: float | None
    radius_meters: float
    is_active: int


def add_academic_year(name: str, status: str = "active") -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO academic_years (name, status) VALUES (?, ?)",
        (name, status),
    )
    year_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return year_id


def get_academic_years():
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("SELECT id, name, status FROM academic_years ORDER BY name DESC")
    rows = [dict(r) for r in cur.fetchall()]
    conn.close()
    return rows


def get_academic_year(year_id: int, *, conn: sqlite3.Connection | None = None) -> dict[str, Any] | None:
    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(
            "SELECT id, name, status FROM academic_years WHERE id = ?",
            (year_id,),
        )
        return _row_dict(cur.fetchone())


def get_active_academic_year_id() -> int | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id
        FROM academic_years
        WHERE status = 'active'
        ORDER BY id DESC
        LIMIT 1
        """
    )
    row = cur.fetchone()
    conn.close()
    return int(row["id"]) if row else None


def add_course(
    name: str,
    course_code: str,
    academic_year_id: int,
    teacher_id: int | None = None,
    student_size: int = 0,
) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO courses (name, course_code, teacher_id, academic_year_id, student_size)
        VALUES (?, ?, ?, ?, ?)
        """,
        (name, course_code, teacher_id, academic_year_id, student_size),
    )
    course_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return course_id


def get_courses(academic_year_id: int | None = None):
    conn = connect_db()
    cur = conn.cursor()
    sql = """
        SELECT c.id, c.name, c.course_code, c.teacher_id, c.academic_year_id, c.student_size,
               t.full_name AS teacher_name
        FROM courses c
        LEFT JOIN teachers t ON t.id = c.teacher_id
    """
    params: list[Any] = []
    if academic_year_id is not None:
        sql += " WHERE c.academic_year_id = ?"
        params.append(academic_year_id)
    cur.execute(sql + " ORDER BY c.name", params)
    rows = [dict(r) for r in cur.fetchall()]
    conn.close()
    return rows


def get_course(course_id: int, *, conn: sqlite3.Connection | None = None) -> CourseRow | None:
    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(
            """
            SELECT id, name, course_code, teacher_id, academic_year_id, student_size
            FROM courses
            WHERE id = ?
            """,
            (course_id,),
        )
        return _row_dict(cur.fetchone())  # type: ignore[return-value]


def add_classroom(
    name: str,
    capacity: int = 0,
    *,
    room_number: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    radius_meters: float | None = None,
    is_active: bool = True,
) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO class_rooms (name, room_number, capacity, latitude, longitude, radius_meters, is_active)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            name,
            room_number,
            capacity,
            latitude,
            longitude,
            DEFAULT_RADIUS_METERS if radius_meters is None else radius_meters,
            1 if is_active else 0,
        ),
    )
    classroom_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return classroom_id


def get_classrooms():
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, room_number, capacity, latitude, longitude, radius_meters, is_active
        FROM class_rooms
        ORDER BY name
        """
    )
    rows = [dict(r) for r in cur.fetchall()]
    conn.close()
    return rows


def get_classroom(classroom_id: int, *, conn: sqlite3.Connection | None = None) -> ClassroomRow | None:
    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(
            """
            SELECT id, name, room_number, capacity, latitude, longitude, radius_meters, is_active
            FROM class_rooms
            WHERE id = ?
            """,
            (classroom_id,),
        )
        return _row_dict(cur.fetchone())  # type: ignore[return-value]


# -----------------------------
# Schedule registry (time_tables)
# -----------------------------
class TimetableRow(TypedDict):
    id: int
    academic_year_id: int
    course_id: int
    class_room_id: int
    day: str
    start_time: str
    end_time: str
    teacher_id: int | None
    classroom_name: str | None


_TIMETABLE_SELECT = """
    SELECT
        tt.id,
        tt.academic_year_id,
        tt.course_id,
        tt.class_room_id,
        tt.day,
        tt.start_time,
        tt.end_time,
        c.teacher_id,
        cr.name AS classroom_name
    FROM time_tables tt
    JOIN courses c ON c.id = tt.course_id
    LEFT JOIN class_rooms cr ON cr.id = tt.class_room_id
"""


@dataclass(frozen=True)
class TimetableFilter:
    academic_year_id: int | None = None
    course_id: int | None = None
    class_room_id: int | None = None
    teacher_id: int | None = None
    day: str | None = None

    def where_clause(self) -> tuple[str, list[Any]]:
        where = ["1=1"]
        params: list[Any] = []

        if self.academic_year_id is not None:
            where.append("tt.academic_year_id = ?")
            params.append(self.academic_year_id)
        if self.course_id is not None:
            where.append("tt.course_id = ?")
            params.append(self.course_id)
        if self.class_room_id is not None:
            where.append("tt.class_room_id = ?")
            params.append(self.class_room_id)
        if self.teacher_id is not None:
            where.append("c.teacher_id = ?")
            params.append(self.teacher_id)
        if self.day is not None:
            where.append("tt.day = ?")
            params.append(self.day)

        return " AND ".join(where), params


def get_timetable_entry(entry_id: int, *, conn: sqlite3.Connection | None = None) -> TimetableRow | None:
    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(_TIMETABLE_SELECT + " WHERE tt.id = ?", (entry_id,))
        return _row_dict(cur.fetchone())  # type: ignore[return-value]


def get_timetable_entries_for_day(
    academic_year_id: int,
    day: str,
    *,
    exclude_id: int | None = None,
    conn: sqlite3.Connection | None = None,
) -> list[TimetableRow]:
    """Entries scheduled on `day` within `academic_year_id`, optionally minus one entry."""
    sql = _TIMETABLE_SELECT + " WHERE tt.academic_year_id = ? AND tt.day = ?"
    params: list[Any] = [academic_year_id, day]
    if exclude_id is not None:
        sql += " AND tt.id != ?"
        params.append(exclude_id)
    sql += " ORDER BY tt.start_time, tt.id"

    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]  # type: ignore[misc]


def insert_timetable_entry(
    conn: sqlite3.Connection,
    *,
    academic_year_id: int,
    course_id: int,
    class_room_id: int,
    day: str,
    start_time: str,
    end_time: str,
) -> int:
    cur = conn.execute(
        """
        INSERT INTO time_tables (academic_year_id, course_id, class_room_id, day, start_time, end_time)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (academic_year_id, course_id, class_room_id, day, start_time, end_time),
    )
    return int(cur.lastrowid)


def update_timetable_row(
    conn: sqlite3.Connection,
    entry_id: int,
    *,
    academic_year_id: int,
    course_id: int,
    class_room_id: int,
    day: str,
    start_time: str,
    end_time: str,
) -> None:
    conn.execute(
        """
        UPDATE time_tables
        SET academic_year_id = ?,
            course_id = ?,
            class_room_id = ?,
            day = ?,
            start_time = ?,
            end_time = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
        """,
        (academic_year_id, course_id, class_room_id, day, start_time, end_time, entry_id),
    )


def delete_timetable_entry(entry_id: int) -> bool:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("DELETE FROM time_tables WHERE id = ?", (entry_id,))
    deleted = cur.rowcount > 0
    conn.commit()
    conn.close()
    return deleted


def list_timetable_entries(filters: TimetableFilter) -> list[dict[str, Any]]:
    where_sql, params = filters.where_clause()
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT
            tt.id,
            tt.academic_year_id,
            ay.name AS academic_year_name,
            tt.course_id,
            c.name AS course_name,
            c.course_code,
            c.teacher_id,
            t.full_name AS teacher_name,
            tt.class_room_id,
            cr.name AS classroom_name,
            cr.capacity AS classroom_capacity,
            tt.day,
            tt.start_time,
            tt.end_time
        FROM time_tables tt
        JOIN courses c ON c.id = tt.course_id
        LEFT JOIN teachers t ON t.id = c.teacher_id
        LEFT JOIN class_rooms cr ON cr.id = tt.class_room_id
        LEFT JOIN academic_years ay ON ay.id = tt.academic_year_id
        WHERE {where_sql}
        ORDER BY tt.day, tt.start_time, tt.id
        """,
        params,
    )
    rows = [dict(r) for r in cur.fetchall()]
    conn.close()
    return rows


# -----------------------------
# Attendance ledger (teacher_attendances)
# -----------------------------
class AttendanceRow(TypedDict):
    id: int
    teacher_id: int
    course_id: int
    classroom_id: int
    timetable_id: int
    academic_year_id: int
    date: str
    check_in_time: str | None
    check_in_latitude: float | None
    check_in_longitude: float | None
    check_in_distance: float | None
    check_in_within_range: int
    check_in_geofence: str | None
    check_in_status: str | None
    check_out_time: str | None
    check_out_latitude: float | None
    check_out_longitude: float | None
    check_out_distance: float | None
    check_out_within_range: int
    check_out_geofence: str | None
    status: str
    status_hint: str | None


_ATTENDANCE_COLUMNS = """
    ta.id, ta.teacher_id, ta.course_id, ta.classroom_id, ta.timetable_id, ta.academic_year_id,
    ta.date, ta.check_in_time, ta.check_in_latitude, ta.check_in_longitude, ta.check_in_distance,
    ta.check_in_within_range, ta.check_in_geofence, ta.check_in_status,
    ta.check_out_time, ta.check_out_latitude, ta.check_out_longitude, ta.check_out_distance,
    ta.check_out_within_range, ta.check_out_geofence, ta.status, ta.status_hint
"""


@dataclass(frozen=True)
class AttendanceFilter:
    teacher_id: int | None = None
    course_id: int | None = None
    date: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    status: str | None = None

    def where_clause(self) -> tuple[str, list[Any]]:
        where = ["1=1"]
        params: list[Any] = []

        if self.teacher_id is not None:
            where.append("ta.teacher_id = ?")
            params.append(self.teacher_id)
        if self.course_id is not None:
            where.append("ta.course_id = ?")
            params.append(self.course_id)
        if self.date is not None:
            where.append("ta.date = ?")
            params.append(self.date)
        if self.date_from is not None:
            where.append("ta.date >= ?")
            params.append(self.date_from)
        if self.date_to is not None:
            where.append("ta.date <= ?")
            params.append(self.date_to)
        if self.status is not None:
            where.append("ta.status = ?")
            params.append(self.status)

        return " AND ".join(where), params


def get_attendance_session(session_id: int, *, conn: sqlite3.Connection | None = None) -> AttendanceRow | None:
    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(
            f"SELECT {_ATTENDANCE_COLUMNS} FROM teacher_attendances ta WHERE ta.id = ?",
            (session_id,),
        )
        return _row_dict(cur.fetchone())  # type: ignore[return-value]


def get_open_session(
    teacher_id: int,
    date: str,
    *,
    conn: sqlite3.Connection | None = None,
) -> AttendanceRow | None:
    """The teacher's session on `date` that was checked into but not out of."""
    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(
            f"""
            SELECT {_ATTENDANCE_COLUMNS}
            FROM teacher_attendances ta
            WHERE ta.teacher_id = ?
              AND ta.date = ?
              AND ta.check_in_time IS NOT NULL
              AND ta.check_out_time IS NULL
            LIMIT 1
            """,
            (teacher_id, date),
        )
        return _row_dict(cur.fetchone())  # type: ignore[return-value]


def get_session_for_timetable(
    timetable_id: int,
    date: str,
    *,
    conn: sqlite3.Connection | None = None,
) -> AttendanceRow | None:
    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(
            f"""
            SELECT {_ATTENDANCE_COLUMNS}
            FROM teacher_attendances ta
            WHERE ta.timetable_id = ? AND ta.date = ?
            ORDER BY ta.id
            LIMIT 1
            """,
            (timetable_id, date),
        )
        return _row_dict(cur.fetchone())  # type: ignore[return-value]


def insert_attendance_session(
    conn: sqlite3.Connection,
    *,
    teacher_id: int,
    course_id: int,
    classroom_id: int,
    timetable_id: int,
    academic_year_id: int,
    date: str,
    status: str,
    check_in_time: str | None = None,
    check_in_latitude: float | None = None,
    check_in_longitude: float | None = None,
    check_in_distance: float | None = None,
    check_in_within_range: bool = False,
    check_in_geofence: str | None = None,
    check_in_status: str | None = None,
) -> int:
    """
    Insert a ledger row. Raises `sqlite3.IntegrityError` when the
    (teacher, course, classroom, timetable, date) tuple already exists or when
    the teacher already holds an open session on `date`.
    """
    cur = conn.execute(
        """
        INSERT INTO teacher_attendances (
            teacher_id,
            course_id,
            classroom_id,
            timetable_id,
            academic_year_id,
            date,
            check_in_time,
            check_in_latitude,
            check_in_longitude,
            check_in_distance,
            check_in_within_range,
            check_in_geofence,
            check_in_status,
            status
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            teacher_id,
            course_id,
            classroom_id,
            timetable_id,
            academic_year_id,
            date,
            check_in_time,
            check_in_latitude,
            check_in_longitude,
            check_in_distance,
            1 if check_in_within_range else 0,
            check_in_geofence,
            check_in_status,
            status,
        ),
    )
    return int(cur.lastrowid)


def complete_attendance_session(
    conn: sqlite3.Connection,
    session_id: int,
    *,
    check_out_time: str,
    check_out_latitude: float,
    check_out_longitude: float,
    check_out_distance: float | None,
    check_out_within_range: bool,
    check_out_geofence: str,
    status: str,
    status_hint: str | None = None,
) -> bool:
    cur = conn.execute(
        """
        UPDATE teacher_attendances
        SET check_out_time = ?,
            check_out_latitude = ?,
            check_out_longitude = ?,
            check_out_distance = ?,
            check_out_within_range = ?,
            check_out_geofence = ?,
            status = ?,
            status_hint = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
          AND check_out_time IS NULL
        """,
        (
            check_out_time,
            check_out_latitude,
            check_out_longitude,
            check_out_distance,
            1 if check_out_within_range else 0,
            check_out_geofence,
            status,
            status_hint,
            session_id,
        ),
    )
    return cur.rowcount > 0


def set_attendance_status(conn: sqlite3.Connection, session_id: int, status: str) -> None:
    conn.execute(
        """
        UPDATE teacher_attendances
        SET status = ?, updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
        """,
        (status, session_id),
    )


def list_attendance_sessions(
    filters: AttendanceFilter,
    *,
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    where_sql, params = filters.where_clause()
    safe_limit = max(1, min(int(limit), 500))
    safe_offset = max(0, int(offset))

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT
            {_ATTENDANCE_COLUMNS},
            t.full_name AS teacher_name,
            c.name AS course_name,
            c.course_code,
            cr.name AS classroom_name,
            cr.room_number,
            tt.day,
            tt.start_time,
            tt.end_time
        FROM teacher_attendances ta
        LEFT JOIN teachers t ON t.id = ta.teacher_id
        LEFT JOIN courses c ON c.id = ta.course_id
        LEFT JOIN class_rooms cr ON cr.id = ta.classroom_id
        LEFT JOIN time_tables tt ON tt.id = ta.timetable_id
        WHERE {where_sql}
        ORDER BY ta.date DESC, ta.check_in_time DESC, ta.id DESC
        LIMIT ?
        OFFSET ?
        """,
        [*params, safe_limit, safe_offset],
    )
    rows = [dict(r) for r in cur.fetchall()]
    conn.close()
    return rows


def count_attendance_sessions(filters: AttendanceFilter) -> int:
    where_sql, params = filters.where_clause()
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(1) FROM teacher_attendances ta WHERE {where_sql}", params)
    row = cur.fetchone()
    conn.close()
    return int(row[0] or 0) if row else 0


# -----------------------------
# Attendance activity log
# -----------------------------
def log_attempt(
    action: str,
    teacher_id: int | None = None,
    timetable_id: int | None = None,
    payload: dict[str, Any] | None = None,
    *,
    conn: sqlite3.Connection | None = None,
) -> int | None:
    """
    Append an activity row (check_in | check_out | attempt_failed) when the
    logging switches allow it. Returns the row id, or None when skipped.
    """
    if not ATTENDANCE_LOGS_ENABLED:
        return None
    if action == "attempt_failed" and not LOG_FAILED_ATTEMPTS:
        return None
    if action != "attempt_failed" and not LOG_GPS_ATTEMPTS:
        return None

    with _use_conn(conn) as active_conn:
        cur = active_conn.execute(
            """
            INSERT INTO attendance_activity_logs (teacher_id, action, timetable_id, payload_json)
            VALUES (?, ?, ?, ?)
            """,
            (teacher_id, action, timetable_id, json.dumps(payload or {}, sort_keys=True)),
        )
        return int(cur.lastrowid)


def get_activity_logs(
    *,
    teacher_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    where = ["1=1"]
    params: list[Any] = []
    if teacher_id is not None:
        where.append("teacher_id = ?")
        params.append(teacher_id)
    if action is not None:
        where.append("action = ?")
        params.append(action)

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT id, teacher_id, action, timetable_id, payload_json, created_at
        FROM attendance_activity_logs
        WHERE {" AND ".join(where)}
        ORDER BY id DESC
        LIMIT ?
        OFFSET ?
        """,
        [*params, max(1, min(int(limit), 500)), max(0, int(offset))],
    )
    rows = []
    for row in cur.fetchall():
        item = dict(row)
        item["payload"] = json.loads(item.pop("payload_json") or "{}")
        rows.append(item)
    conn.close()
    return rows
