"""SQLite persistence layer for Standup Tracker."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Connection = sqlite3.Connection
Row = sqlite3.Row

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS departments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        full_name TEXT NOT NULL,
        email TEXT,
        role TEXT NOT NULL DEFAULT 'member',
        department_id INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT,
        FOREIGN KEY(department_id) REFERENCES departments(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS daily_standups (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        date TEXT NOT NULL,
        submitted_at TEXT NOT NULL,
        yesterday_work TEXT,
        today_plan TEXT,
        blockers TEXT,
        next_steps TEXT,
        status TEXT NOT NULL DEFAULT 'submitted',
        submission_type TEXT NOT NULL DEFAULT 'text',
        UNIQUE(user_id, date),
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS leave_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        date TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        reason TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(user_id, date),
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deliverables (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        day_number INTEGER NOT NULL,
        drive_link TEXT NOT NULL,
        linkedin_link TEXT,
        notes TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(user_id, day_number),
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS daily_todos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        date TEXT NOT NULL,
        task_text TEXT NOT NULL,
        position INTEGER NOT NULL,
        is_completed INTEGER NOT NULL DEFAULT 0,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        actor_id TEXT,
        action TEXT NOT NULL,
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        old_values TEXT,
        new_values TEXT,
        metadata TEXT,
        created_at TEXT NOT NULL
    )
    """,
)

USER_SELECT = """
    SELECT u.*, d.name AS department_name
    FROM users u
    LEFT JOIN departments d ON d.id = u.department_id
"""


class Database:
    """Lightweight wrapper around SQLite operations."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self.connect() as conn:
            cursor = conn.cursor()
            for statement in SCHEMA:
                cursor.execute(statement)
            conn.commit()

    # region Departments
    def create_department(self, name: str) -> int:
        with self.connect() as conn:
            cursor = conn.execute("INSERT INTO departments (name) VALUES (?)", (name,))
            conn.commit()
            return int(cursor.lastrowid)

    def get_departments(self) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM departments ORDER BY name")
            return cursor.fetchall()

    def get_department(self, department_id: int) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM departments WHERE id = ?", (department_id,))
            return cursor.fetchone()

    # endregion

    # region Users
    def upsert_user(self, user: Dict[str, Any]) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO users (id, full_name, email, role, department_id, is_active, updated_at)
                VALUES (:id, :full_name, :email, :role, :department_id, :is_active, :updated_at)
                ON CONFLICT(id) DO UPDATE SET
                    full_name=excluded.full_name,
                    email=excluded.email,
                    role=excluded.role,
                    department_id=excluded.department_id,
                    is_active=excluded.is_active,
                    updated_at=excluded.updated_at
                """,
                user,
            )
            conn.commit()

    def set_user_active(self, user_id: str, is_active: bool) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET is_active = ? WHERE id = ?", (int(is_active), user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_user(self, user_id: str) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute(f"{USER_SELECT} WHERE u.id = ?", (user_id,))
            return cursor.fetchone()

    def get_users(self, *, active_only: bool = True) -> List[Row]:
        where = "WHERE u.is_active = 1" if active_only else ""
        with self.connect() as conn:
            cursor = conn.execute(f"{USER_SELECT} {where} ORDER BY u.full_name")
            return cursor.fetchall()

    def set_user_department(self, user_id: str, department_id: Optional[int]) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET department_id = ? WHERE id = ?", (department_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_department_members(self, department_id: int, role: str = "member") -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                f"""
                {USER_SELECT}
                WHERE u.department_id = ? AND u.role = ? AND u.is_active = 1
                ORDER BY u.full_name
                """,
                (department_id, role),
            )
            return cursor.fetchall()

    # endregion

    # region Standups
    def record_standup(self, record: Dict[str, Any]) -> None:
        """Insert a standup; a second one for the same user and date is rejected."""

        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO daily_standups (
                    user_id, date, submitted_at, yesterday_work, today_plan,
                    blockers, next_steps, status, submission_type
                )
                VALUES (
                    :user_id, :date, :submitted_at, :yesterday_work, :today_plan,
                    :blockers, :next_steps, :status, :submission_type
                )
                """,
                record,
            )
            conn.commit()

    def get_standup(self, user_id: str, day: date) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM daily_standups WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            )
            return cursor.fetchone()

    def get_standups_by_date(self, day: date) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM daily_standups WHERE date = ? ORDER BY submitted_at",
                (day.isoformat(),),
            )
            return cursor.fetchall()

    def get_standups_between(self, start_day: date, end_day: date) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM daily_standups WHERE date BETWEEN ? AND ? ORDER BY date",
                (start_day.isoformat(), end_day.isoformat()),
            )
            return cursor.fetchall()

    def get_user_standups(self, user_id: str, since: date) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM daily_standups
                WHERE user_id = ? AND date >= ?
                ORDER BY date DESC
                """,
                (user_id, since.isoformat()),
            )
            return cursor.fetchall()

    def get_submitted_dates(self, user_id: str, start_day: date, end_day: date) -> List[str]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT date FROM daily_standups
                WHERE user_id = ? AND status = 'submitted' AND date BETWEEN ? AND ?
                ORDER BY date DESC
                """,
                (user_id, start_day.isoformat(), end_day.isoformat()),
            )
            return [row["date"] for row in cursor.fetchall()]

    # endregion

    # region Leave
    def request_leave(self, user_id: str, day: date, reason: Optional[str] = None) -> int:
        with self.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO leave_requests (user_id, date, reason) VALUES (?, ?, ?)",
                (user_id, day.isoformat(), reason),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def set_leave_status(self, leave_id: int, status: str) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE leave_requests SET status = ? WHERE id = ?", (status, leave_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_leave(self, leave_id: int) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM leave_requests WHERE id = ?", (leave_id,))
            return cursor.fetchone()

    def get_approved_leave(self, user_id: str, day: date) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM leave_requests
                WHERE user_id = ? AND date = ? AND status = 'approved'
                """,
                (user_id, day.isoformat()),
            )
            return cursor.fetchone()

    def get_approved_leaves_between(self, start_day: date, end_day: date) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM leave_requests
                WHERE date BETWEEN ? AND ? AND status = 'approved'
                ORDER BY date
                """,
                (start_day.isoformat(), end_day.isoformat()),
            )
            return cursor.fetchall()

    def get_pending_leaves(self, department_id: int) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT l.*, u.full_name
                FROM leave_requests l
                JOIN users u ON u.id = l.user_id
                WHERE l.status = 'pending' AND u.department_id = ?
                ORDER BY l.date
                """,
                (department_id,),
            )
            return cursor.fetchall()

    # endregion

    # region Deliverables
    def record_deliverable(self, record: Dict[str, Any]) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO deliverables (user_id, day_number, drive_link, linkedin_link, notes)
                VALUES (:user_id, :day_number, :drive_link, :linkedin_link, :notes)
                """,
                record,
            )
            conn.commit()

    def get_deliverables(self, first_day: int, last_day: int, user_id: Optional[str] = None) -> List[Row]:
        query = "SELECT * FROM deliverables WHERE day_number BETWEEN ? AND ?"
        params: List[Any] = [first_day, last_day]
        if user_id:
            query += " AND user_id = ?"
            params.append(user_id)
        with self.connect() as conn:
            cursor = conn.execute(f"{query} ORDER BY day_number", params)
            return cursor.fetchall()

    # endregion

    # region Todos
    def get_todos(self, user_id: str, day: date) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM daily_todos WHERE user_id = ? AND date = ? ORDER BY position",
                (user_id, day.isoformat()),
            )
            return cursor.fetchall()

    def add_todo(self, user_id: str, day: date, task_text: str, position: int) -> int:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO daily_todos (user_id, date, task_text, position)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, day.isoformat(), task_text, position),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def set_todo_completed(self, todo_id: int, user_id: str, completed: bool) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE daily_todos SET is_completed = ? WHERE id = ? AND user_id = ?",
                (int(completed), todo_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_todo(self, todo_id: int, user_id: str) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM daily_todos WHERE id = ? AND user_id = ?", (todo_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_todos_by_date(self, day: date) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT t.*, u.full_name
                FROM daily_todos t
                JOIN users u ON u.id = t.user_id
                WHERE t.date = ?
                ORDER BY u.full_name, t.position
                """,
                (day.isoformat(),),
            )
            return cursor.fetchall()

    # endregion

    # region Audit log
    def record_audit(self, entry: Dict[str, Any]) -> int:
        """Store one audit row; dict-valued columns are kept as JSON text."""

        values = dict(entry)
        for column in ("old_values", "new_values", "metadata"):
            if values.get(column) is not None:
                values[column] = json.dumps(values[column], default=str)
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO audit_logs (
                    actor_id, action, target_type, target_id,
                    old_values, new_values, metadata, created_at
                )
                VALUES (
                    :actor_id, :action, :target_type, :target_id,
                    :old_values, :new_values, :metadata, :created_at
                )
                """,
                values,
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_audit_logs(self, limit: int) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM audit_logs ORDER BY id DESC LIMIT ?", (limit,)
            )
            return cursor.fetchall()

    # endregion


__all__ = ["Database"]
