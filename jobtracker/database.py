"""SQLite-backed persistence for users, their jobs, and web sessions."""
from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from passlib.context import CryptContext

from .errors import DuplicateKeyFailure, StorageError
from .models import DEFAULT_JOB_STATUS, Job, JobStatus, User


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "jobtracker.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


class Database:
    """Simple wrapper around SQLite for persisting users, jobs and sessions."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose work is committed as one unit."""

        try:
            conn = self._connect()
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Unable to open database at {self._path}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.DatabaseError as exc:
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    company TEXT NOT NULL,
                    position TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_jobs_user_created ON jobs(user_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions(expires_at);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str, password: str) -> User:
        """Create a new user with a salted password hash."""

        if not password:
            raise ValueError("Password must not be empty")

        created_at = _current_timestamp()
        normalized_email = _normalize_email(email)
        password_hash = _hash_password(password)

        with self._transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, normalized_email, password_hash, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateKeyFailure(
                    "email", "A user with that email already exists"
                ) from exc
            user_id = cursor.lastrowid

        return User(id=user_id, name=name, email=normalized_email, created_at=created_at)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def count_users(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        return int(row["total"])

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
        if row is None:
            # Spend the same hashing effort as a real comparison.
            _pwd_context.dummy_verify()
            return None
        if not _verify_password(password, row["password_hash"]):
            return None
        return self._row_to_user(row)

    # ------------------------------------------------------------------
    # Job management
    # ------------------------------------------------------------------
    def create_job(
        self,
        user_id: int,
        *,
        company: str,
        position: str,
        status: JobStatus = DEFAULT_JOB_STATUS,
    ) -> Job:
        created_at = _serialize_datetime(_current_timestamp())
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO jobs (user_id, company, position, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, company, position, JobStatus(status).value, created_at, created_at),
            )
            row = conn.execute(
                "SELECT * FROM jobs WHERE id = ?",
                (cursor.lastrowid,),
            ).fetchone()
        return self._row_to_job(row)

    def list_jobs_for_user(self, user_id: int) -> List[Job]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def get_job_for_user(self, user_id: int, job_id: int) -> Optional[Job]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE user_id = ? AND id = ?",
                (user_id, job_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def update_job_for_user(
        self,
        user_id: int,
        job_id: int,
        *,
        company: str,
        position: str,
        status: JobStatus,
    ) -> Optional[Job]:
        """Apply an update only when the job belongs to ``user_id``.

        The conditional UPDATE and the read-back share one transaction, so the
        returned row is exactly what this call wrote.
        """

        updated_at = _serialize_datetime(_current_timestamp())
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE jobs
                   SET company = ?, position = ?, status = ?, updated_at = ?
                 WHERE user_id = ? AND id = ?
                """,
                (company, position, JobStatus(status).value, updated_at, user_id, job_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM jobs WHERE user_id = ? AND id = ?",
                (user_id, job_id),
            ).fetchone()
        return self._row_to_job(row)

    def delete_job_for_user(self, user_id: int, job_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM jobs WHERE user_id = ? AND id = ?",
                (user_id, job_id),
            )
            return cursor.rowcount > 0

    def count_jobs_for_user(self, user_id: int) -> int:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM jobs WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row["total"])

    # ------------------------------------------------------------------
    # Session storage
    # ------------------------------------------------------------------
    def load_session(self, session_id: str) -> Optional[Tuple[Dict[str, Any], datetime]]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT data, expires_at FROM sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        if row is None:
            return None
        try:
            data = json.loads(row["data"])
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        return data, _parse_datetime(str(row["expires_at"]))

    def save_session(
        self,
        session_id: str,
        data: Mapping[str, Any],
        expires_at: datetime,
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO sessions (id, data, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data, expires_at = excluded.expires_at
                """,
                (session_id, json.dumps(dict(data)), _serialize_datetime(expires_at)),
            )

    def delete_session(self, session_id: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))

    def purge_expired_sessions(self, now: Optional[datetime] = None) -> int:
        cutoff = _serialize_datetime(now or _current_timestamp())
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (cutoff,))
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_job(self, row: sqlite3.Row) -> Job:
        return Job(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            company=str(row["company"]),
            position=str(row["position"]),
            status=JobStatus(str(row["status"])),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
