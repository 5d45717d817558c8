import os
import re
import sys
from pathlib import Path
from typing import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("JOBTRACKER_SESSION_SECRET", "tests-secret-key")

from jobtracker.config import Settings
from jobtracker.database import Database
from jobtracker.models import User
from jobtracker.web import create_app

PASSWORD = "abc123"
SEEDED_JOB_COUNT = 20

CSRF_PATTERN = re.compile(r'name="_csrf" value="([^"]+)"')
JOB_ROW_PATTERN = re.compile(r'data-job-id="(\d+)"')


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        session_secret="tests-secret-key",
        database_path=tmp_path / "jobtracker.sqlite3",
        environment="test",
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.database_path)
    db.initialize()
    return db


@pytest.fixture()
def app(settings: Settings, database: Database) -> FastAPI:
    return create_app(settings, database=database)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture()
def seeded_user(database: Database) -> User:
    user = database.create_user("Test User", "test@example.com", PASSWORD)
    for index in range(SEEDED_JOB_COUNT):
        database.create_job(
            user.id,
            company=f"Company {index}",
            position=f"Position {index}",
        )
    return user


def csrf_token_from(response) -> str:
    match = CSRF_PATTERN.search(response.text)
    assert match is not None, "page did not render a CSRF token"
    return match.group(1)


def fetch_csrf_token(client: TestClient, path: str = "/") -> str:
    response = client.get(path)
    assert response.status_code == 200
    return csrf_token_from(response)


def job_ids_on(response) -> list[int]:
    return [int(value) for value in JOB_ROW_PATTERN.findall(response.text)]


def log_on(client: TestClient, email: str, password: str = PASSWORD):
    token = fetch_csrf_token(client, "/sessions/logon")
    return client.post(
        "/sessions/logon",
        data={"email": email, "password": password, "_csrf": token},
    )
