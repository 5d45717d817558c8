from fastapi.testclient import TestClient

from conftest import csrf_token_from, fetch_csrf_token, log_on
from jobtracker.csrf import generate_token, verify_token
from jobtracker.database import Database
from jobtracker.models import User

CSRF_MESSAGE = "Invalid or missing CSRF token"


def test_token_verifies_against_its_secret() -> None:
    token = generate_token("secret-one")

    assert verify_token("secret-one", token)
    assert not verify_token("secret-two", token)


def test_tokens_are_unique_per_render() -> None:
    assert generate_token("secret") != generate_token("secret")


def test_malformed_tokens_are_rejected() -> None:
    assert not verify_token("secret", None)
    assert not verify_token("secret", "")
    assert not verify_token("secret", "no-separator")
    assert not verify_token(None, generate_token("secret"))
    assert not verify_token("secret", "salt.é")


def test_every_form_page_carries_a_token(client: TestClient) -> None:
    for path in ("/", "/sessions/logon", "/sessions/register"):
        response = client.get(path)
        assert response.status_code == 200
        assert csrf_token_from(response)


def test_post_without_token_is_forbidden(client: TestClient, seeded_user: User) -> None:
    client.get("/sessions/logon")

    response = client.post(
        "/sessions/logon",
        data={"email": seeded_user.email, "password": "abc123"},
    )

    assert response.status_code == 403
    assert CSRF_MESSAGE in response.text


def test_post_with_tampered_token_is_forbidden(client: TestClient, seeded_user: User) -> None:
    token = fetch_csrf_token(client, "/sessions/logon")

    response = client.post(
        "/sessions/logon",
        data={"email": seeded_user.email, "password": "abc123", "_csrf": f"{token}x"},
    )

    assert response.status_code == 403


def test_token_from_another_session_is_forbidden(app, client: TestClient, seeded_user: User) -> None:
    with TestClient(app, follow_redirects=False) as other:
        foreign_token = fetch_csrf_token(other, "/sessions/logon")

    client.get("/sessions/logon")
    response = client.post(
        "/sessions/logon",
        data={"email": seeded_user.email, "password": "abc123", "_csrf": foreign_token},
    )

    assert response.status_code == 403


def test_token_accepted_from_header(client: TestClient, seeded_user: User) -> None:
    log_on(client, seeded_user.email)
    token = fetch_csrf_token(client, "/jobs")

    response = client.post(
        "/jobs",
        data={"company": "Header Co", "position": "Engineer", "status": "pending"},
        headers={"X-CSRF-Token": token},
    )

    assert response.status_code == 303


def test_csrf_check_runs_before_authorization(client: TestClient) -> None:
    client.get("/")

    response = client.post("/jobs", data={"company": "Acme", "position": "Engineer"})

    assert response.status_code == 403


def test_logon_rotates_the_csrf_secret(client: TestClient, seeded_user: User) -> None:
    stale_token = fetch_csrf_token(client, "/sessions/logon")
    log_on(client, seeded_user.email)

    response = client.post(
        "/jobs",
        data={"company": "Acme", "position": "Engineer", "_csrf": stale_token},
    )

    assert response.status_code == 403


def test_rejected_requests_leave_jobs_untouched(
    app, client: TestClient, database: Database, seeded_user: User
) -> None:
    with TestClient(app, follow_redirects=False) as other:
        foreign_token = fetch_csrf_token(other)

    log_on(client, seeded_user.email)
    client.get("/jobs")
    job = database.list_jobs_for_user(seeded_user.id)[0]
    before = database.count_jobs_for_user(seeded_user.id)

    responses = [
        client.post(f"/jobs/delete/{job.id}"),
        client.post(f"/jobs/delete/{job.id}", data={"_csrf": foreign_token}),
        client.post("/jobs", data={"company": "Forged Co", "position": "Forged"}),
        client.post(
            "/jobs",
            data={"company": "Forged Co", "position": "Forged", "_csrf": foreign_token},
        ),
        client.post(
            f"/jobs/update/{job.id}",
            data={"company": "Forged Co", "position": "Forged", "_csrf": foreign_token},
        ),
    ]

    assert [response.status_code for response in responses] == [403] * len(responses)
    assert database.count_jobs_for_user(seeded_user.id) == before
    assert database.get_job_for_user(seeded_user.id, job.id) == job
    assert all(
        existing.company != "Forged Co"
        for existing in database.list_jobs_for_user(seeded_user.id)
    )
