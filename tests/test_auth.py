from fastapi.testclient import TestClient

from conftest import PASSWORD, fetch_csrf_token, log_on
from jobtracker.database import Database
from jobtracker.models import User

INVALID_CREDENTIALS = "Invalid email or password."


def _register(client: TestClient, **overrides: str):
    token = fetch_csrf_token(client, "/sessions/register")
    data = {
        "name": "New User",
        "email": "new@example.com",
        "password": PASSWORD,
        "password1": PASSWORD,
        "_csrf": token,
    }
    data.update(overrides)
    return client.post("/sessions/register", data=data)


def test_logon_with_correct_password(client: TestClient, seeded_user: User) -> None:
    response = log_on(client, seeded_user.email)

    assert response.status_code == 303
    assert response.headers["location"] == "/"

    home = client.get("/")
    assert "Welcome back, Test User." in home.text
    assert "Log off" in home.text


def test_logon_with_wrong_password(client: TestClient, seeded_user: User) -> None:
    response = log_on(client, seeded_user.email, "abc124")

    assert response.status_code == 303
    assert response.headers["location"].endswith("/sessions/logon")

    page = client.get("/sessions/logon")
    assert INVALID_CREDENTIALS in page.text
    assert client.get("/jobs").status_code == 303


def test_unknown_email_and_wrong_password_look_identical(
    app, client: TestClient, seeded_user: User
) -> None:
    wrong_password = log_on(client, seeded_user.email, "abc124")
    wrong_password_page = client.get("/sessions/logon").text

    with TestClient(app, follow_redirects=False) as other:
        unknown_email = log_on(other, "nobody@example.com")
        unknown_email_page = other.get("/sessions/logon").text

    assert wrong_password.status_code == unknown_email.status_code
    assert wrong_password.headers["location"] == unknown_email.headers["location"]
    assert INVALID_CREDENTIALS in wrong_password_page
    assert INVALID_CREDENTIALS in unknown_email_page


def test_flash_message_is_shown_once(client: TestClient, seeded_user: User) -> None:
    log_on(client, seeded_user.email, "abc124")

    assert INVALID_CREDENTIALS in client.get("/sessions/logon").text
    assert INVALID_CREDENTIALS not in client.get("/sessions/logon").text


def test_protected_page_redirects_to_logon_then_back(
    client: TestClient, seeded_user: User
) -> None:
    response = client.get("/jobs")
    assert response.status_code == 303
    assert response.headers["location"].endswith("/sessions/logon")

    response = log_on(client, seeded_user.email)
    assert response.status_code == 303
    assert response.headers["location"] == "/jobs"

    response = client.get("/jobs")
    assert response.status_code == 200


def test_return_path_is_used_only_once(client: TestClient, seeded_user: User) -> None:
    client.get("/jobs/new")
    assert log_on(client, seeded_user.email).headers["location"] == "/jobs/new"

    client.post("/sessions/logoff", data={"_csrf": fetch_csrf_token(client)})
    assert log_on(client, seeded_user.email).headers["location"] == "/"


def test_unauthenticated_post_is_rejected_with_401(client: TestClient) -> None:
    token = fetch_csrf_token(client)

    response = client.post(
        "/jobs",
        data={"company": "Acme", "position": "Engineer", "_csrf": token},
    )

    assert response.status_code == 401
    assert "Unauthorized: Please log in to continue." in response.text


def test_logoff_ends_the_session(client: TestClient, seeded_user: User) -> None:
    log_on(client, seeded_user.email)
    token = fetch_csrf_token(client, "/jobs")

    response = client.post("/sessions/logoff", data={"_csrf": token})

    assert response.status_code == 303
    assert response.headers["location"].endswith("/")
    assert client.get("/jobs").status_code == 303


def test_logged_in_user_skips_logon_page(client: TestClient, seeded_user: User) -> None:
    log_on(client, seeded_user.email)

    response = client.get("/sessions/logon")

    assert response.status_code == 303


def test_register_logs_the_new_user_in(client: TestClient, database: Database) -> None:
    response = _register(client)

    assert response.status_code == 303
    assert response.headers["location"] == "/"
    assert database.get_user_by_email("new@example.com") is not None

    home = client.get("/")
    assert "Welcome, New User! Your account has been created." in home.text
    assert client.get("/jobs").status_code == 200


def test_registered_credentials_authenticate_as_the_same_user(app, client: TestClient) -> None:
    _register(client, email="Same@Example.com")

    registered = app.state.database.get_user_by_email("same@example.com")
    authenticated = app.state.authenticator.authenticate("same@example.com", PASSWORD)

    assert registered is not None
    assert authenticated.id == registered.id
    assert authenticated.email == registered.email


def test_register_with_mismatched_passwords(client: TestClient, database: Database) -> None:
    response = _register(client, password1="abc124")

    assert response.status_code == 400
    assert "The passwords entered do not match." in response.text
    assert 'value="New User"' in response.text
    assert 'value="new@example.com"' in response.text
    assert "abc12" not in response.text
    assert database.count_users() == 0


def test_register_with_short_password(client: TestClient, database: Database) -> None:
    response = _register(client, password="abc", password1="abc")

    assert response.status_code == 400
    assert "at least 6 characters" in response.text
    assert database.count_users() == 0


def test_register_with_duplicate_email(client: TestClient, seeded_user: User) -> None:
    response = _register(client, email="TEST@example.com")

    assert response.status_code == 400
    assert "That email address is already registered." in response.text
