import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jobtracker.database import Database, resolve_database_path
from jobtracker.errors import DuplicateKeyFailure, ValidationFailure
from jobtracker.forms import PASSWORD_MIN_LENGTH, RegistrationForm, parse_form


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a jobs tracker user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for logon")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to JOBTRACKER_DB_PATH or data/jobtracker.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < PASSWORD_MIN_LENGTH:
            print(
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.",
                file=sys.stderr,
            )
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    try:
        form = parse_form(
            RegistrationForm,
            {"name": args.name, "email": args.email, "password": password},
        )
    except ValidationFailure as exc:
        for message in exc.messages:
            print(f"Error: {message}", file=sys.stderr)
        return 1

    db_env = args.db_path or os.getenv("JOBTRACKER_DB_PATH")
    database = Database(resolve_database_path(db_env))
    database.initialize()

    try:
        user = database.create_user(form.name, form.email, form.password)
    except DuplicateKeyFailure as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
