"""Create a user or reset their password for local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``salonbook`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app
from salonbook.extensions import db
from salonbook.models import User
from salonbook.profiles import find_user_by_email

USER_TYPES = ("client", "stylist", "admin")


def set_password(email: str, password: str, user_type: str = "client", branch_id: str | None = None) -> None:
    app = create_app()

    with app.app_context():
        email = email.strip().lower()
        user = find_user_by_email(email)
        if user is None:
            first_name = user_type.capitalize()
            user = User(
                first_name=first_name,
                last_name="User",
                name=f"{first_name} User",
                email=email,
                user_type=user_type,
                roles=[user_type],
                branch_id=branch_id,
            )
            db.session.add(user)
            print(f"Created new {user_type} user: {email}")
        elif user.user_type != user_type:
            print(f"Updating user type from '{user.user_type}' to '{user_type}'")
            user.user_type = user_type
            user.roles = [user_type]

        if branch_id:
            user.branch_id = branch_id
        user.password_hash = generate_password_hash(password)
        db.session.commit()

        print(f"Password for {user_type} user '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set a user password for local testing.")
    parser.add_argument("email", help="User email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument("--type", dest="user_type", choices=USER_TYPES, default="client",
                        help="User type (default: client)")
    parser.add_argument("--branch", dest="branch_id", help="Branch id for stylists")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.user_type, args.branch_id)


if __name__ == "__main__":
    main()
