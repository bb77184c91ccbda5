"""One-time script to create (or repair) an admin account.

Usage:
    python -m backend.create_admin

ADMIN_EMAIL / ADMIN_PASSWORD are read from the environment when set,
otherwise prompted for.
"""

from __future__ import annotations

import getpass
import os

from backend.app.core.database import SessionLocal
from backend.app.core.security import get_password_hash, validate_password_strength
from backend.app.models.user import RoleEnum, User
from backend.app.services.credentials import get_user_by_email, normalize_email
from backend.app.services.session_authority import bump_session_epoch


def main() -> None:
    email = normalize_email(os.environ.get("ADMIN_EMAIL") or input("Admin email: "))
    if "@" not in email:
        print("Error: a valid email is required.")
        return
    password = os.environ.get("ADMIN_PASSWORD") or getpass.getpass("Password: ")
    pw_error = validate_password_strength(password)
    if pw_error:
        print(f"Error: {pw_error}")
        return

    db = SessionLocal()
    try:
        existing = get_user_by_email(db, email)
        if existing:
            # Promote, unblock and set the password; old sessions are revoked
            bump_session_epoch(
                db,
                existing.id,
                hashed_password=get_password_hash(password),
                is_blocked=False,
                role=RoleEnum.ADMIN,
            )
            db.commit()
            print("Account already existed, promoted to ADMIN and password reset.")
            print(f"  ID:    {existing.id}")
            print(f"  Email: {email}")
            return

        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            role=RoleEnum.ADMIN,
            is_blocked=False,
            session_epoch=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        print("Admin account created.")
        print(f"  ID:    {user.id}")
        print(f"  Email: {email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
