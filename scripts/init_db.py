import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.campus.models import Permission, Role, User  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

PERMISSIONS = (
    ("admin.view", "Admin: view dashboard and audit log"),
    ("courses.manage", "Courses: create, edit, curriculum"),
    ("events.manage", "Events: create, edit, program"),
    ("enrollments.manage", "Enrollments: attendance"),
    ("certificates.manage", "Certificates: issue, exceptions"),
    ("discounts.manage", "Discounts: codes and campaigns"),
    ("contact.view", "Contact: read messages"),
    ("contact.manage", "Contact: update messages"),
)


def seed(s) -> User:
    """
    Permissions, the admin and learner roles, and the admin user.
    Idempotent; an existing admin keeps its password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    perms = []
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms.append(p)

    role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
    if not role_admin:
        role_admin = Role(key="admin", name="Administrator")
        s.add(role_admin)
    for p in perms:
        if p not in role_admin.permissions:
            role_admin.permissions.append(p)

    # Learners only use the public site and /api; no admin permissions.
    if not s.query(Role).filter(Role.key == "learner").one_or_none():
        s.add(Role(key="learner", name="Learner"))

    user = s.query(User).filter(User.email == admin_email).one_or_none()
    if not user:
        user = User(email=admin_email, full_name="Administrator", password_hash=generate_password_hash(admin_password), is_active=True)
        s.add(user)
    if role_admin not in user.roles:
        user.roles.append(role_admin)
    s.flush()
    return user


def seed_only(*, database_url: str | None = None) -> None:
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///campus.db").strip()

    # Direct engine/session so release can seed without importing app.wsgi.
    with script_session(db_url) as s:
        user = seed(s)
        admin_email = user.email

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
