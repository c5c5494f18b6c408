"""One-time backfill: give every user without a role the ``member`` role.

Request handling never assigns roles on the fly; a user with no role is
denied until an admin assigns one or this backfill runs.
"""

from sqlalchemy.orm import Session
from church_platform.models.user import User
from church_platform.models.role import Role


def backfill_user_roles(db: Session, role_name: str = "member") -> int:
    role = db.query(Role).filter(Role.name == role_name).first()
    if not role:
        print(f"⚠️  {role_name} role not found. Run seed_roles first.")
        return 0

    users = db.query(User).filter(User.role_id.is_(None)).all()
    for user in users:
        user.role_id = role.id
    db.commit()
    print(f"✅ Assigned '{role_name}' to {len(users)} user(s)")
    return len(users)
