"""Seed the initial admin user from env vars."""

from sqlalchemy.orm import Session
from church_platform.models.user import User
from church_platform.models.role import Role
from church_platform.core.security import hash_password
from church_platform.core.config import settings


def seed_admin(db: Session) -> None:
    """Create the admin user if not already present."""
    admin_role = db.query(Role).filter(Role.name == "admin").first()
    if not admin_role:
        print("⚠️  admin role not found. Run seed_roles first.")
        return

    existing = db.query(User).filter(User.email == settings.ADMIN_EMAIL).first()
    if existing:
        print(f"ℹ️  Admin '{settings.ADMIN_EMAIL}' already exists, skipping.")
        return

    admin = User(
        email=settings.ADMIN_EMAIL,
        hashed_password=hash_password(settings.ADMIN_PASSWORD),
        full_name="Administrator",
        is_active=True,
        role_id=admin_role.id,
    )
    db.add(admin)
    db.commit()
    print(f"✅ Created admin: {settings.ADMIN_EMAIL}")
