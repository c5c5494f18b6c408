"""Seed the default roles into the database."""

from sqlalchemy.orm import Session
from church_platform.models.role import Role

DEFAULT_ROLES = [
    {
        "name": "admin",
        "description": "Full system access - Can manage everything",
        "permissions": [
            "manage:events", "manage:sermons", "manage:gallery", "manage:donations",
            "manage:users", "manage:roles", "manage:blog", "manage:livestream",
            "manage:feedback", "manage:volunteers", "view:analytics",
            "view:audit_logs", "manage:settings",
        ],
        "is_system_role": True,
    },
    {
        "name": "member",
        "description": "Default member role - No special permissions",
        "permissions": [],
        "is_system_role": True,
    },
    {
        "name": "pastor",
        "description": "Pastor - Can manage sermons and events",
        "permissions": ["manage:sermons", "manage:events", "view:analytics"],
        "is_system_role": False,
    },
    {
        "name": "bishop",
        "description": "Bishop - Elevated permissions for oversight",
        "permissions": [
            "manage:sermons", "manage:events", "manage:users", "manage:donations",
            "manage:volunteers", "view:analytics", "view:audit_logs",
        ],
        "is_system_role": False,
    },
    {
        "name": "volunteer",
        "description": "Volunteer - Can help with events",
        "permissions": ["manage:events"],
        "is_system_role": False,
    },
    {
        "name": "usher",
        "description": "Usher - Event assistance and crowd management",
        "permissions": ["manage:events"],
        "is_system_role": False,
    },
    {
        "name": "worship_team",
        "description": "Worship Team Member - Can manage sermon content",
        "permissions": ["manage:sermons"],
        "is_system_role": False,
    },
]


def seed_roles(db: Session) -> dict:
    """Upsert the default roles: create missing ones, refresh existing ones."""
    created = updated = 0
    for role_data in DEFAULT_ROLES:
        role = db.query(Role).filter(Role.name == role_data["name"]).first()
        if role is None:
            role = Role(name=role_data["name"])
            db.add(role)
            created += 1
        else:
            updated += 1
        role.description = role_data["description"]
        role.permissions = role_data["permissions"]
        role.is_system_role = role_data["is_system_role"]

    db.commit()
    print(f"✅ Seeded roles: {created} created, {updated} updated")
    return {"created": created, "updated": updated}
