"""Church Platform CLI tool (churchctl)."""

import typer

app = typer.Typer(name="churchctl", help="Church Platform CLI")
db_app = typer.Typer(help="Database management commands")
audit_app = typer.Typer(help="Audit trail maintenance")
app.add_typer(db_app, name="db")
app.add_typer(audit_app, name="audit")


def _mysql_params():
    """Split ``settings.MYSQL_URL`` into connection kwargs and the database name."""
    from sqlalchemy.engine import make_url
    from church_platform.core.config import settings

    url = make_url(settings.MYSQL_URL)
    params = {
        "host": url.host or "localhost",
        "port": url.port or 3306,
        "user": url.username,
        "password": url.password or "",
    }
    return params, url.database


@db_app.command("create")
def db_create():
    """Create the MySQL database if needed, then all tables."""
    import pymysql
    from church_platform.db.base import Base
    from church_platform.db.session import engine
    import church_platform.models  # noqa: F401

    params, db_name = _mysql_params()
    conn = pymysql.connect(**params)
    try:
        cursor = conn.cursor()
        cursor.execute(f"CREATE DATABASE IF NOT EXISTS `{db_name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
        conn.commit()
    finally:
        conn.close()

    Base.metadata.create_all(bind=engine)
    typer.echo(f"✅ Database '{db_name}' and tables ready")


@db_app.command("seed")
def db_seed():
    """Seed roles and the admin user."""
    from church_platform.db.session import SessionLocal
    from church_platform.db.seeds.seed_roles import seed_roles
    from church_platform.db.seeds.seed_admin import seed_admin

    db = SessionLocal()
    try:
        seed_roles(db)
        seed_admin(db)
    finally:
        db.close()
    typer.echo("✅ All seeds applied")


@db_app.command("backfill-roles")
def db_backfill_roles(role: str = typer.Option("member", help="Role given to users without one")):
    """Assign a role to every user that has none (one-time migration)."""
    from church_platform.db.session import SessionLocal
    from church_platform.db.seeds.backfill_roles import backfill_user_roles

    db = SessionLocal()
    try:
        backfill_user_roles(db, role)
    finally:
        db.close()


@db_app.command("reset")
def db_reset():
    """Drop and recreate the database (DANGER)."""
    confirm = typer.confirm("⚠️  This will DROP the entire database, audit trail included. Continue?")
    if not confirm:
        raise typer.Abort()
    import pymysql

    params, db_name = _mysql_params()
    conn = pymysql.connect(**params)
    try:
        cursor = conn.cursor()
        cursor.execute(f"DROP DATABASE IF EXISTS `{db_name}`")
        cursor.execute(f"CREATE DATABASE `{db_name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
        conn.commit()
        typer.echo(f"✅ Database '{db_name}' reset")
    finally:
        conn.close()


@audit_app.command("clean")
def audit_clean(
    days: int = typer.Option(None, help="Retention in days (defaults to settings)"),
    transactions: bool = typer.Option(False, help="Also sweep non-critical transaction entries"),
):
    """Run the audit retention sweep now."""
    from church_platform.db.session import SessionLocal
    from church_platform.services.audit_service import audit_service
    from church_platform.services.transaction_audit_service import transaction_audit_service

    db = SessionLocal()
    try:
        deleted = audit_service.clean_old_logs(db, days)
        typer.echo(f"✅ Removed {deleted} audit log(s)")
        if transactions:
            deleted = transaction_audit_service.clean_old_logs(db, days)
            typer.echo(f"✅ Removed {deleted} transaction audit log(s)")
    finally:
        db.close()


@audit_app.command("export")
def audit_export(
    output: str = typer.Argument(..., help="Where to write the CSV"),
    token: str = typer.Option(..., envvar="CHURCH_API_TOKEN", help="Bearer token"),
    base_url: str = typer.Option("http://localhost:8000", help="API base URL"),
    action: str = typer.Option(None, help="Only this action"),
    start_date: str = typer.Option(None, help="ISO start date"),
    end_date: str = typer.Option(None, help="ISO end date"),
):
    """Download an audit CSV export via the API."""
    import httpx

    params = {k: v for k, v in {
        "action": action, "start_date": start_date, "end_date": end_date,
    }.items() if v}
    resp = httpx.get(
        f"{base_url}/api/audit/export",
        params=params,
        headers={"Authorization": f"Bearer {token}"},
        timeout=60,
    )
    if resp.status_code != 200:
        typer.echo(f"❌ Export failed ({resp.status_code}): {resp.text}", err=True)
        raise typer.Exit(code=1)
    with open(output, "w", encoding="utf-8") as f:
        f.write(resp.text)
    typer.echo(f"✅ Wrote {output}")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(True, help="Auto-reload"),
):
    """Start the FastAPI development server."""
    import uvicorn
    uvicorn.run("church_platform.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
