"""CLI tools for care team administration."""

import click

from careteam.db.enums import Role
from careteam.db.models import ChildProfile, User
from careteam.db.session import SessionLocal
from careteam.services import audit_service
from careteam.utils.normalization import normalize_email, normalize_name


@click.group()
def cli():
    """Care team CLI tools."""
    pass


@cli.command()
@click.option("--email", required=True, help="User email address")
@click.option("--name", required=True, help="Display name")
@click.option(
    "--role",
    required=True,
    type=click.Choice([r.value for r in Role]),
    help="Account role",
)
def create_user(email: str, name: str, role: str):
    """
    Create a user account.

    Example:
        python -m careteam.cli create-user --email "dr.lee@example.com" --name "Dr. Lee" --role clinician
    """
    db = SessionLocal()
    try:
        email = normalize_email(email)
        if not email:
            click.echo("❌ Email is required")
            return

        existing = db.query(User).filter(User.email == email).first()
        if existing:
            click.echo(f"❌ User already exists: {email}")
            return

        user = User(email=email, name=normalize_name(name) or email, role=role)
        db.add(user)
        db.commit()

        click.echo(f"✓ Created {role} user: {email}")
        click.echo(f"  ID: {user.id}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--name", required=True, help="Child's display name")
@click.option("--guardian-email", required=True, help="Email of the guardian (parent) account")
def create_child(name: str, guardian_email: str):
    """
    Create a child profile owned by an existing parent account.

    Example:
        python -m careteam.cli create-child --name "Sam" --guardian-email "parent@example.com"
    """
    db = SessionLocal()
    try:
        guardian = db.query(User).filter(User.email == normalize_email(guardian_email)).first()
        if not guardian:
            click.echo(f"❌ User not found: {guardian_email}")
            return
        if guardian.role != Role.PARENT.value:
            click.echo(f"❌ {guardian_email} is a {guardian.role}, not a parent")
            return

        child = ChildProfile(name=normalize_name(name) or name, guardian_id=guardian.id)
        db.add(child)
        db.commit()

        click.echo(f"✓ Created child profile: {child.name}")
        click.echo(f"  ID: {child.id}")
        click.echo(f"  Guardian: {guardian.email}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m careteam.cli revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        user.token_version += 1
        audit_service.log_sessions_revoked(db, user.id, user.token_version)
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def verify_audit_chain():
    """
    Verify the audit log hash chain end to end.

    Exits non-zero and prints the first broken entry if tampering is found.

    Example:
        python -m careteam.cli verify-audit-chain
    """
    db = SessionLocal()
    try:
        broken_id = audit_service.verify_chain(db)
    finally:
        db.close()

    if broken_id is not None:
        click.echo(f"❌ Audit chain broken at entry {broken_id}")
        raise SystemExit(1)
    click.echo("✓ Audit chain intact")


if __name__ == "__main__":
    cli()
