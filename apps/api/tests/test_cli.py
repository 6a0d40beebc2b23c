"""Tests for the admin CLI."""

from click.testing import CliRunner

from careteam.cli import cli
from careteam.db.enums import AuditEventType
from careteam.db.models import AuditLog, ChildProfile, User


def test_create_user_and_child(db):
    runner = CliRunner()

    result = runner.invoke(
        cli, ["create-user", "--email", "Parent@Example.com", "--name", "  Pat   Parent ", "--role", "parent"]
    )
    assert result.exit_code == 0, result.output
    assert "Created parent user" in result.output

    user = db.query(User).filter(User.email == "parent@example.com").one()
    assert user.name == "Pat Parent"

    result = runner.invoke(cli, ["create-child", "--name", "Sam", "--guardian-email", "parent@example.com"])
    assert result.exit_code == 0, result.output
    assert db.query(ChildProfile).filter(ChildProfile.guardian_id == user.id).count() == 1


def test_create_user_rejects_duplicate_and_unknown_role(db, parent):
    runner = CliRunner()

    result = runner.invoke(cli, ["create-user", "--email", parent.email, "--name", "X", "--role", "parent"])
    assert "already exists" in result.output

    result = runner.invoke(cli, ["create-user", "--email", "x@example.com", "--name", "X", "--role", "owner"])
    assert result.exit_code != 0


def test_create_child_requires_parent_guardian(db, clinician):
    result = CliRunner().invoke(cli, ["create-child", "--name", "Sam", "--guardian-email", clinician.email])
    assert "not a parent" in result.output
    assert db.query(ChildProfile).count() == 0


def test_revoke_sessions_bumps_version_and_audits(db, parent):
    result = CliRunner().invoke(cli, ["revoke-sessions", "--email", parent.email])
    assert result.exit_code == 0, result.output

    db.expire_all()
    assert db.get(User, parent.id).token_version == 2
    entry = db.query(AuditLog).one()
    assert entry.event_type == AuditEventType.AUTH_SESSION_REVOKED.value
    assert entry.target_id == parent.id


def test_verify_audit_chain(db, clinician, child, grant_access):
    grant_access(child, clinician, ["messages"])
    runner = CliRunner()

    result = runner.invoke(cli, ["verify-audit-chain"])
    assert result.exit_code == 0
    assert "intact" in result.output

    entry = db.query(AuditLog).order_by(AuditLog.created_at.asc()).first()
    entry.details = {"tampered": True}
    db.commit()

    result = runner.invoke(cli, ["verify-audit-chain"])
    assert result.exit_code == 1
    assert str(entry.id) in result.output
