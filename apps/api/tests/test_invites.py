"""Tests for the care team invitation lifecycle."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import update

from careteam.core.exceptions import (
    AlreadyResolved,
    Expired,
    InvalidRecipientEmail,
    InvalidScope,
    NotAuthorized,
    NotFound,
    WrongRecipient,
)
from careteam.core.scopes import PermissionScope
from careteam.db.enums import AuditEventType, InviteStatus, Role
from careteam.db.models import AccessGrant, AuditLog, Invitation
from careteam.db.types import utcnow
from careteam.services import invite_service


def _invite(db, child, email=None, scopes=("messages",)):
    invite = invite_service.create_invite(
        db,
        sender_id=child.guardian_id,
        sender_role=Role.PARENT,
        child_id=child.id,
        recipient_email=email,
        scopes=list(scopes),
    )
    db.commit()
    return invite


def _expire(db, invite):
    invite.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()


def _audit_count(db, event_type: AuditEventType) -> int:
    return db.query(AuditLog).filter(AuditLog.event_type == event_type.value).count()


# =============================================================================
# Create
# =============================================================================

def test_create_invite_is_pending_with_default_expiry(db, parent, child):
    before = utcnow()
    invite = _invite(db, child, email="Dr.Lee@Example.com", scopes=["video_visits", "messages"])

    assert invite.status == InviteStatus.PENDING.value
    assert invite.recipient_email == "dr.lee@example.com"
    assert invite.scopes == ["messages", "video_visits"]
    assert invite.sender_id == parent.id
    assert len(invite.token) == 64
    assert before + timedelta(days=7) <= invite.expires_at <= utcnow() + timedelta(days=7)


def test_create_invite_tokens_are_unique(db, child):
    tokens = {_invite(db, child).token for _ in range(5)}
    assert len(tokens) == 5


def test_create_invite_audit_hashes_recipient_email(db, child):
    invite = _invite(db, child, email="dr.lee@example.com")

    entries = db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.INVITE_SENT.value).all()
    assert len(entries) == 1
    assert entries[0].target_id == invite.id
    assert "dr.lee@example.com" not in str(entries[0].details)
    assert invite.token not in str(entries[0].details)


def test_create_invite_by_non_guardian_is_denied(db, make_user, child):
    stranger = make_user(Role.PARENT)
    with pytest.raises(NotAuthorized):
        invite_service.create_invite(
            db, stranger.id, Role.PARENT, child.id, None, ["messages"]
        )
    db.rollback()
    assert db.query(Invitation).count() == 0


def test_create_invite_by_professional_with_grant_is_denied(db, clinician, child, grant_access):
    grant_access(child, clinician, ["messages"])
    with pytest.raises(NotAuthorized):
        invite_service.create_invite(db, clinician.id, Role.CLINICIAN, child.id, None, ["messages"])


def test_create_invite_by_admin(db, admin, child):
    invite = invite_service.create_invite(db, admin.id, Role.ADMIN, child.id, None, ["messages"])
    db.commit()
    assert invite.sender_id == admin.id


@pytest.mark.parametrize("scopes", [[], ["billing"], ["messages", "nope"]])
def test_create_invite_rejects_bad_scopes(db, parent, child, scopes):
    with pytest.raises(InvalidScope):
        invite_service.create_invite(db, parent.id, Role.PARENT, child.id, None, scopes)


def test_create_invite_rejects_malformed_email(db, parent, child):
    with pytest.raises(InvalidRecipientEmail):
        invite_service.create_invite(db, parent.id, Role.PARENT, child.id, "not-an-email", ["messages"])


# =============================================================================
# Resolve
# =============================================================================

def test_resolve_invite_preview(db, parent, child):
    invite = _invite(db, child, scopes=["video_visits", "messages"])

    view = invite_service.resolve_invite(db, invite.token)

    assert view.id == invite.id
    assert view.child_name == child.name
    assert view.sender_name == parent.name
    assert view.scopes == [PermissionScope.MESSAGES, PermissionScope.VIDEO_VISITS]
    assert view.status == InviteStatus.PENDING


def test_resolve_unknown_token(db):
    with pytest.raises(NotFound):
        invite_service.resolve_invite(db, "missing")
    with pytest.raises(NotFound):
        invite_service.resolve_invite(db, "")


def test_resolve_expired_invite(db, child):
    invite = _invite(db, child)
    _expire(db, invite)

    with pytest.raises(Expired):
        invite_service.resolve_invite(db, invite.token)

    db.refresh(invite)
    assert invite.status == InviteStatus.PENDING.value


def test_expiry_takes_precedence_over_resolved_status(db, clinician, child):
    invite = _invite(db, child)
    invite_service.accept_invite(db, invite.token, clinician)
    db.commit()
    _expire(db, invite)

    with pytest.raises(Expired):
        invite_service.resolve_invite(db, invite.token)


def test_get_invite_status_derives_expired(db, child):
    invite = _invite(db, child)
    assert invite_service.get_invite_status(invite) == "pending"
    assert invite_service.get_invite_status(invite, now=invite.expires_at + timedelta(seconds=1)) == "expired"


# =============================================================================
# Accept
# =============================================================================

def test_accept_creates_grant_and_resolves_invite(db, clinician, child):
    invite = _invite(db, child, email=clinician.email, scopes=["medical_notes", "messages"])

    grant = invite_service.accept_invite(db, invite.token, clinician)
    db.commit()

    assert grant.child_id == child.id
    assert grant.professional_id == clinician.id
    assert grant.is_active is True
    assert grant.scope_set == {PermissionScope.MEDICAL_NOTES, PermissionScope.MESSAGES}

    db.refresh(invite)
    assert invite.status == InviteStatus.ACCEPTED.value
    assert invite.recipient_id == clinician.id
    assert invite.responded_at is not None
    assert _audit_count(db, AuditEventType.INVITE_ACCEPTED) == 1


def test_accept_email_binding_is_case_insensitive(db, clinician, child):
    invite = _invite(db, child, email=clinician.email.upper())
    grant = invite_service.accept_invite(db, invite.token, clinician)
    assert grant.professional_id == clinician.id


def test_unbound_invite_accepted_by_any_professional(db, support_worker, child):
    invite = _invite(db, child)
    grant = invite_service.accept_invite(db, invite.token, support_worker)
    assert grant.professional_id == support_worker.id


def test_accept_by_wrong_recipient(db, clinician, support_worker, child):
    invite = _invite(db, child, email=clinician.email)

    with pytest.raises(WrongRecipient):
        invite_service.accept_invite(db, invite.token, support_worker)
    db.rollback()

    db.refresh(invite)
    assert invite.status == InviteStatus.PENDING.value


@pytest.mark.parametrize("role", [Role.PARENT, Role.ADMIN])
def test_accept_by_non_professional_is_denied(db, make_user, child, role):
    user = make_user(role)
    invite = _invite(db, child)

    with pytest.raises(NotAuthorized):
        invite_service.accept_invite(db, invite.token, user)
    db.rollback()

    assert db.query(AccessGrant).count() == 0
    assert _audit_count(db, AuditEventType.INVITE_ACCEPTED) == 0


def test_accept_by_inactive_professional_is_denied(db, clinician, child):
    clinician.is_active = False
    db.commit()
    invite = _invite(db, child)

    with pytest.raises(NotAuthorized):
        invite_service.accept_invite(db, invite.token, clinician)


def test_accept_expired_invite(db, clinician, child):
    invite = _invite(db, child, email=clinician.email)
    _expire(db, invite)

    with pytest.raises(Expired):
        invite_service.accept_invite(db, invite.token, clinician)
    db.rollback()
    assert db.query(AccessGrant).count() == 0


def test_accept_twice_is_already_resolved(db, clinician, child):
    invite = _invite(db, child)
    invite_service.accept_invite(db, invite.token, clinician)
    db.commit()

    with pytest.raises(AlreadyResolved):
        invite_service.accept_invite(db, invite.token, clinician)
    db.rollback()
    assert _audit_count(db, AuditEventType.INVITE_ACCEPTED) == 1


def test_accept_loses_race_against_concurrent_response(db, clinician, child):
    """A responder that read the invite as pending must not win once another has resolved it."""
    invite = _invite(db, child)
    stale = invite_service.get_invite_by_token(db, invite.token)
    assert stale.status == InviteStatus.PENDING.value

    # Another request declines the invite; this session's copy stays pending
    db.execute(
        update(Invitation)
        .where(Invitation.id == invite.id)
        .values(status=InviteStatus.DENIED.value, responded_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(AlreadyResolved):
        invite_service.accept_invite(db, invite.token, clinician)
    db.rollback()

    assert db.query(AccessGrant).count() == 0
    assert _audit_count(db, AuditEventType.INVITE_ACCEPTED) == 0


# =============================================================================
# Decline
# =============================================================================

def test_decline_invite(db, clinician, child):
    invite = _invite(db, child, email=clinician.email)

    declined = invite_service.decline_invite(db, invite.token, clinician)
    db.commit()

    assert declined.status == InviteStatus.DENIED.value
    assert declined.recipient_id == clinician.id
    assert db.query(AccessGrant).count() == 0
    assert _audit_count(db, AuditEventType.INVITE_DENIED) == 1


def test_decline_then_accept_is_already_resolved(db, clinician, child):
    invite = _invite(db, child)
    invite_service.decline_invite(db, invite.token, clinician)
    db.commit()

    with pytest.raises(AlreadyResolved):
        invite_service.accept_invite(db, invite.token, clinician)


def test_decline_by_wrong_recipient(db, clinician, support_worker, child):
    invite = _invite(db, child, email=clinician.email)
    with pytest.raises(WrongRecipient):
        invite_service.decline_invite(db, invite.token, support_worker)


def test_decline_expired_invite(db, clinician, child):
    invite = _invite(db, child)
    _expire(db, invite)
    with pytest.raises(Expired):
        invite_service.decline_invite(db, invite.token, clinician)


# =============================================================================
# Listing
# =============================================================================

def test_list_invites_for_child_newest_first(db, parent, clinician, child):
    first = _invite(db, child)
    second = _invite(db, child)
    invite_service.accept_invite(db, first.token, clinician)
    db.commit()

    invites = invite_service.list_invites_for_child(db, parent.id, Role.PARENT, child.id)
    assert [i.id for i in invites] == [second.id, first.id]


def test_list_invites_for_unknown_child(db, parent):
    with pytest.raises(NotAuthorized):
        invite_service.list_invites_for_child(db, parent.id, Role.PARENT, uuid.uuid4())
