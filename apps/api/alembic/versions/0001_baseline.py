"""Baseline migration - identities, care team access, and audit tables

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-18

Creates users and child profiles, the per-pair access grant table,
invitations, and the hash-chained audit log.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create care team tables."""

    # ==========================================================================
    # Identities
    # ==========================================================================
    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            name VARCHAR(255) NOT NULL,
            role VARCHAR(20) NOT NULL,
            token_version INTEGER NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE child_profiles (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            guardian_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX ix_child_profiles_guardian_id ON child_profiles(guardian_id)')

    # ==========================================================================
    # Access grants (one row per child/professional pair, never deleted)
    # ==========================================================================
    op.execute('''
        CREATE TABLE child_access (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            child_id UUID NOT NULL REFERENCES child_profiles(id) ON DELETE CASCADE,
            professional_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            scopes JSONB NOT NULL DEFAULT '[]'::jsonb,
            is_active BOOLEAN NOT NULL DEFAULT true,
            granted_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            revoked_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_child_access_pair UNIQUE (child_id, professional_id),
            CONSTRAINT ck_child_access_active_revoked CHECK (
                (is_active AND revoked_at IS NULL)
                OR (NOT is_active AND revoked_at IS NOT NULL)
            )
        )
    ''')
    op.execute('''
        CREATE INDEX idx_child_access_child_active
        ON child_access(child_id, is_active, granted_at)
    ''')
    op.execute('''
        CREATE INDEX idx_child_access_professional_active
        ON child_access(professional_id, is_active, granted_at)
    ''')

    # ==========================================================================
    # Invitations
    # ==========================================================================
    op.execute('''
        CREATE TABLE access_invites (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            token VARCHAR(128) UNIQUE NOT NULL,
            child_id UUID NOT NULL REFERENCES child_profiles(id) ON DELETE CASCADE,
            sender_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            recipient_email VARCHAR(255),
            recipient_id UUID REFERENCES users(id) ON DELETE SET NULL,
            scopes JSONB NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            expires_at TIMESTAMPTZ NOT NULL,
            responded_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE INDEX idx_access_invites_child_created
        ON access_invites(child_id, created_at)
    ''')

    # ==========================================================================
    # Audit log (hash chained)
    # ==========================================================================
    op.execute('''
        CREATE TABLE audit_logs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            actor_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            event_type VARCHAR(50) NOT NULL,
            target_type VARCHAR(50),
            target_id UUID,
            details JSONB,
            ip_address VARCHAR(45),
            user_agent VARCHAR(500),
            prev_hash VARCHAR(64),
            entry_hash VARCHAR(64),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_audit_created ON audit_logs(created_at)')
    op.execute('CREATE INDEX idx_audit_event_created ON audit_logs(event_type, created_at)')
    op.execute('CREATE INDEX idx_audit_actor_created ON audit_logs(actor_user_id, created_at)')


def downgrade() -> None:
    """Drop care team tables."""
    op.execute('DROP TABLE IF EXISTS audit_logs')
    op.execute('DROP TABLE IF EXISTS access_invites')
    op.execute('DROP TABLE IF EXISTS child_access')
    op.execute('DROP TABLE IF EXISTS child_profiles')
    op.execute('DROP TABLE IF EXISTS users')
