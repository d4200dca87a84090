"""001 – Initial schema: users, roles, attachments, leave requests, ledger, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "approver", "hr_admin", "system_admin"]),
    ("leave_type", ["compensatory", "annual", "sick", "personal"]),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("ledger_action", ["request", "cancel", "grant", "adjustment"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            username      VARCHAR(64)  NOT NULL UNIQUE,
            email         VARCHAR(255) NOT NULL UNIQUE,
            display_name  VARCHAR(150),
            is_active     BOOLEAN DEFAULT TRUE,
            created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 2. user_sessions ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_sessions (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id     UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash  VARCHAR(512) NOT NULL,
            expires_at  TIMESTAMPTZ NOT NULL,
            is_revoked  BOOLEAN DEFAULT FALSE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.create_index("ix_user_sessions_token_hash", "user_sessions", ["token_hash"])

    # ── 3. role_assignments ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE role_assignments (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id      UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            role         user_role NOT NULL,
            assigned_by  UUID REFERENCES users(id),
            assigned_at  TIMESTAMPTZ DEFAULT NOW(),
            revoked_at   TIMESTAMPTZ,
            is_active    BOOLEAN DEFAULT TRUE
        )
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_role_assignments_active
            ON role_assignments (user_id, role)
            WHERE is_active
    """)

    # ── 4. attachments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attachments (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            owner_id      UUID REFERENCES users(id),
            filename      VARCHAR(255) NOT NULL,
            content_type  VARCHAR(100),
            size_bytes    BIGINT,
            storage_key   VARCHAR(512) NOT NULL,
            created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 5. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id          UUID NOT NULL REFERENCES users(id),
            type             leave_type NOT NULL,
            start_date       TIMESTAMP NOT NULL,
            end_date         TIMESTAMP NOT NULL,
            amount           NUMERIC(10,2) NOT NULL,
            reason           TEXT NOT NULL,
            attachment_refs  JSONB NOT NULL DEFAULT '[]'::jsonb,
            status           leave_status NOT NULL DEFAULT 'pending',
            approver_id      UUID REFERENCES users(id),
            comment          TEXT,
            decided_at       TIMESTAMPTZ,
            created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_request_range CHECK (start_date < end_date),
            CONSTRAINT ck_leave_request_amount CHECK (amount >= 0)
        )
    """)
    op.create_index(
        "ix_leave_requests_user_range",
        "leave_requests",
        ["user_id", "start_date", "end_date"],
    )
    op.create_index("ix_leave_requests_status", "leave_requests", ["status"])

    # ── 6. leave_ledger_entries ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_ledger_entries (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id           UUID NOT NULL REFERENCES users(id),
            leave_type        leave_type NOT NULL,
            amount            NUMERIC(10,2) NOT NULL,
            action            ledger_action NOT NULL,
            leave_request_id  UUID REFERENCES leave_requests(id),
            note              TEXT,
            created_by        UUID REFERENCES users(id),
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_ledger_request_action UNIQUE (leave_request_id, action)
        )
    """)
    op.create_index(
        "ix_ledger_partition",
        "leave_ledger_entries",
        ["user_id", "leave_type"],
    )

    # Ledger rows are append-only
    op.execute("""
        CREATE OR REPLACE FUNCTION leave_ledger_block_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'leave_ledger_entries is append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER trg_leave_ledger_append_only
            BEFORE UPDATE OR DELETE ON leave_ledger_entries
            FOR EACH ROW EXECUTE FUNCTION leave_ledger_block_mutation()
    """)

    # ── 7. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID REFERENCES users(id),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.create_index("ix_audit_trail_actor_id", "audit_trail", ["actor_id"])
    op.create_index("ix_audit_trail_entity", "audit_trail", ["entity_type", "entity_id"])
    op.create_index("ix_audit_trail_created_at", "audit_trail", ["created_at"])


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.execute(
        "DROP TRIGGER IF EXISTS trg_leave_ledger_append_only ON leave_ledger_entries"
    )
    op.execute("DROP FUNCTION IF EXISTS leave_ledger_block_mutation()")

    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "leave_ledger_entries",
        "leave_requests",
        "attachments",
        "role_assignments",
        "user_sessions",
        "users",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
