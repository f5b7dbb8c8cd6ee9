"""001 – Initial schema: managers, workers, attendance records, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:30:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("shift_label", ["morning", "evening", "night"]),
    ("record_origin", ["manual", "bulk", "auto"]),
    ("creator_type", ["admin", "manager", "worker", "system"]),
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

    # ── 1. managers ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE managers (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL,
            email       VARCHAR(255) UNIQUE,
            mobile      VARCHAR(20),
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. workers ────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE workers (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL,
            mobile      VARCHAR(20),
            address     TEXT,
            manager_id  UUID NOT NULL REFERENCES managers(id),
            shift       shift_label NOT NULL,
            is_working  BOOLEAN NOT NULL DEFAULT FALSE,
            is_active   BOOLEAN NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_workers_shift_is_working ON workers(shift, is_working)")
    op.execute("CREATE INDEX ix_workers_manager_id       ON workers(manager_id)")

    # ── 3. attendance_records ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_records (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            worker_id           UUID NOT NULL REFERENCES workers(id),
            manager_id          UUID NOT NULL REFERENCES managers(id),
            step_in             TIMESTAMPTZ NOT NULL,
            step_out            TIMESTAMPTZ,
            total_minutes       INTEGER,
            shift               shift_label NOT NULL,
            work_date           DATE NOT NULL,
            origin              record_origin NOT NULL DEFAULT 'manual',
            note                TEXT,
            step_in_image       VARCHAR(500),
            step_in_latitude    DOUBLE PRECISION,
            step_in_longitude   DOUBLE PRECISION,
            step_in_address     TEXT,
            step_out_image      VARCHAR(500),
            step_out_latitude   DOUBLE PRECISION,
            step_out_longitude  DOUBLE PRECISION,
            step_out_address    TEXT,
            created_by_type     creator_type NOT NULL DEFAULT 'system',
            created_by_id       UUID,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_attendance_step_order CHECK (step_out IS NULL OR step_out >= step_in)
        )
    """)
    op.execute("CREATE INDEX ix_attendance_worker_id        ON attendance_records(worker_id)")
    op.execute("CREATE INDEX ix_attendance_manager_id       ON attendance_records(manager_id)")
    op.execute("CREATE INDEX ix_attendance_shift_step_in    ON attendance_records(shift, step_in)")
    op.execute("CREATE INDEX ix_attendance_step_in          ON attendance_records(step_in)")
    op.execute("CREATE INDEX ix_attendance_shift_work_date  ON attendance_records(shift, work_date)")
    # At most one open record per worker
    op.execute("""
        CREATE UNIQUE INDEX uq_attendance_open_per_worker
            ON attendance_records(worker_id)
            WHERE step_out IS NULL
    """)
    # At most one automated step-in per worker, shift and local day
    op.execute("""
        CREATE UNIQUE INDEX uq_attendance_auto_per_shift_day
            ON attendance_records(worker_id, shift, work_date)
            WHERE origin = 'auto'
    """)

    # ── 4. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_type   VARCHAR(20) NOT NULL,
            actor_id     UUID,
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            note         TEXT,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor      ON audit_trail(actor_type, actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action     ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "attendance_records",
        "workers",
        "managers",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
