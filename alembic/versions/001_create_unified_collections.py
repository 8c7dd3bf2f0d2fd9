"""001: create unified_collections table

Revision ID: 001
Revises:
Create Date: 2026-10-12
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_touch_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE unified_collections (
            id              VARCHAR(64)     PRIMARY KEY,
            customer_id     VARCHAR(64)     NOT NULL,
            collector_id    VARCHAR(64),
            weight_kg       NUMERIC(10, 3)  NOT NULL DEFAULT 0,
            total_value     NUMERIC(12, 2),
            status          VARCHAR(20)     NOT NULL DEFAULT 'pending',
            material_type   VARCHAR(40),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            approved_at     TIMESTAMPTZ,
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_collections_weight_gte_0 CHECK (weight_kg >= 0),
            CONSTRAINT ck_collections_value_gte_0 CHECK (total_value IS NULL OR total_value >= 0),
            CONSTRAINT ck_collections_status CHECK (
                status IN ('pending', 'submitted', 'approved', 'completed', 'rejected', 'cancelled')
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_collections_updated_at
            BEFORE UPDATE ON unified_collections
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute(
        "CREATE INDEX idx_collections_customer_time "
        "ON unified_collections (customer_id, created_at DESC);"
    )
    op.execute("""
        CREATE INDEX idx_collections_collector_time
        ON unified_collections (collector_id, created_at DESC)
        WHERE collector_id IS NOT NULL;
    """)
    op.execute(
        "COMMENT ON TABLE unified_collections IS "
        "'Recycling pickups; wallet totals are derived from approved/completed rows';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS unified_collections CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_touch_updated_at();")
