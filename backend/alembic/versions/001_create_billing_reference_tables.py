"""Create billing reference data tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    # Patient insurance coverage
    op.create_table(
        "patient_coverage",
        *_base_columns(),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("insurance_payer_id", sa.String(64), nullable=True),
        sa.Column("insurance_member_id", sa.String(64), nullable=True),
        sa.Column("insurance_status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("authorization_required", sa.Boolean(), nullable=False, server_default="false"),
    )
    op.create_index("ix_patient_coverage_patient_id", "patient_coverage", ["patient_id"], unique=True)

    # Payers
    op.create_table(
        "payers",
        *_base_columns(),
        sa.Column("payer_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("rvu_multiplier", sa.Float(), nullable=True),
    )
    op.create_index("ix_payers_payer_id", "payers", ["payer_id"], unique=True)

    # CPT catalog with RVUs
    op.create_table(
        "codes_cpt",
        *_base_columns(),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("short_desc", sa.String(200), nullable=False, server_default=""),
        sa.Column("long_desc", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("work_rvu", sa.Float(), nullable=True),
        sa.Column("practice_rvu", sa.Float(), nullable=True),
        sa.Column("malpractice_rvu", sa.Float(), nullable=True),
    )
    op.create_index("ix_codes_cpt_code", "codes_cpt", ["code"], unique=True)
    op.create_index("ix_codes_cpt_status", "codes_cpt", ["status"])

    # ICD-10-CM catalog
    op.create_table(
        "codes_icd10",
        *_base_columns(),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("billable", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
    )
    op.create_index("ix_codes_icd10_code", "codes_icd10", ["code"], unique=True)

    # Contracted fee schedules
    op.create_table(
        "fee_schedule_items",
        *_base_columns(),
        sa.Column("payer_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("code_type", sa.String(10), nullable=False, server_default="CPT"),
        sa.Column("amount", sa.Float(), nullable=True),
    )
    op.create_index("ix_fee_schedule_items_payer_id", "fee_schedule_items", ["payer_id"])
    op.create_index("ix_fee_schedule_items_code", "fee_schedule_items", ["code"])

    # Medical necessity rules
    op.create_table(
        "coding_rules",
        *_base_columns(),
        sa.Column("cpt_code", sa.String(10), nullable=False),
        sa.Column("required_icd10_patterns", postgresql.ARRAY(sa.String(20)), nullable=True),
        sa.Column("excluded_icd10_patterns", postgresql.ARRAY(sa.String(20)), nullable=True),
        sa.Column("primary_diagnosis_only", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("source", sa.String(20), nullable=False, server_default="internal"),
        sa.Column("reference_url", sa.String(500), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default="true"),
    )
    op.create_index("ix_coding_rules_cpt_code", "coding_rules", ["cpt_code"])
    op.create_index("ix_coding_rules_active", "coding_rules", ["active"])

    # Encounter history
    op.create_table(
        "encounters",
        *_base_columns(),
        sa.Column("encounter_id", sa.String(64), nullable=False),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("provider_id", sa.String(64), nullable=False),
        sa.Column("encounter_date", sa.Date(), nullable=False),
    )
    op.create_index("ix_encounters_encounter_id", "encounters", ["encounter_id"], unique=True)
    op.create_index("ix_encounters_patient_id", "encounters", ["patient_id"])
    op.create_index("ix_encounters_provider_id", "encounters", ["provider_id"])
    op.create_index("ix_encounters_encounter_date", "encounters", ["encounter_date"])

    # SDOH assessments
    op.create_table(
        "sdoh_assessments",
        *_base_columns(),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("assessment_date", sa.Date(), nullable=False),
        sa.Column("factors", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("overall_complexity_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ccm_eligible", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("ccm_tier", sa.String(20), nullable=True),
    )
    op.create_index("ix_sdoh_assessments_patient_id", "sdoh_assessments", ["patient_id"])


def downgrade() -> None:
    op.drop_table("sdoh_assessments")
    op.drop_table("encounters")
    op.drop_table("coding_rules")
    op.drop_table("fee_schedule_items")
    op.drop_table("codes_icd10")
    op.drop_table("codes_cpt")
    op.drop_table("payers")
    op.drop_table("patient_coverage")
