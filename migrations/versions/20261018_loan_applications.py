"""create loan applications table

Revision ID: 20261018_loan_applications
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_loan_applications"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "loan_applications",
        sa.Column("id", sa.String(length=32), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_reference", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="submitted"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "amount >= 1000 AND amount <= 50000", name="ck_loan_app_amount_range"
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed')",
            name="ck_loan_app_payment_status",
        ),
        sa.CheckConstraint(
            "status IN ('submitted', 'approved', 'rejected')", name="ck_loan_app_status"
        ),
        sa.CheckConstraint(
            "payment_status <> 'completed' OR status = 'approved'",
            name="ck_loan_app_completed_is_approved",
        ),
    )
    op.create_index(
        "ix_loan_applications_payment_reference",
        "loan_applications",
        ["payment_reference"],
        unique=True,
    )
    op.create_index(
        "ix_loan_applications_payment_status", "loan_applications", ["payment_status"]
    )
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])


def downgrade() -> None:
    op.drop_index("ix_loan_applications_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_payment_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_payment_reference", table_name="loan_applications")
    op.drop_table("loan_applications")
