import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text, func

from app.db.base import Base

MIN_LOAN_AMOUNT = 1000
MAX_LOAN_AMOUNT = 50000


def _new_application_id() -> str:
    return uuid.uuid4().hex


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __table_args__ = (
        CheckConstraint(
            f"amount >= {MIN_LOAN_AMOUNT} AND amount <= {MAX_LOAN_AMOUNT}",
            name="ck_loan_app_amount_range",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed')",
            name="ck_loan_app_payment_status",
        ),
        CheckConstraint(
            "status IN ('submitted', 'approved', 'rejected')",
            name="ck_loan_app_status",
        ),
        CheckConstraint(
            "payment_status <> 'completed' OR status = 'approved'",
            name="ck_loan_app_completed_is_approved",
        ),
    )

    id = Column(String(32), primary_key=True, default=_new_application_id)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    amount = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=False)
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    # Checkout request id of the in-flight STK push; the reconciliation key.
    payment_reference = Column(String(100), nullable=True, unique=True, index=True)
    status = Column(String(20), nullable=False, default="submitted", index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
