from __future__ import annotations

from typing import Any

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.loan_application import MAX_LOAN_AMOUNT, MIN_LOAN_AMOUNT, LoanApplication
from app.schemas.loan import LoanApplicationStatus, PaymentStatus
from app.services import errors

REQUIRED_FIELDS = ("first_name", "last_name", "email", "phone", "amount", "purpose")
MUTABLE_FIELDS = {"payment_status", "payment_reference", "status"}


def _missing_fields(fields: dict[str, Any]) -> list[str]:
    missing = []
    for name in REQUIRED_FIELDS:
        value = fields.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def _parse_amount(value: Any) -> int:
    # int() would silently truncate 50000.9 into range.
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        amount = None
    else:
        try:
            amount = int(value)
        except (TypeError, ValueError):
            amount = None
    if amount is None or amount < MIN_LOAN_AMOUNT or amount > MAX_LOAN_AMOUNT:
        raise errors.ValidationError(
            "Invalid amount. Must be between KES 1,000 and 50,000.",
            details={"amount": value, "min": MIN_LOAN_AMOUNT, "max": MAX_LOAN_AMOUNT},
        )
    return amount


def _check_patch(patch: dict[str, Any]) -> None:
    unknown = set(patch) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    if (
        patch.get("payment_status") == PaymentStatus.COMPLETED.value
        and patch.get("status") != LoanApplicationStatus.APPROVED.value
    ):
        raise ValueError("A completed payment must approve the application in the same update")


async def create_application(db: AsyncSession, fields: dict[str, Any]) -> LoanApplication:
    missing = _missing_fields(fields)
    if missing:
        raise errors.ValidationError("All fields are required", details={"missing": missing})
    amount = _parse_amount(fields["amount"])

    application = LoanApplication(
        first_name=fields["first_name"].strip(),
        last_name=fields["last_name"].strip(),
        email=fields["email"].strip(),
        phone=fields["phone"].strip(),
        amount=amount,
        purpose=fields["purpose"].strip(),
        payment_status=PaymentStatus.PENDING.value,
        payment_reference=None,
        status=LoanApplicationStatus.SUBMITTED.value,
    )
    db.add(application)
    await db.flush()
    return application


async def get_application(db: AsyncSession, application_id: str) -> LoanApplication | None:
    stmt = (
        select(LoanApplication)
        .where(LoanApplication.id == application_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def require_application(db: AsyncSession, application_id: str) -> LoanApplication:
    application = await get_application(db, application_id)
    if application is None:
        raise errors.NotFound(details={"application_id": application_id})
    return application


async def get_by_payment_reference(db: AsyncSession, payment_reference: str) -> LoanApplication | None:
    stmt = (
        select(LoanApplication)
        .where(LoanApplication.payment_reference == payment_reference)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_applications(
    db: AsyncSession,
    *,
    payment_status: PaymentStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[LoanApplication]:
    stmt = select(LoanApplication)
    if payment_status is not None:
        stmt = stmt.where(LoanApplication.payment_status == payment_status.value)
    stmt = stmt.order_by(LoanApplication.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_application(
    db: AsyncSession,
    application_id: str,
    patch: dict[str, Any],
    *,
    only_if: list[ColumnElement[bool]] | None = None,
) -> LoanApplication | None:
    """
    Apply ``patch`` as a single conditional UPDATE.

    ``only_if`` holds extra WHERE clauses evaluated atomically with the write.
    Returns the refreshed record, or ``None`` when no row matched (unknown id or
    a condition that no longer holds).
    """
    _check_patch(patch)
    stmt = (
        update(LoanApplication)
        .where(LoanApplication.id == application_id, *(only_if or []))
        .values(**patch)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        return None
    return await get_application(db, application_id)
