from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_checkout_request_id
from app.models.loan_application import LoanApplication
from app.schemas.loan import LoanApplicationStatus, PaymentStatus
from app.services import errors, loan_applications

logger = logging.getLogger("app.payments")

# Daraja reports a successful STK push with result code 0; any other code is a failure.
SUCCESS_RESULT_CODE = 0


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class ReconciliationResult:
    application_id: str
    outcome: ReconciliationOutcome
    payment_status: str
    status: str


def is_success(result_code: int) -> bool:
    return result_code == SUCCESS_RESULT_CODE


async def apply_callback_result(
    db: AsyncSession,
    checkout_request_id: str,
    result_code: int,
    result_description: str | None = None,
) -> ReconciliationResult:
    set_checkout_request_id(checkout_request_id)
    application = await loan_applications.get_by_payment_reference(db, checkout_request_id)
    if application is None:
        logger.warning("Application not found for CheckoutRequestID: %s", checkout_request_id)
        raise errors.UnknownCallback(details={"checkout_request_id": checkout_request_id})

    not_completed = LoanApplication.payment_status != PaymentStatus.COMPLETED.value
    if is_success(result_code):
        patch = {
            "payment_status": PaymentStatus.COMPLETED.value,
            "status": LoanApplicationStatus.APPROVED.value,
        }
        conditions = [not_completed]
    else:
        # A stale failure must not mark a newer attempt as failed.
        patch = {"payment_status": PaymentStatus.FAILED.value}
        conditions = [not_completed, LoanApplication.payment_reference == checkout_request_id]

    updated = await loan_applications.update_application(
        db, application.id, patch, only_if=conditions
    )
    if updated is None:
        current = await loan_applications.require_application(db, application.id)
        logger.info(
            "Ignoring duplicate callback for application %s (payment_status=%s, result_code=%s)",
            current.id,
            current.payment_status,
            result_code,
        )
        return ReconciliationResult(
            application_id=current.id,
            outcome=ReconciliationOutcome.DUPLICATE,
            payment_status=current.payment_status,
            status=current.status,
        )

    log_fields = {"application_id": updated.id, "result_code": result_code}
    if is_success(result_code):
        logger.info("Payment completed for application: %s", updated.id, extra=log_fields)
    else:
        logger.info(
            "Payment failed for application: %s, Reason: %s",
            updated.id,
            result_description,
            extra=log_fields,
        )
    return ReconciliationResult(
        application_id=updated.id,
        outcome=ReconciliationOutcome.APPLIED,
        payment_status=updated.payment_status,
        status=updated.status,
    )
