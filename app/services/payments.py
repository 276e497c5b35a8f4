from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_checkout_request_id
from app.models.loan_application import LoanApplication
from app.schemas.loan import PaymentStatus
from app.services import errors, loan_applications
from app.services.daraja import DarajaClient

logger = logging.getLogger("app.payments")

COUNTRY_PREFIX = "254"
_LOCAL_NUMBER = re.compile(r"[0-9]{9}")
_INTERNATIONAL_NUMBER = re.compile(r"254[0-9]{9}")


@dataclass(frozen=True)
class PaymentInitiation:
    application_id: str
    checkout_request_id: str
    merchant_request_id: str | None
    amount: int
    phone_number: str


def normalize_phone(raw_phone: str) -> str:
    """Return the ``254XXXXXXXXX`` form of a Kenyan mobile number or raise ``InvalidPhone``."""
    if _LOCAL_NUMBER.fullmatch(raw_phone):
        return f"{COUNTRY_PREFIX}{raw_phone}"
    if _INTERNATIONAL_NUMBER.fullmatch(raw_phone):
        return raw_phone
    raise errors.InvalidPhone(details={"phone_number": raw_phone})


def account_reference(application_id: str) -> str:
    return f"LA{application_id[-8:]}"


def transaction_description(application: LoanApplication) -> str:
    return f"Empowerment Loan - {application.first_name} {application.last_name}"


async def initiate_payment(
    db: AsyncSession,
    gateway: DarajaClient,
    application_id: str,
    raw_phone: str,
) -> PaymentInitiation:
    application = await loan_applications.require_application(db, application_id)
    if application.payment_status == PaymentStatus.COMPLETED.value:
        raise errors.AlreadyPaid(details={"application_id": application_id})

    phone_number = normalize_phone(raw_phone)
    previous_reference = application.payment_reference
    amount = application.amount
    reference = account_reference(application.id)
    description = transaction_description(application)

    # Release the pooled connection while the push is in flight; the
    # compare-and-set below opens a fresh transaction.
    await db.rollback()

    try:
        push = await gateway.initiate_stk_push(phone_number, amount, reference, description)
    except errors.GatewayTimeout as exc:
        raise errors.RequestTimeout() from exc
    except errors.GatewayRejected as exc:
        raise errors.PaymentInitiationFailed(exc.reason, details=exc.details) from exc
    except errors.GatewayError as exc:
        logger.error("Payment initiation failed for application %s: %s", application_id, exc)
        raise errors.ServerError() from exc

    set_checkout_request_id(push.checkout_request_id)

    # Compare-and-set against the reference observed before the gateway call so
    # two concurrent initiations cannot both claim the record.
    if previous_reference is None:
        reference_unchanged = LoanApplication.payment_reference.is_(None)
    else:
        reference_unchanged = LoanApplication.payment_reference == previous_reference
    updated = await loan_applications.update_application(
        db,
        application_id,
        {"payment_reference": push.checkout_request_id},
        only_if=[
            LoanApplication.payment_status != PaymentStatus.COMPLETED.value,
            reference_unchanged,
        ],
    )
    if updated is None:
        current = await loan_applications.require_application(db, application_id)
        if current.payment_status == PaymentStatus.COMPLETED.value:
            raise errors.AlreadyPaid(details={"application_id": application_id})
        logger.warning(
            "Payment reference for application %s changed during initiation; discarding %s",
            application_id,
            push.checkout_request_id,
        )
        raise errors.PaymentConflict(details={"application_id": application_id})

    logger.info(
        "Payment pending for application %s with checkout request %s: %s",
        application_id,
        push.checkout_request_id,
        push.customer_message or "-",
        extra={"application_id": application_id, "amount": amount},
    )
    return PaymentInitiation(
        application_id=application_id,
        checkout_request_id=push.checkout_request_id,
        merchant_request_id=push.merchant_request_id,
        amount=amount,
        phone_number=phone_number,
    )
