import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_daraja_client
from app.core.limiter import limiter
from app.db.session import get_db
from app.schemas.loan import InitiatePaymentData, InitiatePaymentRequest, InitiatePaymentResponse
from app.schemas.mpesa import CallbackAck, StkCallbackEnvelope
from app.services import payments, reconciliation
from app.services.daraja import DarajaClient

logger = logging.getLogger("app.payments")

router = APIRouter(tags=["payments"])


@router.post(
    "/initiate-payment",
    response_model=InitiatePaymentResponse,
    summary="Send an M-Pesa STK push for a loan application's fee",
)
async def initiate_payment(
    payload: InitiatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: DarajaClient = Depends(get_daraja_client),
) -> InitiatePaymentResponse:
    initiation = await payments.initiate_payment(
        db, gateway, payload.application_id, payload.phone_number
    )
    await db.commit()
    return InitiatePaymentResponse(
        message="Payment initiated successfully. Please check your phone for M-Pesa prompt.",
        success=True,
        data=InitiatePaymentData(
            checkout_request_id=initiation.checkout_request_id,
            merchant_request_id=initiation.merchant_request_id,
            amount=initiation.amount,
            phone_number=payload.phone_number,
        ),
    )


@router.post(
    "/api/mpesa/callback",
    response_model=CallbackAck,
    summary="Receive STK push results from M-Pesa",
)
@limiter.exempt
async def mpesa_callback(
    payload: StkCallbackEnvelope,
    db: AsyncSession = Depends(get_db),
) -> CallbackAck:
    callback = payload.body.stk_callback
    logger.info(
        "M-Pesa callback received for %s with result code %s",
        callback.checkout_request_id,
        callback.result_code,
    )
    result = await reconciliation.apply_callback_result(
        db,
        callback.checkout_request_id,
        callback.result_code,
        callback.result_desc,
    )
    await db.commit()
    if result.outcome == reconciliation.ReconciliationOutcome.DUPLICATE:
        return CallbackAck(message="Callback already processed")
    return CallbackAck(message="Callback processed successfully")
