"""Pass-through endpoints for the secondary Daraja operations.

Each handler forwards a request to the gateway and returns the provider's raw
response. Gateway errors surface through the shared exception handlers.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from app.api.deps import get_daraja_client
from app.core.limiter import limiter
from app.schemas.mpesa import (
    B2BPaymentRequest,
    B2CPaymentRequest,
    C2BRegisterUrlsRequest,
    C2BSimulateRequest,
    CallbackAck,
    GatewayPassThroughResponse,
    PullQueryRequest,
    PullRegisterRequest,
    ReverseTransactionRequest,
    StandingOrderRequest,
    TransactionStatusRequest,
)
from app.services.daraja import DarajaClient

logger = logging.getLogger("app.payments")

router = APIRouter(prefix="/api/mpesa", tags=["mpesa"])


@router.post("/b2c", response_model=GatewayPassThroughResponse, summary="Disburse a loan to a customer")
async def b2c_payment(
    payload: B2CPaymentRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.b2c_payment(payload.phone_number, payload.amount, payload.remarks)
    logger.info("B2C payment initiated: %s", data)
    return GatewayPassThroughResponse(message="Loan disbursement initiated successfully", data=data)


@router.post("/transaction-status", response_model=GatewayPassThroughResponse)
async def transaction_status(
    payload: TransactionStatusRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.transaction_status(payload.transaction_id)
    return GatewayPassThroughResponse(message="Transaction status query initiated", data=data)


@router.post("/account-balance", response_model=GatewayPassThroughResponse)
async def account_balance(
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.account_balance()
    return GatewayPassThroughResponse(message="Account balance query initiated", data=data)


@router.post("/reverse-transaction", response_model=GatewayPassThroughResponse)
async def reverse_transaction(
    payload: ReverseTransactionRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.reverse_transaction(
        payload.transaction_id, payload.amount, payload.receiver_party
    )
    return GatewayPassThroughResponse(message="Transaction reversal initiated", data=data)


@router.post("/standing-order", response_model=GatewayPassThroughResponse)
async def standing_order(
    payload: StandingOrderRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.create_standing_order(
        payload.phone_number,
        payload.amount,
        payload.frequency,
        payload.start_date,
        payload.end_date,
        payload.account_reference,
    )
    return GatewayPassThroughResponse(message="Standing order created successfully", data=data)


@router.post("/c2b/simulate", response_model=GatewayPassThroughResponse)
async def simulate_c2b(
    payload: C2BSimulateRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.simulate_c2b(
        payload.short_code, payload.amount, payload.msisdn, payload.bill_ref_number
    )
    logger.info("C2B payment simulated: %s", data)
    return GatewayPassThroughResponse(message="C2B payment simulated successfully", data=data)


@router.post("/c2b/register-urls", response_model=GatewayPassThroughResponse)
async def register_c2b_urls(
    payload: C2BRegisterUrlsRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.register_c2b_urls(
        payload.short_code, payload.response_type, payload.confirmation_url, payload.validation_url
    )
    logger.info("C2B URLs registered: %s", data)
    return GatewayPassThroughResponse(message="C2B URLs registered successfully", data=data)


@router.post("/pull/register", response_model=GatewayPassThroughResponse)
async def register_pull_transactions(
    payload: PullRegisterRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.register_pull_transactions(
        payload.short_code, payload.request_type, payload.nominated_number, payload.callback_url
    )
    logger.info("Pull transactions URL registered: %s", data)
    return GatewayPassThroughResponse(
        message="Pull transactions URL registered successfully", data=data
    )


@router.post("/pull/query", response_model=GatewayPassThroughResponse)
async def query_pull_transactions(
    payload: PullQueryRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.query_pull_transactions(
        payload.short_code, payload.start_date, payload.end_date, payload.off_set_value
    )
    return GatewayPassThroughResponse(message="Pull transactions query successful", data=data)


@router.post("/b2b", response_model=GatewayPassThroughResponse)
async def b2b_payment(
    payload: B2BPaymentRequest,
    gateway: DarajaClient = Depends(get_daraja_client),
) -> GatewayPassThroughResponse:
    data = await gateway.b2b_payment(
        {
            "Initiator": payload.initiator,
            "SecurityCredential": payload.security_credential,
            "CommandID": payload.command_id,
            "SenderIdentifierType": payload.sender_identifier_type,
            "RecieverIdentifierType": payload.reciever_identifier_type,
            "Amount": payload.amount,
            "PartyA": payload.party_a,
            "PartyB": payload.party_b,
            "AccountReference": payload.account_reference,
            "Remarks": payload.remarks,
            "QueueTimeOutURL": payload.queue_timeout_url,
            "ResultURL": payload.result_url,
        }
    )
    logger.info("B2B payment initiated: %s", data)
    return GatewayPassThroughResponse(message="B2B payment initiated successfully", data=data)


# Asynchronous result notifications for the initiator-based operations. The
# provider only needs an acknowledgement; payloads are logged for operators.
RESULT_NOTIFICATIONS = {
    "/b2c/result": "B2C result received",
    "/b2c/timeout": "B2C timeout received",
    "/status/result": "Transaction status result received",
    "/status/timeout": "Transaction status timeout received",
    "/balance/result": "Account balance result received",
    "/balance/timeout": "Account balance timeout received",
    "/reversal/result": "Reversal result received",
    "/reversal/timeout": "Reversal timeout received",
    "/standing-order/callback": "Standing order callback received",
}


def _notification_handler(path: str, message: str):
    async def _acknowledge(payload: dict[str, Any] | None = Body(default=None)) -> CallbackAck:
        logger.info("M-Pesa notification on %s: %s", path, payload or {})
        return CallbackAck(message=message)

    # slowapi keys exemptions on the qualified function name.
    _acknowledge.__name__ = "acknowledge_" + path.strip("/").replace("/", "_").replace("-", "_")
    return limiter.exempt(_acknowledge)


for _path, _message in RESULT_NOTIFICATIONS.items():
    router.add_api_route(
        _path,
        _notification_handler(_path, _message),
        methods=["POST"],
        response_model=CallbackAck,
    )
