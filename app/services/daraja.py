"""Client for the Safaricom Daraja (M-Pesa) API.

The client is configured once from an explicit :class:`DarajaConfig` and never
reads application settings itself. Every operation fetches a fresh OAuth token;
tokens are not cached between calls.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from app.core.settings import Settings
from app.services import errors

logger = logging.getLogger("app.payments")

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"

OAUTH_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
B2C_PATH = "/mpesa/b2c/v1/paymentrequest"
TRANSACTION_STATUS_PATH = "/mpesa/transactionstatus/v1/query"
ACCOUNT_BALANCE_PATH = "/mpesa/accountbalance/v1/query"
REVERSAL_PATH = "/mpesa/reversal/v1/request"
STANDING_ORDER_PATH = "/standingorder/v1/createStandingOrderExternal"
C2B_SIMULATE_PATH = "/mpesa/c2b/v1/simulate"
C2B_REGISTER_PATH = "/mpesa/c2b/v1/registerurl"
PULL_REGISTER_PATH = "/pulltransactions/v1/register"
PULL_QUERY_PATH = "/pulltransactions/v1/query"
B2B_PATH = "/mpesa/b2b/v1/paymentrequest"

# Identifier type 4 is an organisation shortcode.
SHORTCODE_IDENTIFIER_TYPE = "4"


@dataclass(frozen=True)
class DarajaConfig:
    consumer_key: str
    consumer_secret: str
    business_shortcode: str
    passkey: str
    callback_url: str
    environment: str = "sandbox"
    public_base_url: str = ""
    initiator_name: str = ""
    security_credential: str = ""
    timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "DarajaConfig":
        return cls(
            consumer_key=settings.daraja_consumer_key,
            consumer_secret=settings.daraja_consumer_secret,
            business_shortcode=settings.daraja_business_shortcode,
            passkey=settings.daraja_passkey,
            callback_url=settings.daraja_callback_url,
            environment=settings.daraja_environment,
            public_base_url=settings.public_base_url.rstrip("/"),
            initiator_name=settings.b2c_initiator_name,
            security_credential=settings.security_credential,
            timeout_seconds=settings.daraja_timeout_seconds,
        )

    @property
    def api_base_url(self) -> str:
        if self.environment == "production":
            return PRODUCTION_BASE_URL
        return SANDBOX_BASE_URL

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}{path}"


@dataclass(frozen=True)
class StkPushResult:
    checkout_request_id: str
    merchant_request_id: str | None
    customer_message: str | None = None


def daraja_timestamp(now: datetime | None = None) -> str:
    """Return the ``YYYYMMDDHHMMSS`` timestamp the STK push password is bound to."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is not None:
        current = current.astimezone(timezone.utc)
    return current.strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    raw = f"{shortcode}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _basic_auth_header(consumer_key: str, consumer_secret: str) -> str:
    token = base64.b64encode(f"{consumer_key}:{consumer_secret}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def _rejection_reason(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return "Unknown error"
    if isinstance(payload, dict):
        return payload.get("errorMessage") or "Unknown error"
    return "Unknown error"


class DarajaClient:
    def __init__(self, config: DarajaConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.api_base_url,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )

    async def get_access_token(self) -> str:
        headers = {
            "Authorization": _basic_auth_header(self.config.consumer_key, self.config.consumer_secret)
        }
        try:
            async with self._client() as client:
                response = await client.get(OAUTH_PATH, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Daraja rejected credentials with status %s", exc.response.status_code)
            raise errors.AuthError(details={"status_code": exc.response.status_code}) from exc
        except httpx.TimeoutException as exc:
            logger.error("Daraja token request timed out")
            raise errors.AuthError("Access token request timed out") from exc
        except (httpx.RequestError, ValueError) as exc:
            logger.error("Error getting Daraja access token: %s", exc)
            raise errors.AuthError() from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise errors.AuthError("Access token missing from provider response")
        return token

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        token = await self.get_access_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            async with self._client() as client:
                response = await client.post(path, json=body, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            reason = _rejection_reason(exc.response)
            logger.error(
                "Daraja request to %s failed with status %s: %s",
                path,
                exc.response.status_code,
                reason,
            )
            raise errors.GatewayRejected(
                reason, details={"status_code": exc.response.status_code}
            ) from exc
        except httpx.TimeoutException as exc:
            logger.error("Daraja request to %s timed out", path)
            raise errors.GatewayTimeout() from exc
        except httpx.RequestError as exc:
            logger.error("Daraja request to %s failed: %s", path, exc)
            raise errors.GatewayNetworkError() from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise errors.GatewayNetworkError("Payment gateway returned a malformed response") from exc
        return payload if isinstance(payload, dict) else {"response": payload}

    async def initiate_stk_push(
        self,
        phone_number: str,
        amount: int,
        account_reference: str,
        transaction_desc: str,
        *,
        now: datetime | None = None,
    ) -> StkPushResult:
        timestamp = daraja_timestamp(now)
        shortcode = self.config.business_shortcode
        body = {
            "BusinessShortCode": shortcode,
            "Password": stk_password(shortcode, self.config.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone_number,
            "PartyB": shortcode,
            "PhoneNumber": phone_number,
            "CallBackURL": self.config.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": transaction_desc,
        }
        logger.info(
            "Initiating STK push for %s, amount: %s, reference: %s",
            phone_number,
            amount,
            account_reference,
        )
        payload = await self._post(STK_PUSH_PATH, body)
        checkout_request_id = payload.get("CheckoutRequestID")
        if not checkout_request_id:
            raise errors.GatewayRejected(
                payload.get("errorMessage") or payload.get("ResponseDescription") or "Unknown error"
            )
        logger.info("STK push initiated successfully: %s", checkout_request_id)
        return StkPushResult(
            checkout_request_id=checkout_request_id,
            merchant_request_id=payload.get("MerchantRequestID"),
            customer_message=payload.get("CustomerMessage"),
        )

    async def b2c_payment(self, phone_number: str, amount: int, remarks: str) -> dict[str, Any]:
        body = {
            "InitiatorName": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": "BusinessPayment",
            "Amount": amount,
            "PartyA": self.config.business_shortcode,
            "PartyB": phone_number,
            "Remarks": remarks,
            "QueueTimeOutURL": self.config.public_url("/api/mpesa/b2c/timeout"),
            "ResultURL": self.config.public_url("/api/mpesa/b2c/result"),
            "Occasion": "Loan Disbursement",
        }
        return await self._post(B2C_PATH, body)

    async def transaction_status(self, transaction_id: str) -> dict[str, Any]:
        body = {
            "Initiator": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": "TransactionStatusQuery",
            "TransactionID": transaction_id,
            "PartyA": self.config.business_shortcode,
            "IdentifierType": SHORTCODE_IDENTIFIER_TYPE,
            "ResultURL": self.config.public_url("/api/mpesa/status/result"),
            "QueueTimeOutURL": self.config.public_url("/api/mpesa/status/timeout"),
            "Remarks": "Transaction status check",
            "Occasion": "Status Query",
        }
        return await self._post(TRANSACTION_STATUS_PATH, body)

    async def account_balance(self) -> dict[str, Any]:
        body = {
            "Initiator": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": "AccountBalance",
            "PartyA": self.config.business_shortcode,
            "IdentifierType": SHORTCODE_IDENTIFIER_TYPE,
            "Remarks": "Account balance check",
            "QueueTimeOutURL": self.config.public_url("/api/mpesa/balance/timeout"),
            "ResultURL": self.config.public_url("/api/mpesa/balance/result"),
        }
        return await self._post(ACCOUNT_BALANCE_PATH, body)

    async def reverse_transaction(
        self, transaction_id: str, amount: int, receiver_party: str
    ) -> dict[str, Any]:
        body = {
            "Initiator": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": "TransactionReversal",
            "TransactionID": transaction_id,
            "Amount": amount,
            "ReceiverParty": receiver_party,
            "RecieverIdentifierType": SHORTCODE_IDENTIFIER_TYPE,
            "ResultURL": self.config.public_url("/api/mpesa/reversal/result"),
            "QueueTimeOutURL": self.config.public_url("/api/mpesa/reversal/timeout"),
            "Remarks": "Transaction reversal",
            "Occasion": "Reversal",
        }
        return await self._post(REVERSAL_PATH, body)

    async def create_standing_order(
        self,
        phone_number: str,
        amount: int,
        frequency: str,
        start_date: str,
        end_date: str,
        account_reference: str,
    ) -> dict[str, Any]:
        body = {
            "StandingOrderName": f"Loan Repayment - {account_reference}",
            "BusinessShortCode": self.config.business_shortcode,
            "TransactionType": "Standing Order Customer Pay Bill",
            "Amount": amount,
            "PartyA": phone_number,
            "ReceiverPartyIdentifierType": SHORTCODE_IDENTIFIER_TYPE,
            "CallBackURL": self.config.public_url("/api/mpesa/standing-order/callback"),
            "AccountReference": account_reference,
            "TransactionDesc": "Recurring loan repayment",
            "Frequency": frequency,
            "StartDate": start_date,
            "EndDate": end_date,
        }
        return await self._post(STANDING_ORDER_PATH, body)

    async def simulate_c2b(
        self, short_code: str, amount: int, msisdn: str, bill_ref_number: str
    ) -> dict[str, Any]:
        body = {
            "ShortCode": short_code,
            "CommandID": "CustomerPayBillOnline",
            "Amount": amount,
            "Msisdn": msisdn,
            "BillRefNumber": bill_ref_number,
        }
        return await self._post(C2B_SIMULATE_PATH, body)

    async def register_c2b_urls(
        self, short_code: str, response_type: str, confirmation_url: str, validation_url: str
    ) -> dict[str, Any]:
        body = {
            "ShortCode": short_code,
            "ResponseType": response_type,
            "ConfirmationURL": confirmation_url,
            "ValidationURL": validation_url,
        }
        return await self._post(C2B_REGISTER_PATH, body)

    async def register_pull_transactions(
        self, short_code: str, request_type: str, nominated_number: str, callback_url: str
    ) -> dict[str, Any]:
        body = {
            "ShortCode": short_code,
            "RequestType": request_type,
            "NominatedNumber": nominated_number,
            "CallBackURL": callback_url,
        }
        return await self._post(PULL_REGISTER_PATH, body)

    async def query_pull_transactions(
        self, short_code: str, start_date: str, end_date: str, offset_value: str = "0"
    ) -> dict[str, Any]:
        body = {
            "ShortCode": short_code,
            "StartDate": start_date,
            "EndDate": end_date,
            "OffSetValue": offset_value or "0",
        }
        return await self._post(PULL_QUERY_PATH, body)

    async def b2b_payment(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._post(B2B_PATH, body)
