"""Request and callback payloads for the M-Pesa (Daraja) endpoints.

Callback bodies keep the provider's PascalCase field names; request bodies
sent by our own clients use camelCase.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.loan import CamelModel


class StkCallback(BaseModel):
    model_config = ConfigDict(extra="allow")

    merchant_request_id: str | None = Field(default=None, alias="MerchantRequestID")
    checkout_request_id: str = Field(alias="CheckoutRequestID", min_length=1)
    result_code: int = Field(alias="ResultCode")
    result_desc: str | None = Field(default=None, alias="ResultDesc")
    callback_metadata: dict[str, Any] | None = Field(default=None, alias="CallbackMetadata")


class StkCallbackBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    stk_callback: StkCallback = Field(alias="stkCallback")


class StkCallbackEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    body: StkCallbackBody = Field(alias="Body")


class CallbackAck(BaseModel):
    message: str


class GatewayPassThroughResponse(BaseModel):
    success: bool = True
    message: str
    data: Any = None


class B2CPaymentRequest(CamelModel):
    phone_number: str = Field(min_length=1)
    amount: int = Field(gt=0)
    remarks: str = Field(min_length=1)


class TransactionStatusRequest(CamelModel):
    transaction_id: str = Field(min_length=1)


class ReverseTransactionRequest(CamelModel):
    transaction_id: str = Field(min_length=1)
    amount: int = Field(gt=0)
    receiver_party: str = Field(min_length=1)


class StandingOrderRequest(CamelModel):
    phone_number: str = Field(min_length=1)
    amount: int = Field(gt=0)
    frequency: str = Field(min_length=1)
    start_date: str = Field(min_length=1)
    end_date: str = Field(min_length=1)
    account_reference: str = Field(min_length=1)


class C2BSimulateRequest(CamelModel):
    short_code: str = Field(min_length=1)
    amount: int = Field(gt=0)
    msisdn: str = Field(min_length=1)
    bill_ref_number: str = Field(min_length=1)


class C2BRegisterUrlsRequest(CamelModel):
    short_code: str = Field(min_length=1)
    response_type: str = Field(min_length=1)
    confirmation_url: str = Field(min_length=1)
    validation_url: str = Field(min_length=1)


class PullRegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    short_code: str = Field(alias="shortCode", min_length=1)
    request_type: str = Field(alias="requestType", min_length=1)
    nominated_number: str = Field(alias="nominatedNumber", min_length=1)
    # The provider spells this one with an upper-case URL suffix.
    callback_url: str = Field(alias="callBackURL", min_length=1)


class PullQueryRequest(CamelModel):
    short_code: str = Field(min_length=1)
    start_date: str = Field(min_length=1)
    end_date: str = Field(min_length=1)
    off_set_value: str = "0"


class B2BPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    initiator: str = Field(min_length=1)
    security_credential: str = Field(alias="securityCredential", min_length=1)
    command_id: str = Field(alias="commandID", min_length=1)
    sender_identifier_type: str = Field(alias="senderIdentifierType", min_length=1)
    reciever_identifier_type: str = Field(alias="recieverIdentifierType", min_length=1)
    amount: int = Field(gt=0)
    party_a: str = Field(alias="partyA", min_length=1)
    party_b: str = Field(alias="partyB", min_length=1)
    account_reference: str = Field(alias="accountReference", min_length=1)
    remarks: str = Field(min_length=1)
    queue_timeout_url: str = Field(alias="queueTimeOutURL", min_length=1)
    result_url: str = Field(alias="resultURL", min_length=1)
