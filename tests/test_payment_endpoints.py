import pytest
from sqlalchemy.exc import OperationalError

from app.services import errors, loan_applications
from tests.conftest import create_committed_application, load_application

SUBMISSION = {
    "firstName": "Ann",
    "lastName": "Doe",
    "email": "a@x.com",
    "phone": "712345678",
    "amount": 5000,
    "purpose": "school",
}


def _callback(checkout_request_id, result_code, result_desc="The service request is processed successfully."):
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": result_code,
                "ResultDesc": result_desc,
            }
        }
    }


@pytest.mark.asyncio
async def test_submit_initiate_and_confirm_payment(client, gateway, session_factory):
    submitted = await client.post("/api/submit-application", json=SUBMISSION)
    assert submitted.status_code == 200
    body = submitted.json()
    assert body["message"] == "Application submitted successfully!"
    application_id = body["applicationId"]

    initiated = await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "712345678"}
    )
    assert initiated.status_code == 200
    payload = initiated.json()
    assert payload["success"] is True
    assert payload["message"] == (
        "Payment initiated successfully. Please check your phone for M-Pesa prompt."
    )
    assert payload["data"] == {
        "checkoutRequestId": "ws_CO_000001",
        "merchantRequestId": "29115-1",
        "amount": 5000,
        "phoneNumber": "712345678",
    }
    assert gateway.pushes[0]["phone_number"] == "254712345678"
    assert gateway.pushes[0]["amount"] == 5000

    pending = await client.get(f"/api/applications/{application_id}")
    assert pending.json()["paymentStatus"] == "pending"
    assert pending.json()["paymentReference"] == "ws_CO_000001"

    confirmed = await client.post("/api/mpesa/callback", json=_callback("ws_CO_000001", 0))
    assert confirmed.status_code == 200
    assert confirmed.json() == {"message": "Callback processed successfully"}

    record = await client.get(f"/api/applications/{application_id}")
    assert record.status_code == 200
    assert record.json()["paymentStatus"] == "completed"
    assert record.json()["status"] == "approved"


@pytest.mark.asyncio
async def test_submit_rejects_missing_field(client):
    payload = dict(SUBMISSION)
    payload.pop("purpose")
    response = await client.post("/api/submit-application", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [999, 50001])
async def test_submit_rejects_amount_out_of_range(client, amount):
    response = await client.post("/api/submit-application", json={**SUBMISSION, "amount": amount})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid amount. Must be between KES 1,000 and 50,000."


@pytest.mark.asyncio
async def test_submit_store_failure_returns_server_error(client, monkeypatch):
    async def _broken(db, fields):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(loan_applications, "create_application", _broken)
    response = await client.post("/api/submit-application", json=SUBMISSION)
    assert response.status_code == 500
    assert response.json()["message"] == "Failed to submit application"


@pytest.mark.asyncio
async def test_initiate_rejects_invalid_phone_without_gateway_call(client, gateway, session_factory):
    application_id = await create_committed_application(session_factory)
    response = await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "12345"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_phone"
    assert gateway.pushes == []


@pytest.mark.asyncio
async def test_initiate_requires_both_fields(client):
    response = await client.post("/initiate-payment", json={"applicationId": "abc"})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_initiate_unknown_application_returns_404(client, gateway):
    response = await client.post(
        "/initiate-payment", json={"applicationId": "missing", "phoneNumber": "712345678"}
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Loan application not found."
    assert gateway.pushes == []


@pytest.mark.asyncio
async def test_initiate_already_paid_returns_400(client, gateway, session_factory):
    application_id = await create_committed_application(session_factory)
    async with session_factory() as session:
        await loan_applications.update_application(
            session, application_id, {"payment_status": "completed", "status": "approved"}
        )
        await session.commit()

    response = await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "712345678"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "already_paid"
    assert gateway.pushes == []


@pytest.mark.asyncio
async def test_initiate_gateway_timeout_returns_408(client, gateway, session_factory):
    application_id = await create_committed_application(session_factory)
    gateway.error = errors.GatewayTimeout()

    response = await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "712345678"}
    )
    assert response.status_code == 408
    assert response.json()["message"] == "Payment request timed out. Please try again."
    stored = await load_application(session_factory, application_id)
    assert stored.payment_reference is None


@pytest.mark.asyncio
async def test_initiate_gateway_rejection_returns_400_with_reason(client, gateway, session_factory):
    application_id = await create_committed_application(session_factory)
    gateway.error = errors.GatewayRejected("Bad Request - Invalid PhoneNumber")

    response = await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "712345678"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Payment initiation failed: Bad Request - Invalid PhoneNumber"


@pytest.mark.asyncio
async def test_initiate_gateway_auth_failure_returns_500(client, gateway, session_factory):
    application_id = await create_committed_application(session_factory)
    gateway.error = errors.AuthError()

    response = await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "712345678"}
    )
    assert response.status_code == 500
    assert response.json()["error"] == "server_error"


@pytest.mark.asyncio
async def test_failed_callback_then_retry(client, session_factory):
    application_id = await create_committed_application(session_factory)
    await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "712345678"}
    )

    failed = await client.post(
        "/api/mpesa/callback", json=_callback("ws_CO_000001", 1032, "Request cancelled by user")
    )
    assert failed.status_code == 200
    stored = await load_application(session_factory, application_id)
    assert stored.payment_status == "failed"
    assert stored.status == "submitted"

    retried = await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "254712345678"}
    )
    assert retried.status_code == 200
    await client.post("/api/mpesa/callback", json=_callback("ws_CO_000002", 0))

    stored = await load_application(session_factory, application_id)
    assert stored.payment_status == "completed"
    assert stored.status == "approved"


@pytest.mark.asyncio
async def test_duplicate_callback_is_acknowledged_without_change(client, session_factory):
    application_id = await create_committed_application(session_factory)
    await client.post(
        "/initiate-payment", json={"applicationId": application_id, "phoneNumber": "712345678"}
    )
    await client.post("/api/mpesa/callback", json=_callback("ws_CO_000001", 0))

    repeat = await client.post("/api/mpesa/callback", json=_callback("ws_CO_000001", 1))
    assert repeat.status_code == 200
    assert repeat.json() == {"message": "Callback already processed"}
    stored = await load_application(session_factory, application_id)
    assert stored.payment_status == "completed"
    assert stored.status == "approved"


@pytest.mark.asyncio
async def test_callback_for_unknown_checkout_returns_404(client):
    response = await client.post("/api/mpesa/callback", json=_callback("ws_CO_unknown", 0))
    assert response.status_code == 404
    assert response.json()["error"] == "unknown_callback"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"Body": {}},
        {"Body": {"stkCallback": {"ResultCode": 0}}},
        {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1"}}},
    ],
)
async def test_callback_with_invalid_shape_returns_400(client, body):
    response = await client.post("/api/mpesa/callback", json=body)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_applications_filters_by_payment_status(client, session_factory):
    first = await create_committed_application(session_factory, first_name="First")
    await create_committed_application(session_factory, first_name="Second")
    async with session_factory() as session:
        await loan_applications.update_application(
            session, first, {"payment_status": "failed"}
        )
        await session.commit()

    everything = await client.get("/api/applications")
    failed = await client.get("/api/applications", params={"paymentStatus": "failed"})
    assert len(everything.json()) == 2
    assert [item["id"] for item in failed.json()] == [first]


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {
        "error": "not_found",
        "message": "The requested resource does not exist.",
        "details": {},
    }


@pytest.mark.asyncio
async def test_responses_carry_request_id_and_security_headers(client):
    response = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["x-request-id"] == "req-123"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert "content-security-policy" in response.headers
