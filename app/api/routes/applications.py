from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.loan import (
    LoanApplicationDTO,
    LoanApplicationSubmit,
    LoanApplicationSubmitResponse,
    PaymentStatus,
)
from app.services import errors, loan_applications

router = APIRouter(prefix="/api", tags=["applications"])


@router.post(
    "/submit-application",
    response_model=LoanApplicationSubmitResponse,
    summary="Submit a loan application",
)
async def submit_application(
    payload: LoanApplicationSubmit,
    db: AsyncSession = Depends(get_db),
) -> LoanApplicationSubmitResponse:
    try:
        application = await loan_applications.create_application(db, payload.model_dump())
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise errors.ServerError("Failed to submit application") from exc
    return LoanApplicationSubmitResponse(
        message="Application submitted successfully!",
        application_id=application.id,
    )


@router.get(
    "/applications",
    response_model=list[LoanApplicationDTO],
    summary="List loan applications",
)
async def list_applications(
    db: AsyncSession = Depends(get_db),
    payment_status: PaymentStatus | None = Query(default=None, alias="paymentStatus"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[LoanApplicationDTO]:
    applications = await loan_applications.list_applications(
        db, payment_status=payment_status, limit=limit, offset=offset
    )
    return [LoanApplicationDTO.model_validate(application) for application in applications]


@router.get(
    "/applications/{application_id}",
    response_model=LoanApplicationDTO,
    summary="Get a loan application and its payment status",
)
async def get_application(
    application_id: str,
    db: AsyncSession = Depends(get_db),
) -> LoanApplicationDTO:
    application = await loan_applications.require_application(db, application_id)
    return LoanApplicationDTO.model_validate(application)
