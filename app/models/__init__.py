from app.models.loan_application import LoanApplication

__all__ = [
    "LoanApplication",
]
