from typing import Optional
from fastapi import HTTPException, status


class CBTException(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class CatalogNotFound(CBTException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Exam not found."


class AttemptNotFound(CBTException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Exam attempt not found."


class DuplicateAttempt(CBTException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "You have already attempted this exam."


class AttemptAlreadySubmitted(CBTException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This exam attempt has already been submitted."


class AttemptNotSubmitted(CBTException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Results are available only after the exam has been submitted."


class SessionNotActive(CBTException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "No active exam session. Start or resume the exam first."


class InvalidAttemptState(CBTException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Attempt progress does not match the exam."


class PersistenceFailure(CBTException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Your exam could not be submitted. Please try again."
