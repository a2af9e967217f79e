"""Typed errors raised by the marketplace core

Every failure that can cross into the HTTP layer is one of these. Services
translate storage exceptions into them where they happen, and the exception
handler registered in ``verdict.main`` renders them with their status code.
"""

from fastapi import status


class VerdictError(Exception):
    """Base class for all domain errors"""

    code = "VERDICT_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InsufficientCreditsError(VerdictError):
    code = "INSUFFICIENT_CREDITS"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Insufficient credits. Purchase more credits or earn them by judging."


class CannotJudgeOwnRequestError(VerdictError):
    code = "CANNOT_JUDGE_OWN_REQUEST"
    status_code = status.HTTP_409_CONFLICT
    default_message = "You cannot judge your own request"


class AlreadyJudgedError(VerdictError):
    code = "ALREADY_JUDGED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "You've already responded to this request"


class RequestAlreadyFilledError(VerdictError):
    code = "REQUEST_ALREADY_FILLED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This request just reached its limit"


class RequestClosedError(VerdictError):
    code = "REQUEST_CLOSED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Request is no longer accepting verdicts"


class InvalidTransitionError(VerdictError):
    code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Invalid status transition"


class RequestNotFoundError(VerdictError):
    code = "REQUEST_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Request not found"


class ProfileNotFoundError(VerdictError):
    code = "PROFILE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Profile not found. Please sign in again."


class NotAJudgeError(VerdictError):
    code = "NOT_A_JUDGE"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Must be a judge to submit verdicts"


class PermissionDeniedError(VerdictError):
    code = "PERMISSION_DENIED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to do that"


class InvalidAmountError(VerdictError):
    code = "INVALID_AMOUNT"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Amount must be positive"


class PayoutBelowMinimumError(VerdictError):
    code = "PAYOUT_BELOW_MINIMUM"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Available balance is below the minimum payout"


class PaymentsDisabledError(VerdictError):
    code = "PAYMENTS_DISABLED"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Payment functionality is disabled"


class ServiceUnavailableError(VerdictError):
    code = "SERVICE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "System temporarily unavailable. Please try again."


class StorageError(VerdictError):
    code = "STORAGE_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "A storage error occurred"
