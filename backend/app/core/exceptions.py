"""
Error taxonomy and safe exception handling.

Domain failures are raised as WalletError (with a WalletErrorKind) inside the
services, returned as {"success": False, ...} results at the tool boundary,
and converted to HTTPExceptions with non-leaky messages at the API boundary.
"""
import logging
from enum import Enum

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class WalletErrorKind(str, Enum):
    """Every user-visible failure maps to exactly one kind."""
    NOT_REGISTERED = "NotRegistered"
    INVALID_ADDRESS = "InvalidAddress"
    SELF_TRANSFER = "SelfTransfer"
    INVALID_AMOUNT = "InvalidAmount"
    BELOW_MINIMUM = "BelowMinimum"
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    INSUFFICIENT_GAS_RESERVE = "InsufficientGasReserve"
    INSUFFICIENT_GAS_FOR_FEES = "InsufficientGasForFees"
    BALANCE_UNAVAILABLE = "BalanceUnavailable"
    TRANSFER_FAILED = "TransferFailed"
    NOT_FOUND = "NotFound"
    UNAUTHORIZED = "Unauthorized"
    VALIDATION_FAILED = "ValidationFailed"
    UNKNOWN = "Unknown"


class WalletError(Exception):
    """Domain error carrying a kind and a message that is safe to show the user."""

    def __init__(self, kind: WalletErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_result(self) -> dict:
        return {"success": False, "error": self.message, "errorKind": self.kind.value, "data": None}

    def __repr__(self):
        return f"<WalletError kind={self.kind.value} message={self.message!r}>"


class BusinessError:
    """HTTP exceptions with safe (non-leaky) messages."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        """
        Generic 404 that doesn't confirm resource existence.

        Example:
            if not link:
                raise BusinessError.not_found("Payment link")
        """
        if reason:
            logger.warning(f"Not found: {resource} - {reason}")

        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )

    @staticmethod
    def forbidden(reason: str = "") -> HTTPException:
        """Generic 403 for ownership issues."""
        logger.warning(f"Forbidden access: {reason}")
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )

    @staticmethod
    def bad_request(detail: str) -> HTTPException:
        """
        400 for input validation / business rule errors.

        OK to include specific details here since the caller caused the issue.
        """
        logger.info(f"Bad request: {detail}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )

    @staticmethod
    def conflict(detail: str) -> HTTPException:
        logger.info(f"Conflict: {detail}")
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )

    @staticmethod
    def server_error(original_error: Exception = None) -> HTTPException:
        """
        Generic 500 - logs actual error internally, hides from caller.
        """
        if original_error:
            logger.error(
                f"Internal server error: {type(original_error).__name__}: {str(original_error)}",
                exc_info=True
            )
        else:
            logger.error("Internal server error occurred", exc_info=True)

        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred. Please try again later.",
        )

    @staticmethod
    def from_wallet_error(err: WalletError) -> HTTPException:
        """Map a domain error onto the matching HTTP status."""
        if err.kind in (WalletErrorKind.NOT_FOUND, WalletErrorKind.NOT_REGISTERED):
            return BusinessError.not_found("Resource", reason=err.message)
        if err.kind == WalletErrorKind.UNAUTHORIZED:
            return BusinessError.forbidden(reason=err.message)
        if err.kind in (WalletErrorKind.TRANSFER_FAILED, WalletErrorKind.BALANCE_UNAVAILABLE):
            return BusinessError.server_error(err)
        return BusinessError.bad_request(err.message)
