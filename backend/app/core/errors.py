"""Error Hierarchy — typed, categorized exceptions for every PasaTanda failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - User-actionable errors (wallet, trustline, onboarding) are WARNING severity:
      the payer retries from the last stable state
    - Data-integrity and server errors are ERROR; configuration errors are CRITICAL
    - to_response() produces the REST envelope; message is always human-readable

Design Decisions:
    - Single hierarchy with PasaTandaError base: FastAPI global handler catches all
    - ErrorContext as dataclass: order/phone/stage travel with the error for logging
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    WALLET = "wallet"
    LEDGER = "ledger"
    DATA_INTEGRITY = "data_integrity"
    RESOURCE_NOT_FOUND = "resource_not_found"
    EXTERNAL_API = "external_api"
    DATABASE = "database"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    order_id: str | None = None
    phone: str | None = None
    stage: int | None = None
    debug_info: dict[str, Any] | None = None


class PasaTandaError(Exception):
    """Base exception for all PasaTanda errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        """True when the payer can retry the same step without new order state."""
        return self.severity in (ErrorSeverity.INFO, ErrorSeverity.WARNING)

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "order_id": self.context.order_id,
                    "phone": self.context.phone,
                    "stage": self.context.stage,
                },
            }
        }


# ─── Configuration ──────────────────────────────────────────────

class ConfigMissingError(PasaTandaError):
    """A required endpoint URL or setting is unset."""
    def __init__(self, setting: str, context: ErrorContext | None = None):
        super().__init__(
            f"Set {setting.upper()} to continue.",
            "CONFIG_MISSING", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.setting = setting


# ─── Wallet (user-actionable) ───────────────────────────────────

class WalletUnavailableError(PasaTandaError):
    """No compatible wallet answered the connection prompt."""
    def __init__(self, message: str = "Could not connect a wallet.", context: ErrorContext | None = None):
        super().__init__(
            message, "WALLET_UNAVAILABLE", ErrorCategory.WALLET,
            ErrorSeverity.WARNING, context, 409,
        )


class SignatureRejectedError(PasaTandaError):
    """The wallet declined or failed to sign the transaction."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Transaction signature rejected: {reason}",
            "SIGNATURE_REJECTED", ErrorCategory.WALLET,
            ErrorSeverity.WARNING, context, 409,
        )
        self.reason = reason


# ─── Trustline (user-actionable) ────────────────────────────────

class TrustlineMissingError(PasaTandaError):
    """The account does not trust the settlement asset."""
    def __init__(self, asset_code: str, address: str, context: ErrorContext | None = None):
        super().__init__(
            f"Account {address} has no trustline for {asset_code}.",
            "TRUSTLINE_MISSING", ErrorCategory.LEDGER,
            ErrorSeverity.WARNING, context, 409,
        )
        self.asset_code = asset_code
        self.address = address


class TrustlineSubmissionFailedError(PasaTandaError):
    """Building, signing or submitting the trustline transaction failed."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Could not add trustline: {reason}",
            "TRUSTLINE_SUBMISSION_FAILED", ErrorCategory.LEDGER,
            ErrorSeverity.WARNING, context, 502,
        )
        self.reason = reason


class LedgerUnavailableError(PasaTandaError):
    """Horizon could not be reached or answered with an error."""
    def __init__(self, message: str, status_code: int | None = None, context: ErrorContext | None = None):
        super().__init__(
            f"Ledger request failed: {message}",
            "LEDGER_UNAVAILABLE", ErrorCategory.LEDGER,
            ErrorSeverity.ERROR, context, 503,
        )
        self.status_code = status_code


# ─── Data integrity (not retryable without a new order state) ───

class NoChallengeAvailableError(PasaTandaError):
    """The order exposes neither payment requirements nor an XDR challenge."""
    def __init__(self, order_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(order_id=order_id)
        super().__init__(
            f"Order '{order_id}' has no challenge available to sign.",
            "NO_CHALLENGE_AVAILABLE", ErrorCategory.DATA_INTEGRITY,
            ErrorSeverity.ERROR, ctx, 422,
        )


class InvalidPaymentRequirementsError(PasaTandaError):
    """paymentRequirements lacks a field needed to build the payment."""
    def __init__(self, field: str, context: ErrorContext | None = None):
        super().__init__(
            f"Payment requirements are missing '{field}'.",
            "INVALID_PAYMENT_REQUIREMENTS", ErrorCategory.DATA_INTEGRITY,
            ErrorSeverity.ERROR, context, 422,
        )
        self.field = field


class MalformedHeaderError(PasaTandaError):
    """An X-PAYMENT header could not be decoded."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Malformed X-PAYMENT header: {reason}",
            "MALFORMED_HEADER", ErrorCategory.DATA_INTEGRITY,
            ErrorSeverity.ERROR, context, 400,
        )
        self.reason = reason


# ─── Order service (caller may retry the whole step) ────────────

class OrderNotFoundError(PasaTandaError):
    """The order service has no order with this id."""
    def __init__(self, order_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(order_id=order_id)
        super().__init__(
            f"Order '{order_id}' not found",
            "ORDER_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx, 404,
        )


class OrderFetchFailedError(PasaTandaError):
    """Network or server failure while loading an order."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "ORDER_FETCH_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )


class ClaimRejectedByServerError(PasaTandaError):
    """The order service refused a claim; message is the server's."""
    def __init__(self, message: str, status_code: int | None = None, context: ErrorContext | None = None):
        super().__init__(
            message, "CLAIM_REJECTED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )
        self.status_code = status_code


class ClaimInProgressError(PasaTandaError):
    """A claim for this order is already in flight."""
    def __init__(self, order_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(order_id=order_id)
        super().__init__(
            f"A claim for order '{order_id}' is already being submitted.",
            "CLAIM_IN_PROGRESS", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 409,
        )


# ─── Onboarding ─────────────────────────────────────────────────

class CodeRequestFailedError(PasaTandaError):
    """The onboarding service could not generate a verification code."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CODE_REQUEST_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING, context, 502,
        )


class VerificationTimeoutError(PasaTandaError):
    """No webhook confirmation arrived within the maximum wait."""
    def __init__(self, phone: str, waited_seconds: float, context: ErrorContext | None = None):
        ctx = context or ErrorContext(phone=phone, stage=4)
        super().__init__(
            f"Phone {phone} was not verified after {int(waited_seconds)}s.",
            "VERIFICATION_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.WARNING, ctx, 408,
        )


class GroupCreationFailedError(PasaTandaError):
    """The onboarding service refused to create the group."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "GROUP_CREATION_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING, context, 502,
        )


class StageGuardFailedError(PasaTandaError):
    """Forward navigation attempted before the stage guard is satisfied."""
    def __init__(self, stage: int, reason: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(stage=stage)
        super().__init__(
            reason, "STAGE_GUARD_FAILED", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, ctx, 400,
        )


class InvalidStageTransitionError(PasaTandaError):
    """A transition the state machine does not allow."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_TRANSITION", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure ─────────────────────────────────────────────

class DatabaseError(PasaTandaError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
