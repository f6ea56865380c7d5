"""Custom exception hierarchy for coop-loans."""


class CoopLoansError(Exception):
    """Base exception for all coop-loans errors."""


class EntityNotFoundError(CoopLoansError):
    """Raised when a referenced entity does not exist."""


class InvalidEntityStateError(CoopLoansError):
    """Raised when an entity is in an invalid state for the operation."""


class InvalidTransitionError(InvalidEntityStateError):
    """Raised when a loan status change is not allowed by the state machine."""


class PaymentAlreadyProcessedError(InvalidEntityStateError):
    """Raised when a payment is applied to an installment that is already paid."""


class LoanValidationError(CoopLoansError):
    """Raised when submitted input fails validation.

    ``errors`` maps each offending form field to a user-facing message.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in self.errors.items()))


class ApprovalLinkError(CoopLoansError):
    """Raised when a guarantor approval token cannot be acted on."""

    user_message = "Unable to process request"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


class InvalidApprovalLinkError(ApprovalLinkError):
    """The token does not match any approval, or its loan is gone."""

    user_message = "Invalid or expired approval link"


class AlreadyRespondedError(ApprovalLinkError):
    """The guarantor has already approved or rejected the request."""

    user_message = "You have already responded to this request"


class ApprovalExpiredError(ApprovalLinkError):
    """The approval request is past its expiry."""

    user_message = "This approval link has expired"


class AuthorizationError(CoopLoansError):
    """Raised when the session lacks the permission for an action."""


class StoreError(CoopLoansError):
    """Raised when the document store cannot complete a read or write."""


class DeliveryError(CoopLoansError):
    """Raised when an email or notification could not be delivered."""


class ConfigurationError(CoopLoansError):
    """Raised when configuration is invalid or missing."""


class SinkError(CoopLoansError):
    """Raised when a sink operation fails."""
