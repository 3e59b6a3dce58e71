class BookingError(RuntimeError):
    """Base class for every failure the reconciliation pipeline reports."""
    pass


class InvalidInput(BookingError):
    """Raised when a booking intent fails validation. No side effects happened."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__("Validation failed")
        self.errors = errors


class DuplicateToken(BookingError):
    """Raised when a draft token collides with a live or recently finished draft."""
    pass


class InvalidTransition(BookingError):
    """Raised when a draft status change would move backwards or skip the state machine."""
    pass


class GatewayError(BookingError):
    """Raised when the payment gateway is unreachable or answers with an error."""
    pass


class VerificationFailed(BookingError):
    """Raised when a gateway callback cannot be authenticated or does not match the draft."""
    pass


class OrphanCallback(BookingError):
    """Raised when a verified callback references a token with no stored draft."""
    pass


class SlotUnavailable(BookingError):
    """Raised when the calendar slot was taken by a concurrent reservation."""
    pass


class AdapterError(BookingError):
    """Raised when the calendar service fails for reasons other than a slot conflict."""
    pass


class DispatchError(BookingError):
    """Raised when a notification could not be delivered."""
    pass


class BookingNotFound(BookingError):
    """Raised when no confirmed booking exists for a token."""
    pass
