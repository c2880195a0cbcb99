"""
Error taxonomy shared by the MoneyVerse services.

Foreground operations raise these to their caller. Background work (price
refresh, order evaluation, login checks) catches them, logs and skips.
"""


class MoneyVerseError(Exception):
    """Base exception for MoneyVerse service errors."""
    pass


class InsufficientFundsError(MoneyVerseError):
    """Raised when a buy costs more than the available simulated cash."""

    def __init__(self, required: float, available: float):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient simulated cash: need {required:.2f}, have {available:.2f}"
        )


class InsufficientHoldingsError(MoneyVerseError):
    """Raised when a sell exceeds the owned quantity."""

    def __init__(self, symbol: str, requested: float, held: float):
        self.symbol = symbol
        self.requested = requested
        self.held = held
        super().__init__(
            f"Insufficient holdings of {symbol}: requested {requested:g}, held {held:g}"
        )


class PersistenceError(MoneyVerseError):
    """Raised when state could not be written; in-memory state is kept."""
    pass


class ProviderUnavailableError(MoneyVerseError):
    """Raised when a market data or AI content provider cannot be reached."""
    pass


class NotFoundError(MoneyVerseError):
    """Raised when a referenced entity does not exist."""
    pass


class QuizRequiredError(MoneyVerseError):
    """Raised when a learning quest is completed without a passing quiz."""
    pass
