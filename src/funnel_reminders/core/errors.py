"""Exception hierarchy for the reminder service."""


class ConfigError(ValueError):
    """Configuration is invalid. Raised once, at startup."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid configuration:\n" + "\n".join(f"  - {p}" for p in problems))


class CalendarFetchError(RuntimeError):
    """Listing calendar events failed; the fetched window is indeterminate."""


class MessagingError(RuntimeError):
    """Base class for outbound message failures."""


class MessagingUnavailable(MessagingError):
    """The gateway was unreachable or rejected the request. Nothing was delivered."""


class DeliveryUnconfirmed(MessagingError):
    """The request may have been delivered but no confirmation came back."""


class LedgerError(RuntimeError):
    """Reading from or writing to the deduplication ledger failed."""
