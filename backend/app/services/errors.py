"""Engine exception taxonomy.

Whole-operation failures (configuration, feed) propagate to the trigger caller.
Per-unit failures (malformed records) are caught and counted by batch loops.
"""


class EngineError(Exception):
    """Base class for engine failures."""


class FeedConfigurationError(EngineError):
    """Feed credentials or settings are missing; nothing was attempted."""


class FeedError(EngineError):
    """The feed could not be fetched or its body could not be decoded."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedRecordError(EngineError, ValueError):
    """A single feed record lacks identity or has an unparseable timestamp."""

    def __init__(self, message: str, external_id: str | None = None):
        super().__init__(message)
        self.external_id = external_id


class WagerRejectedError(EngineError, ValueError):
    """A wager failed validation and was not placed."""


class InsufficientBalanceError(WagerRejectedError):
    """The user's balance does not cover the stake."""


class LedgerIntegrityError(EngineError):
    """A settlement write did not reach every row it had to; the transaction aborts."""
