"""
Typed failure reasons raised by the staking engine.

Every rejected operation surfaces one of these to its caller. None of
them is retried inside the engine.
"""


class StakingError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidAmount(StakingError):
    """Raised when a stake amount is non-positive or below the minimum stake."""
    pass


class PoolClosed(StakingError):
    """Raised when a stake is attempted on a pool that is no longer active."""
    pass


class AlreadySettled(StakingError):
    """Raised when a pool or news item is resolved a second time."""
    pass


class EmptyPool(StakingError):
    """Raised when settling a pool with no stake on either side."""
    pass


class UnknownPool(StakingError):
    """Raised when a pool id is not present in the ledger."""
    pass


class UnknownNews(StakingError):
    """Raised when a news id is not present in the registry."""
    pass


class NewsClosed(StakingError):
    """Raised when a pool is opened on a news item that is already resolved."""
    pass


class ResolutionTooEarly(StakingError):
    """Raised when a news item is resolved before its end time without emergency override."""
    pass


class InvalidRecord(StakingError):
    """Raised when a record fails schema validation."""
    pass


class JournalError(StakingError):
    """Raised when journal operations fail."""
    pass
