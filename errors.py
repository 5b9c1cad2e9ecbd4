"""
Error taxonomy shared by the canonicalizer, resolvers and parameter-set cache.

HTTP mapping (see main.py):
  InvalidInput        -> 400
  NotFound            -> 404
  StoreUnavailable    -> 503
TransactionConflict never reaches a client; it is retried and, once the
retries are exhausted, surfaced as StoreUnavailable.
"""


class ParamCacheError(Exception):
    pass


class InvalidInput(ParamCacheError, ValueError):
    """A malformed or out-of-range request field."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class UnknownCapacityPreset(InvalidInput):
    def __init__(self, capacity_name: str):
        super().__init__(
            f"capacity_name '{capacity_name}' not found in capacity_settings. Send 'off' or seed it first.",
            field="capacity_settings.capacity_name",
        )
        self.capacity_name = capacity_name


class NotFound(ParamCacheError):
    pass


class TransactionConflict(ParamCacheError):
    """Transient store conflict (busy/locked database, concurrent insert)."""


class StoreUnavailable(ParamCacheError):
    pass
