"""Error hierarchy for the parking service.

Validation errors are raised before a command reaches the dispatcher, store
errors come out of the persistence layer, and the remaining ones belong to the
dispatcher/completion plumbing.
"""


class ParkingError(Exception):
    """Base error of the parking service."""
    pass


class CommandValidationError(ParkingError):
    """Malformed request data (shape, types, ranges)."""
    pass


class StoreError(ParkingError):
    """Failure reported by the store."""
    pass


class StoreNotInitializedError(StoreError):
    def __init__(self) -> None:
        super().__init__("Store has not been initialized")


class StoreConstraintError(StoreError):
    """Unique, foreign key or check constraint violated."""
    pass


class StoreUnavailableError(StoreError):
    """Connection lost or database otherwise unusable."""
    pass


class DispatcherNotRunningError(ParkingError):
    """Command submitted while the dispatcher is not accepting work."""
    pass


class CompletionTimeoutError(ParkingError):
    """Caller gave up waiting on a completion handle."""
    pass
