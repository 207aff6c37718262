class StoreError(ValueError):
    """Base class for user-visible marketplace errors."""


class StoreValidationError(StoreError):
    pass


class StoreNotFoundError(StoreError):
    pass


class StorePermissionError(StoreError):
    pass


class StoreConflictError(StoreError):
    pass


class InvalidTransitionError(StoreConflictError):
    """Raised when an appointment action is not legal from its current status."""
