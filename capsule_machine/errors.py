"""Lifecycle and authorization errors raised by the capsule machine."""


class Unauthorized(PermissionError):
    """Raised when the caller does not control the required identity."""


class InvalidState(RuntimeError):
    """Raised when an operation is not legal in the current lifecycle state."""


class CapsuleActive(InvalidState):
    pass


class CapsuleInactive(InvalidState):
    pass


class CapsuleNotExecuted(InvalidState):
    pass


class CapsuleNotFound(InvalidState):
    pass


class CapsuleAlreadyExists(InvalidState):
    pass


class FeeConfigNotFound(InvalidState):
    pass


class FeeConfigAlreadyExists(InvalidState):
    pass


class InvalidInactivityPeriod(ValueError):
    """Raised when an inactivity period is not a positive number of seconds."""
