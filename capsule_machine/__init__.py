from .errors import (
    CapsuleActive,
    CapsuleAlreadyExists,
    CapsuleInactive,
    CapsuleNotExecuted,
    CapsuleNotFound,
    FeeConfigAlreadyExists,
    FeeConfigNotFound,
    InvalidInactivityPeriod,
    InvalidState,
    Unauthorized,
)
from .events import (
    ActivityRecorded,
    CapsuleCreated,
    CapsuleDeactivated,
    CapsuleEvent,
    CapsuleRecreated,
    FeeConfigInitialized,
    FeeConfigUpdated,
    IntentExecuted,
    IntentUpdated,
)
from .machine import CapsuleMachine, ExecutionPreview, ExecutionResult

__all__ = [
    "ActivityRecorded",
    "CapsuleActive",
    "CapsuleAlreadyExists",
    "CapsuleCreated",
    "CapsuleDeactivated",
    "CapsuleEvent",
    "CapsuleInactive",
    "CapsuleMachine",
    "CapsuleNotExecuted",
    "CapsuleNotFound",
    "CapsuleRecreated",
    "ExecutionPreview",
    "ExecutionResult",
    "FeeConfigAlreadyExists",
    "FeeConfigInitialized",
    "FeeConfigNotFound",
    "FeeConfigUpdated",
    "IntentExecuted",
    "IntentUpdated",
    "InvalidInactivityPeriod",
    "InvalidState",
    "Unauthorized",
]
