"""Completion events emitted after a lifecycle operation commits."""

from dataclasses import asdict, dataclass
from typing import Callable, Dict


@dataclass(frozen=True)
class CapsuleEvent:
    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"event": type(self).__name__}
        payload.update(asdict(self))
        return payload


EventSink = Callable[[CapsuleEvent], None]


@dataclass(frozen=True)
class CapsuleCreated(CapsuleEvent):
    capsule_id: str
    owner: str
    vault: str
    inactivity_period: int
    total_amount: int
    creation_fee: int
    created_at: int


@dataclass(frozen=True)
class IntentUpdated(CapsuleEvent):
    capsule_id: str
    owner: str
    updated_at: int


@dataclass(frozen=True)
class ActivityRecorded(CapsuleEvent):
    capsule_id: str
    owner: str
    last_activity: int


@dataclass(frozen=True)
class CapsuleDeactivated(CapsuleEvent):
    capsule_id: str
    owner: str
    deactivated_at: int


@dataclass(frozen=True)
class IntentExecuted(CapsuleEvent):
    capsule_id: str
    owner: str
    executed_at: int
    executor: str
    gross_amount: int
    fee_amount: int
    net_amount: int


@dataclass(frozen=True)
class CapsuleRecreated(CapsuleEvent):
    capsule_id: str
    owner: str
    inactivity_period: int
    total_amount: int
    recreated_at: int


@dataclass(frozen=True)
class FeeConfigInitialized(CapsuleEvent):
    authority: str
    fee_recipient: str
    creation_fee_fixed: int
    execution_fee_bps: int


@dataclass(frozen=True)
class FeeConfigUpdated(CapsuleEvent):
    authority: str
    fee_recipient: str
    creation_fee_fixed: int
    execution_fee_bps: int
