"""Persistent record models for capsules, vaults and the fee configuration."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
import base64


class CapsuleState(Enum):
    ACTIVE = "ACTIVE"
    EXECUTED = "EXECUTED"
    DEACTIVATED = "DEACTIVATED"


@dataclass(frozen=True)
class Capsule:
    """A principal's locked intent and its lifecycle flags."""

    capsule_id: str
    owner: str
    inactivity_period: int  # seconds
    last_activity: int  # unix timestamp
    intent_data: bytes
    is_active: bool
    executed_at: Optional[int] = None

    def __post_init__(self) -> None:
        if self.is_active and self.executed_at is not None:
            raise ValueError("An active capsule cannot carry an execution timestamp.")

    @property
    def state(self) -> CapsuleState:
        if self.is_active:
            return CapsuleState.ACTIVE
        if self.executed_at is not None:
            return CapsuleState.EXECUTED
        return CapsuleState.DEACTIVATED

    def to_dict(self) -> Dict[str, object]:
        return {
            "capsule_id": self.capsule_id,
            "owner": self.owner,
            "inactivity_period": self.inactivity_period,
            "last_activity": self.last_activity,
            "intent_data": base64.b64encode(self.intent_data).decode("ascii"),
            "is_active": self.is_active,
            "executed_at": self.executed_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Capsule":
        executed_at = data.get("executed_at")
        return Capsule(
            capsule_id=data["capsule_id"],
            owner=data["owner"],
            inactivity_period=int(data["inactivity_period"]),
            last_activity=int(data["last_activity"]),
            intent_data=base64.b64decode(data["intent_data"].encode("ascii")),
            is_active=bool(data["is_active"]),
            executed_at=int(executed_at) if executed_at is not None else None,
        )


@dataclass(frozen=True)
class Vault:
    """Custody record; the balance itself lives in the ledger under address."""

    address: str
    owner: str

    def to_dict(self) -> Dict[str, str]:
        return {"address": self.address, "owner": self.owner}

    @staticmethod
    def from_dict(data: Dict[str, str]) -> "Vault":
        return Vault(address=data["address"], owner=data["owner"])


@dataclass(frozen=True)
class FeeConfig:
    authority: str
    fee_recipient: str
    creation_fee_fixed: int
    execution_fee_bps: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "authority": self.authority,
            "fee_recipient": self.fee_recipient,
            "creation_fee_fixed": self.creation_fee_fixed,
            "execution_fee_bps": self.execution_fee_bps,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "FeeConfig":
        return FeeConfig(
            authority=data["authority"],
            fee_recipient=data["fee_recipient"],
            creation_fee_fixed=int(data["creation_fee_fixed"]),
            execution_fee_bps=int(data["execution_fee_bps"]),
        )
