"""Gate strategies, execute policies and gate decisions."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class GateStrategy(Enum):
    TIME = "time"
    PROOF = "proof"


class ExecutePolicy(Enum):
    PERMISSIONLESS = "permissionless"
    OWNER_ONLY = "owner_only"


@dataclass(frozen=True)
class GateDecision:
    strategy: GateStrategy
    passed: bool
    now: int
    elapsed: int
    reason: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "strategy": self.strategy.value,
            "passed": self.passed,
            "now": self.now,
            "elapsed": self.elapsed,
            "reason": self.reason,
        }
