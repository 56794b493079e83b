"""Transfer instructions and dry-run output."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class TransferInstruction:
    sequence: int
    source: str
    destination: str
    amount: int
    memo: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "sequence": self.sequence,
            "source": self.source,
            "destination": self.destination,
            "amount": self.amount,
            "memo": self.memo,
        }


@dataclass(frozen=True)
class DryRunTransferResult:
    sequence: int
    success: bool
    source_balance_after: int
    notes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DryRunResult:
    success: bool
    transfer_results: Tuple[DryRunTransferResult, ...]
    total_moved: int
    balances: Dict[str, int]
    notes: Tuple[str, ...] = ()
