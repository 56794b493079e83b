"""Domain models for distribution plans and their settlement."""

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Dict, Optional, Tuple


class AmountType(Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class AmountSpec:
    """Either a fixed smallest-unit amount or a percentage share of the total."""

    amount_type: AmountType
    fixed_amount: int = 0
    percentage: float = 0.0

    @staticmethod
    def fixed(amount: int) -> "AmountSpec":
        return AmountSpec(amount_type=AmountType.FIXED, fixed_amount=amount)

    @staticmethod
    def percent(percentage: float) -> "AmountSpec":
        return AmountSpec(amount_type=AmountType.PERCENTAGE, percentage=float(percentage))

    def raw_target(self, total_amount: int) -> int:
        """Undiscounted target before scaling to the net payable amount."""

        if self.amount_type == AmountType.FIXED:
            return self.fixed_amount
        # repr() is the shortest decimal that round-trips the float, so the
        # floor below is exact for percentages written as decimals.
        share = Fraction(repr(self.percentage))
        return int(total_amount * share // 100)


@dataclass(frozen=True)
class Beneficiary:
    recipient: str
    amount: AmountSpec


@dataclass(frozen=True)
class DistributionPlan:
    total_amount: int
    beneficiaries: Tuple[Beneficiary, ...]
    memo: Optional[str] = None


@dataclass(frozen=True)
class Payout:
    recipient: str
    amount: int


@dataclass(frozen=True)
class Settlement:
    gross_amount: int
    fee_amount: int
    net_amount: int
    payouts: Tuple[Payout, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "gross_amount": self.gross_amount,
            "fee_amount": self.fee_amount,
            "net_amount": self.net_amount,
            "payouts": [
                {"recipient": payout.recipient, "amount": payout.amount}
                for payout in self.payouts
            ],
        }
