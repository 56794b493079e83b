"""Deterministic payout computation with exact remainder assignment."""

from typing import Callable, List, Optional, Tuple

from capsule_ledger.models import FeeConfig

from .amounts import ArithmeticOverflow, checked_mul_div
from .fees import execution_fee
from .models import DistributionPlan, Payout, Settlement


class UnknownBeneficiary(LookupError):
    """Raised when a recipient does not resolve to a known account."""


class SettlementValidationError(ValueError):
    """Raised when a settlement violates conservation rules."""


def compute_payouts(
    net_amount: int,
    plan: DistributionPlan,
    resolver: Optional[Callable[[str], bool]] = None,
) -> Tuple[Payout, ...]:
    """Split net_amount across the plan's beneficiaries.

    Every beneficiary but the last receives its raw target scaled by
    net_amount / total_amount, rounded down. The last one in declaration
    order receives whatever is left, so the payouts always sum to exactly
    net_amount. Zero payouts are dropped. When a resolver is supplied every
    recipient must resolve, otherwise nothing is paid.
    """

    if net_amount < 0:
        raise ArithmeticOverflow("Net amount cannot be negative.")
    if not plan.beneficiaries:
        raise SettlementValidationError("Plan has no beneficiaries.")

    if resolver is not None:
        for beneficiary in plan.beneficiaries:
            if not resolver(beneficiary.recipient):
                raise UnknownBeneficiary(f"Unknown beneficiary: {beneficiary.recipient}")

    amounts: List[int] = []
    for beneficiary in plan.beneficiaries[:-1]:
        raw_target = beneficiary.amount.raw_target(plan.total_amount)
        amounts.append(checked_mul_div(raw_target, net_amount, plan.total_amount))

    remainder = net_amount - sum(amounts)
    if remainder < 0:
        raise ArithmeticOverflow("Beneficiary allocations exceed the net amount.")
    amounts.append(remainder)

    return tuple(
        Payout(recipient=beneficiary.recipient, amount=amount)
        for beneficiary, amount in zip(plan.beneficiaries, amounts)
        if amount > 0
    )


def settle(
    gross_amount: int,
    plan: DistributionPlan,
    fee_config: Optional[FeeConfig],
    resolver: Optional[Callable[[str], bool]] = None,
) -> Settlement:
    fee_amount = execution_fee(gross_amount, fee_config)
    net_amount = gross_amount - fee_amount
    settlement = Settlement(
        gross_amount=gross_amount,
        fee_amount=fee_amount,
        net_amount=net_amount,
        payouts=compute_payouts(net_amount, plan, resolver),
    )
    validate_settlement(settlement)
    return settlement


def validate_settlement(settlement: Settlement) -> None:
    if settlement.fee_amount < 0 or settlement.net_amount < 0:
        raise SettlementValidationError("Fee and net amounts must be non-negative.")
    if settlement.fee_amount + settlement.net_amount != settlement.gross_amount:
        raise SettlementValidationError("Fee plus net must equal the gross amount.")
    if any(payout.amount <= 0 for payout in settlement.payouts):
        raise SettlementValidationError("Payouts must be positive.")
    if sum(payout.amount for payout in settlement.payouts) != settlement.net_amount:
        raise SettlementValidationError("Payouts must sum to the net amount.")
