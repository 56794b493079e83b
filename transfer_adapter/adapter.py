"""Translate fundings and settlements into ordered ledger transfers."""

from typing import List, Optional, Tuple

from distribution_engine.engine import validate_settlement
from distribution_engine.models import Settlement

from .models import TransferInstruction


class AdapterError(ValueError):
    """Raised when a settlement cannot be expressed as transfers."""


def funding_transfers(
    owner: str,
    vault: str,
    total_amount: int,
    fee_recipient: Optional[str] = None,
    creation_fee: int = 0,
) -> Tuple[TransferInstruction, ...]:
    """Owner deposit into the vault, followed by the creation fee if any."""

    if total_amount < 0 or creation_fee < 0:
        raise AdapterError("Funding amounts must be non-negative.")
    if creation_fee > 0 and not fee_recipient:
        raise AdapterError("A creation fee requires a fee recipient.")

    transfers: List[TransferInstruction] = []
    if total_amount > 0:
        transfers.append(_instruction(transfers, owner, vault, total_amount, "vault funding"))
    # An owner who is also the fee recipient pays the creation fee to itself.
    if creation_fee > 0 and fee_recipient != owner:
        transfers.append(_instruction(transfers, owner, fee_recipient, creation_fee, "creation fee"))
    return tuple(transfers)


def rebalance_transfers(
    owner: str, vault: str, vault_balance: int, target_amount: int
) -> Tuple[TransferInstruction, ...]:
    """Top the vault up from the owner, or refund the owner, so it holds target_amount."""

    if vault_balance < 0 or target_amount < 0:
        raise AdapterError("Vault balance and target must be non-negative.")
    transfers: List[TransferInstruction] = []
    if vault_balance < target_amount:
        transfers.append(
            _instruction(transfers, owner, vault, target_amount - vault_balance, "vault top-up")
        )
    elif vault_balance > target_amount:
        transfers.append(
            _instruction(transfers, vault, owner, vault_balance - target_amount, "vault refund")
        )
    return tuple(transfers)


def settlement_to_transfers(
    vault: str,
    settlement: Settlement,
    fee_recipient: Optional[str] = None,
) -> Tuple[TransferInstruction, ...]:
    """Fee first, then payouts in plan order. Zero amounts produce no transfer."""

    validate_settlement(settlement)
    if settlement.fee_amount > 0 and not fee_recipient:
        raise AdapterError("Settlement carries a fee but no fee recipient is configured.")

    transfers: List[TransferInstruction] = []
    if settlement.fee_amount > 0:
        transfers.append(
            _instruction(transfers, vault, fee_recipient, settlement.fee_amount, "execution fee")
        )
    for payout in settlement.payouts:
        if payout.recipient == vault:
            raise AdapterError("A payout cannot target the vault itself.")
        transfers.append(_instruction(transfers, vault, payout.recipient, payout.amount, "payout"))
    return tuple(transfers)


def _instruction(
    existing: List[TransferInstruction], source: str, destination: str, amount: int, memo: str
) -> TransferInstruction:
    return TransferInstruction(
        sequence=len(existing) + 1,
        source=source,
        destination=destination,
        amount=amount,
        memo=memo,
    )
