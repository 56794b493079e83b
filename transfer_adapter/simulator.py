"""Dry-run transfer instructions against a balance snapshot."""

from typing import Dict, Iterable, Mapping

from .models import DryRunResult, DryRunTransferResult, TransferInstruction


class SimulationError(ValueError):
    """Raised when a transfer batch would fail if applied."""


def simulate(
    instructions: Iterable[TransferInstruction], balances: Mapping[str, int]
) -> DryRunResult:
    working: Dict[str, int] = dict(balances)
    results = []
    total_moved = 0
    expected_sequence = 1

    for instruction in instructions:
        _validate_instruction(instruction, expected_sequence)
        available = working.get(instruction.source, 0)
        if available < instruction.amount:
            raise SimulationError(
                f"Transfer {instruction.sequence} needs {instruction.amount} "
                f"but {instruction.source} holds {available}."
            )
        working[instruction.source] = available - instruction.amount
        working[instruction.destination] = working.get(instruction.destination, 0) + instruction.amount
        results.append(
            DryRunTransferResult(
                sequence=instruction.sequence,
                success=True,
                source_balance_after=working[instruction.source],
            )
        )
        total_moved += instruction.amount
        expected_sequence += 1

    return DryRunResult(
        success=True,
        transfer_results=tuple(results),
        total_moved=total_moved,
        balances=working,
        notes=("Dry-run only; no ledger writes performed.",),
    )


def _validate_instruction(instruction: TransferInstruction, expected_sequence: int) -> None:
    if instruction.sequence != expected_sequence:
        raise SimulationError("Transfer sequence numbers must be contiguous from 1.")
    if not instruction.source or not instruction.destination:
        raise SimulationError("Transfers must name a source and a destination.")
    if instruction.source == instruction.destination:
        raise SimulationError("Transfer source and destination must differ.")
    if not isinstance(instruction.amount, int) or instruction.amount <= 0:
        raise SimulationError("Transfer amount must be a positive integer.")
