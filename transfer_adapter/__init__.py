from .adapter import AdapterError, funding_transfers, rebalance_transfers, settlement_to_transfers
from .models import DryRunResult, DryRunTransferResult, TransferInstruction
from .simulator import SimulationError, simulate

__all__ = [
    "AdapterError",
    "DryRunResult",
    "DryRunTransferResult",
    "SimulationError",
    "TransferInstruction",
    "funding_transfers",
    "rebalance_transfers",
    "settlement_to_transfers",
    "simulate",
]
