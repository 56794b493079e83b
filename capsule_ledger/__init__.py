from .clock import Clock, FixedClock, SystemClock
from .identity import (
    capsule_address,
    derive_address,
    fee_config_address,
    identity_bytes,
    identity_from_bytes,
    is_valid_identity,
    new_identity,
    program_authority,
    vault_address,
)
from .models import Capsule, CapsuleState, FeeConfig, Vault
from .store import FileLedger, InMemoryLedger, InsufficientFunds, Ledger, LedgerError, MissingSignature

__all__ = [
    "Capsule",
    "CapsuleState",
    "Clock",
    "FeeConfig",
    "FileLedger",
    "FixedClock",
    "InMemoryLedger",
    "InsufficientFunds",
    "Ledger",
    "LedgerError",
    "MissingSignature",
    "SystemClock",
    "Vault",
    "capsule_address",
    "derive_address",
    "fee_config_address",
    "identity_bytes",
    "identity_from_bytes",
    "is_valid_identity",
    "new_identity",
    "program_authority",
    "vault_address",
]
