"""Platform fee policy: flat creation fee and basis-point execution fee."""

from typing import Optional

from capsule_ledger.identity import is_valid_identity
from capsule_ledger.models import FeeConfig

from .amounts import U64_MAX, checked_mul

MAX_BASIS_POINTS = 10_000

# Defaults used by the original deployment: 0.05 token creation fee, 3% on execution.
DEFAULT_CREATION_FEE = 50_000_000
DEFAULT_EXECUTION_FEE_BPS = 300


class InvalidFeeConfig(ValueError):
    """Raised when fee parameters are out of range or inconsistent."""


def validate_fee_parameters(creation_fee_fixed: int, execution_fee_bps: int) -> None:
    if not isinstance(execution_fee_bps, int) or not 0 <= execution_fee_bps <= MAX_BASIS_POINTS:
        raise InvalidFeeConfig("execution_fee_bps must be within 0-10000.")
    if not isinstance(creation_fee_fixed, int) or not 0 <= creation_fee_fixed <= U64_MAX:
        raise InvalidFeeConfig("creation_fee_fixed must be a non-negative u64.")


def validate_fee_config(config: FeeConfig) -> None:
    validate_fee_parameters(config.creation_fee_fixed, config.execution_fee_bps)
    if not is_valid_identity(config.authority):
        raise InvalidFeeConfig("Fee authority is not a valid identity.")
    if not is_valid_identity(config.fee_recipient):
        raise InvalidFeeConfig("Fee recipient is not a valid identity.")


def creation_fee(config: Optional[FeeConfig]) -> int:
    if config is None:
        return 0
    return config.creation_fee_fixed


def execution_fee(total: int, config: Optional[FeeConfig]) -> int:
    """floor(total * bps / 10000); the product must fit in u64."""

    if config is None or config.execution_fee_bps == 0:
        return 0
    return checked_mul(total, config.execution_fee_bps) // MAX_BASIS_POINTS
