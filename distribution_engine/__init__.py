from .amounts import (
    DEFAULT_SCALE,
    ArithmeticOverflow,
    MalformedAmount,
    format_integer_amount,
    parse_decimal_to_integer,
)
from .engine import SettlementValidationError, UnknownBeneficiary, compute_payouts, settle, validate_settlement
from .fees import InvalidFeeConfig, creation_fee, execution_fee, validate_fee_config, validate_fee_parameters
from .models import AmountSpec, AmountType, Beneficiary, DistributionPlan, Payout, Settlement
from .plan_parser import InvalidIntentData, parse_plan, serialize_plan

__all__ = [
    "DEFAULT_SCALE",
    "AmountSpec",
    "AmountType",
    "ArithmeticOverflow",
    "Beneficiary",
    "DistributionPlan",
    "InvalidFeeConfig",
    "InvalidIntentData",
    "MalformedAmount",
    "Payout",
    "Settlement",
    "SettlementValidationError",
    "UnknownBeneficiary",
    "compute_payouts",
    "creation_fee",
    "execution_fee",
    "format_integer_amount",
    "parse_decimal_to_integer",
    "parse_plan",
    "serialize_plan",
    "settle",
    "validate_fee_config",
    "validate_fee_parameters",
    "validate_settlement",
]
