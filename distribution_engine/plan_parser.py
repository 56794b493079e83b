"""Strict decoder and canonical encoder for intent payloads.

Wire format (UTF-8 JSON)::

    {
      "totalAmount": "10",
      "beneficiaries": [
        {"address": "<base58>", "amount": "3", "amountType": "fixed"},
        {"address": "<base58>", "amount": "70", "amountType": "percentage"}
      ]
    }

``intent`` (free text), ``inactivityDays`` and ``delayDays`` are accepted at
the top level for compatibility with existing front ends. Anything else is
rejected rather than coerced.
"""

import json
from typing import Dict, Optional

from capsule_ledger.identity import is_valid_identity

from .amounts import (
    DEFAULT_SCALE,
    ArithmeticOverflow,
    MalformedAmount,
    format_integer_amount,
    parse_decimal_to_integer,
)
from .models import AmountSpec, AmountType, Beneficiary, DistributionPlan


class InvalidIntentData(ValueError):
    """Raised when an intent payload does not decode into a valid plan."""


_TOP_LEVEL_KEYS = frozenset({"beneficiaries", "totalAmount", "intent", "inactivityDays", "delayDays"})
_BENEFICIARY_KEYS = frozenset({"address", "amount", "amountType"})


def parse_plan(
    intent_data: bytes,
    scale: int = DEFAULT_SCALE,
    exact: bool = False,
    max_bytes: Optional[int] = None,
) -> DistributionPlan:
    raw = bytes(intent_data)
    if max_bytes is not None and len(raw) > max_bytes:
        raise InvalidIntentData(f"Intent data is {len(raw)} bytes; the limit is {max_bytes}.")
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidIntentData("Intent data is not valid UTF-8.") from exc

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidIntentData("Intent data is not valid JSON.") from exc

    if not isinstance(document, dict):
        raise InvalidIntentData("Intent data must be a JSON object.")
    unknown = set(document) - _TOP_LEVEL_KEYS
    if unknown:
        raise InvalidIntentData(f"Unknown intent fields: {', '.join(sorted(unknown))}.")

    memo = document.get("intent")
    if memo is not None and not isinstance(memo, str):
        raise InvalidIntentData("intent must be a string.")

    total_raw = document.get("totalAmount")
    if not isinstance(total_raw, str):
        raise InvalidIntentData("totalAmount must be present as a decimal string.")
    total_amount = _parse_amount(total_raw, scale, exact, "totalAmount")

    entries = document.get("beneficiaries")
    if not isinstance(entries, list):
        raise InvalidIntentData("beneficiaries must be a list.")
    if not entries:
        raise InvalidIntentData("beneficiaries must not be empty.")

    beneficiaries = tuple(
        _parse_beneficiary(entry, index, scale, exact) for index, entry in enumerate(entries)
    )
    plan = DistributionPlan(total_amount=total_amount, beneficiaries=beneficiaries, memo=memo)
    _validate_commitments(plan)
    return plan


def serialize_plan(plan: DistributionPlan, scale: int = DEFAULT_SCALE) -> bytes:
    document: Dict[str, object] = {
        "beneficiaries": [_beneficiary_to_dict(item, scale) for item in plan.beneficiaries],
        "totalAmount": format_integer_amount(plan.total_amount, scale),
    }
    if plan.memo is not None:
        document["intent"] = plan.memo
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _parse_beneficiary(entry: object, index: int, scale: int, exact: bool) -> Beneficiary:
    if not isinstance(entry, dict):
        raise InvalidIntentData(f"Beneficiary {index} must be an object.")
    unknown = set(entry) - _BENEFICIARY_KEYS
    if unknown:
        raise InvalidIntentData(
            f"Beneficiary {index} has unknown fields: {', '.join(sorted(unknown))}."
        )

    address = entry.get("address")
    if not isinstance(address, str):
        raise InvalidIntentData(f"Beneficiary {index} is missing an address.")
    if not is_valid_identity(address):
        raise InvalidIntentData(f"Beneficiary {index} address is not a valid identity.")

    amount_raw = entry.get("amount")
    if not isinstance(amount_raw, str):
        raise InvalidIntentData(f"Beneficiary {index} is missing an amount string.")

    type_raw = entry.get("amountType", AmountType.FIXED.value)
    try:
        amount_type = AmountType(type_raw)
    except ValueError as exc:
        raise InvalidIntentData(f"Beneficiary {index} has unsupported amountType.") from exc

    if amount_type == AmountType.FIXED:
        spec = AmountSpec.fixed(_parse_amount(amount_raw, scale, exact, f"beneficiary {index}"))
    else:
        spec = AmountSpec.percent(_parse_percentage(amount_raw, index))
    return Beneficiary(recipient=address, amount=spec)


def _parse_amount(value: str, scale: int, exact: bool, field: str) -> int:
    try:
        return parse_decimal_to_integer(value, scale=scale, exact=exact)
    except (MalformedAmount, ArithmeticOverflow) as exc:
        raise InvalidIntentData(f"Invalid {field} amount: {exc}") from exc


def _parse_percentage(value: str, index: int) -> float:
    try:
        # syntax and sign check only
        parse_decimal_to_integer(value, scale=1)
    except (MalformedAmount, ArithmeticOverflow) as exc:
        raise InvalidIntentData(f"Beneficiary {index} percentage is malformed.") from exc
    percentage = float(value)
    if not 0.0 <= percentage <= 100.0:
        raise InvalidIntentData(f"Beneficiary {index} percentage must be within 0-100.")
    return percentage


def _validate_commitments(plan: DistributionPlan) -> None:
    committed = sum(
        item.amount.raw_target(plan.total_amount) for item in plan.beneficiaries[:-1]
    )
    if committed > plan.total_amount:
        raise InvalidIntentData("Beneficiary allocations exceed totalAmount.")


def _beneficiary_to_dict(item: Beneficiary, scale: int) -> Dict[str, str]:
    if item.amount.amount_type == AmountType.FIXED:
        amount = format_integer_amount(item.amount.fixed_amount, scale)
    else:
        amount = _format_percentage(item.amount.percentage)
    return {
        "address": item.recipient,
        "amount": amount,
        "amountType": item.amount.amount_type.value,
    }


def _format_percentage(value: float) -> str:
    text = repr(value)
    return text[:-2] if text.endswith(".0") else text
