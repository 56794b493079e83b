"""HTTP surface for the Intent Capsule engine."""

from __future__ import annotations

from collections import deque
import json
import logging
from typing import Any, Deque, Dict, Optional, Tuple, Type

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from capsule_ledger.clock import Clock
from capsule_ledger.store import Ledger, LedgerError, MissingSignature
from capsule_machine.errors import (
    CapsuleNotFound,
    FeeConfigNotFound,
    InvalidInactivityPeriod,
    InvalidState,
    Unauthorized,
)
from capsule_machine.events import CapsuleEvent
from capsule_machine.machine import CapsuleMachine
from capsule_settings import Settings, build_machine, load_settings
from distribution_engine.amounts import ArithmeticOverflow, MalformedAmount
from distribution_engine.engine import SettlementValidationError, UnknownBeneficiary
from distribution_engine.fees import InvalidFeeConfig
from distribution_engine.plan_parser import InvalidIntentData
from gating.oracle import GateNotMet
from gating.proof import InvalidProof
from transfer_adapter.adapter import AdapterError
from transfer_adapter.simulator import SimulationError

logger = logging.getLogger("capsule.web")

app = FastAPI(title="Intent Capsule", description="Dead-man's-switch escrow service")

_SETTINGS: Dict[str, Settings] = {"settings": load_settings()}
_MACHINE: Dict[str, Optional[CapsuleMachine]] = {"machine": None}
_EVENTS: Deque[Dict[str, Any]] = deque(maxlen=200)


class SignerRequired(PermissionError):
    pass


class CapsuleRequest(BaseModel):
    inactivity_period: int
    intent: Dict[str, Any]


class IntentRequest(BaseModel):
    intent: Dict[str, Any]


class ExecuteRequest(BaseModel):
    proof_hex: Optional[str] = None
    public_inputs_hex: Optional[str] = None
    fee_recipient: Optional[str] = None


class FeeInitRequest(BaseModel):
    fee_recipient: str
    creation_fee_fixed: int
    execution_fee_bps: int


class FeeUpdateRequest(BaseModel):
    creation_fee_fixed: int
    execution_fee_bps: int
    fee_recipient: Optional[str] = None


class PlanPreviewRequest(BaseModel):
    intent: Dict[str, Any]
    gross_amount: Optional[int] = None
    execution_fee_bps: Optional[int] = None


@app.middleware("http")
async def _allowed_hosts_only(request: Request, call_next):
    client = request.client
    if client is not None:
        if client.host not in _SETTINGS["settings"].allowed_hosts():
            return JSONResponse(
                {"error": "Remote access disabled.", "code": "HostNotAllowed"}, status_code=403
            )
    return await call_next(request)


# Most specific first; CapsuleNotFound is also an InvalidState.
_STATUS_CODES: Tuple[Tuple[Type[BaseException], int], ...] = (
    (SignerRequired, 401),
    (Unauthorized, 403),
    (MissingSignature, 403),
    (CapsuleNotFound, 404),
    (FeeConfigNotFound, 404),
    (InvalidState, 409),
    (GateNotMet, 409),
    (InvalidProof, 422),
    (InvalidIntentData, 422),
    (InvalidFeeConfig, 422),
    (InvalidInactivityPeriod, 422),
    (MalformedAmount, 422),
    (UnknownBeneficiary, 422),
    (ArithmeticOverflow, 422),
)


async def _handle_errors(request: Request, exc: Exception):
    status_code = 400
    for exc_class, code in _STATUS_CODES:
        if isinstance(exc, exc_class):
            status_code = code
            break
    if status_code >= 409:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {"error": str(exc), "code": type(exc).__name__}, status_code=status_code
    )


for _exc_class in (
    SignerRequired,
    Unauthorized,
    MissingSignature,
    InvalidState,
    GateNotMet,
    InvalidProof,
    InvalidIntentData,
    InvalidFeeConfig,
    InvalidInactivityPeriod,
    MalformedAmount,
    UnknownBeneficiary,
    ArithmeticOverflow,
    SettlementValidationError,
    AdapterError,
    SimulationError,
    LedgerError,
    ValueError,
):
    app.add_exception_handler(_exc_class, _handle_errors)


@app.post("/api/fees")
async def init_fees(payload: FeeInitRequest, x_signer: Optional[str] = Header(default=None)):
    config = _get_machine().init_fee_config(
        _require_signer(x_signer),
        payload.fee_recipient,
        payload.creation_fee_fixed,
        payload.execution_fee_bps,
    )
    return config.to_dict()


@app.put("/api/fees")
async def update_fees(payload: FeeUpdateRequest, x_signer: Optional[str] = Header(default=None)):
    config = _get_machine().update_fee_config(
        _require_signer(x_signer),
        payload.creation_fee_fixed,
        payload.execution_fee_bps,
        fee_recipient=payload.fee_recipient,
    )
    return config.to_dict()


@app.get("/api/fees")
async def show_fees():
    config = _get_machine().get_fee_config()
    if config is None:
        raise FeeConfigNotFound("Fee configuration has not been initialized.")
    return config.to_dict()


@app.post("/api/capsules")
async def create_capsule(payload: CapsuleRequest, x_signer: Optional[str] = Header(default=None)):
    machine = _get_machine()
    capsule = machine.create_capsule(
        _require_signer(x_signer), payload.inactivity_period, _encode_intent(payload.intent)
    )
    return _capsule_view(machine, capsule.owner)


@app.get("/api/capsules/{owner}")
async def show_capsule(owner: str):
    return _capsule_view(_get_machine(), owner)


@app.put("/api/capsules/{owner}/intent")
async def update_intent(
    owner: str, payload: IntentRequest, x_signer: Optional[str] = Header(default=None)
):
    machine = _get_machine()
    machine.update_intent(_require_signer(x_signer), _encode_intent(payload.intent), owner=owner)
    return _capsule_view(machine, owner)


@app.post("/api/capsules/{owner}/activity")
async def record_activity(owner: str, x_signer: Optional[str] = Header(default=None)):
    machine = _get_machine()
    machine.update_activity(_require_signer(x_signer), owner=owner)
    return _capsule_view(machine, owner)


@app.post("/api/capsules/{owner}/deactivate")
async def deactivate_capsule(owner: str, x_signer: Optional[str] = Header(default=None)):
    machine = _get_machine()
    machine.deactivate_capsule(_require_signer(x_signer), owner=owner)
    return _capsule_view(machine, owner)


@app.post("/api/capsules/{owner}/execute")
async def execute_capsule(
    owner: str,
    payload: Optional[ExecuteRequest] = None,
    x_signer: Optional[str] = Header(default=None),
):
    payload = payload or ExecuteRequest()
    result = _get_machine().execute_intent(
        _require_signer(x_signer),
        owner,
        proof=_decode_hex(payload.proof_hex, "proof_hex"),
        public_inputs=_decode_hex(payload.public_inputs_hex, "public_inputs_hex"),
        fee_recipient=payload.fee_recipient,
    )
    return result.to_dict()


@app.post("/api/capsules/{owner}/recreate")
async def recreate_capsule(
    owner: str, payload: CapsuleRequest, x_signer: Optional[str] = Header(default=None)
):
    machine = _get_machine()
    machine.recreate_capsule(
        _require_signer(x_signer),
        payload.inactivity_period,
        _encode_intent(payload.intent),
        owner=owner,
    )
    return _capsule_view(machine, owner)


@app.get("/api/capsules/{owner}/preview")
async def preview_capsule(owner: str):
    return _get_machine().preview_execution(owner).to_dict()


@app.post("/api/plans/preview")
async def preview_plan(payload: PlanPreviewRequest):
    plan, settlement = _get_machine().preview_plan(
        _encode_intent(payload.intent),
        gross_amount=payload.gross_amount,
        execution_fee_bps=payload.execution_fee_bps,
    )
    return {
        "total_amount": plan.total_amount,
        "beneficiaries": len(plan.beneficiaries),
        "memo": plan.memo,
        "settlement": settlement.to_dict(),
    }


@app.get("/api/balances/{address}")
async def show_balance(address: str):
    return {"address": address, "balance": _get_machine().ledger.balance_of(address)}


@app.get("/api/events")
async def recent_events():
    return {"events": list(_EVENTS)}


def _get_machine() -> CapsuleMachine:
    machine = _MACHINE["machine"]
    if machine is None:
        machine = build_machine(_SETTINGS["settings"])
        machine.subscribe(_record_event)
        _MACHINE["machine"] = machine
    return machine


def _record_event(event: CapsuleEvent) -> None:
    _EVENTS.append(event.to_dict())


def _require_signer(x_signer: Optional[str]) -> str:
    if not x_signer:
        raise SignerRequired("X-Signer header is required.")
    return x_signer


def _encode_intent(intent: Dict[str, Any]) -> bytes:
    return json.dumps(intent, separators=(",", ":")).encode("utf-8")


def _decode_hex(value: Optional[str], field: str) -> Optional[bytes]:
    if value is None:
        return None
    try:
        return bytes.fromhex(value)
    except ValueError as exc:
        raise InvalidProof(f"{field} is not valid hex.") from exc


def _capsule_view(machine: CapsuleMachine, owner: str) -> Dict[str, Any]:
    capsule = machine.get_capsule(owner)
    return {
        "capsule": capsule.to_dict(),
        "state": capsule.state.value,
        "vault": machine.get_vault(owner).to_dict(),
        "vault_balance": machine.vault_balance(owner),
    }


def _reset_state(
    ledger: Optional[Ledger] = None,
    clock: Optional[Clock] = None,
    **overrides: Any,
) -> CapsuleMachine:
    settings = load_settings(**overrides)
    _SETTINGS["settings"] = settings
    _EVENTS.clear()
    machine = build_machine(settings, ledger=ledger, clock=clock)
    machine.subscribe(_record_event)
    _MACHINE["machine"] = machine
    return machine
