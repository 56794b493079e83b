"""Operator CLI for the Intent Capsule engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from capsule_ledger.clock import FixedClock
from capsule_ledger.identity import is_valid_identity, new_identity
from capsule_ledger.store import FileLedger, InMemoryLedger, LedgerError, MissingSignature
from capsule_machine.errors import InvalidState, Unauthorized
from capsule_machine.machine import CapsuleMachine
from capsule_settings import Settings, build_machine, load_settings
from distribution_engine.amounts import (
    ArithmeticOverflow,
    format_integer_amount,
    parse_decimal_to_integer,
)
from distribution_engine.engine import UnknownBeneficiary
from gating.oracle import GateNotMet


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="capsule-os")
    parser.add_argument("--log-level", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    identity_parser = subparsers.add_parser("identity")
    identity_sub = identity_parser.add_subparsers(dest="identity_command", required=True)
    identity_new = identity_sub.add_parser("new")
    identity_new.set_defaults(func=_identity_new)

    ledger_parser = subparsers.add_parser("ledger")
    ledger_sub = ledger_parser.add_subparsers(dest="ledger_command", required=True)

    ledger_fund = ledger_sub.add_parser("fund")
    _add_ledger_args(ledger_fund)
    ledger_fund.add_argument("--address", required=True)
    ledger_fund.add_argument("--amount", required=True)
    ledger_fund.set_defaults(func=_ledger_fund)

    ledger_balance = ledger_sub.add_parser("balance")
    _add_ledger_args(ledger_balance)
    ledger_balance.add_argument("--address", required=True)
    ledger_balance.set_defaults(func=_ledger_balance)

    ledger_open = ledger_sub.add_parser("open")
    _add_ledger_args(ledger_open)
    ledger_open.add_argument("--address", required=True)
    ledger_open.set_defaults(func=_ledger_open)

    fees_parser = subparsers.add_parser("fees")
    fees_sub = fees_parser.add_subparsers(dest="fees_command", required=True)

    fees_init = fees_sub.add_parser("init")
    _add_ledger_args(fees_init)
    fees_init.add_argument("--signer", required=True)
    fees_init.add_argument("--recipient", required=True)
    fees_init.add_argument("--creation-fee", required=True)
    fees_init.add_argument("--bps", required=True, type=int)
    fees_init.set_defaults(func=_fees_init)

    fees_update = fees_sub.add_parser("update")
    _add_ledger_args(fees_update)
    fees_update.add_argument("--signer", required=True)
    fees_update.add_argument("--creation-fee", required=True)
    fees_update.add_argument("--bps", required=True, type=int)
    fees_update.add_argument("--recipient")
    fees_update.set_defaults(func=_fees_update)

    fees_show = fees_sub.add_parser("show")
    _add_ledger_args(fees_show)
    fees_show.set_defaults(func=_fees_show)

    capsule_parser = subparsers.add_parser("capsule")
    capsule_sub = capsule_parser.add_subparsers(dest="capsule_command", required=True)

    capsule_create = capsule_sub.add_parser("create")
    _add_ledger_args(capsule_create)
    capsule_create.add_argument("--signer", required=True)
    capsule_create.add_argument("--inactivity-period", required=True, type=int)
    capsule_create.add_argument("--intent", required=True)
    capsule_create.set_defaults(func=_capsule_create)

    capsule_update = capsule_sub.add_parser("update-intent")
    _add_ledger_args(capsule_update)
    capsule_update.add_argument("--signer", required=True)
    capsule_update.add_argument("--intent", required=True)
    capsule_update.set_defaults(func=_capsule_update_intent)

    capsule_ping = capsule_sub.add_parser("ping")
    _add_ledger_args(capsule_ping)
    capsule_ping.add_argument("--signer", required=True)
    capsule_ping.set_defaults(func=_capsule_ping)

    capsule_deactivate = capsule_sub.add_parser("deactivate")
    _add_ledger_args(capsule_deactivate)
    capsule_deactivate.add_argument("--signer", required=True)
    capsule_deactivate.set_defaults(func=_capsule_deactivate)

    capsule_execute = capsule_sub.add_parser("execute")
    _add_ledger_args(capsule_execute)
    capsule_execute.add_argument("--signer", required=True)
    capsule_execute.add_argument("--owner", required=True)
    capsule_execute.add_argument("--proof-hex")
    capsule_execute.add_argument("--public-inputs-hex")
    capsule_execute.set_defaults(func=_capsule_execute)

    capsule_recreate = capsule_sub.add_parser("recreate")
    _add_ledger_args(capsule_recreate)
    capsule_recreate.add_argument("--signer", required=True)
    capsule_recreate.add_argument("--inactivity-period", required=True, type=int)
    capsule_recreate.add_argument("--intent", required=True)
    capsule_recreate.set_defaults(func=_capsule_recreate)

    capsule_show = capsule_sub.add_parser("show")
    _add_ledger_args(capsule_show)
    capsule_show.add_argument("--owner", required=True)
    capsule_show.set_defaults(func=_capsule_show)

    plan_parser = subparsers.add_parser("plan")
    plan_sub = plan_parser.add_subparsers(dest="plan_command", required=True)
    plan_preview = plan_sub.add_parser("preview")
    plan_preview.add_argument("--intent", required=True)
    plan_preview.add_argument("--gross")
    plan_preview.add_argument("--ledger")
    plan_preview.add_argument("--now", type=int)
    plan_preview.add_argument("--bps", type=int)
    plan_preview.set_defaults(func=_plan_preview)

    args = parser.parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=(args.log_level or settings.LOG_LEVEL).upper())

    try:
        return args.func(args, settings)
    except (
        ValueError,
        ArithmeticOverflow,
        GateNotMet,
        InvalidState,
        LedgerError,
        MissingSignature,
        Unauthorized,
        UnknownBeneficiary,
        OSError,
    ) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


def _identity_new(args: argparse.Namespace, settings: Settings) -> int:
    _print({"identity": new_identity()})
    return 0


def _ledger_fund(args: argparse.Namespace, settings: Settings) -> int:
    if not is_valid_identity(args.address):
        raise ValueError(f"Not a valid identity: {args.address}")
    machine = _build_machine(args, settings)
    amount = _parse_amount(args.amount, settings)
    machine.ledger.deposit(args.address, amount)
    _print_balance(args.address, machine.ledger.balance_of(args.address), settings)
    return 0


def _ledger_balance(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    _print_balance(args.address, machine.ledger.balance_of(args.address), settings)
    return 0


def _ledger_open(args: argparse.Namespace, settings: Settings) -> int:
    if not is_valid_identity(args.address):
        raise ValueError(f"Not a valid identity: {args.address}")
    machine = _build_machine(args, settings)
    opened = not machine.ledger.has_account(args.address)
    machine.ledger.open_account(args.address)
    _print({"address": args.address, "opened": opened})
    return 0


def _fees_init(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    config = machine.init_fee_config(
        args.signer,
        args.recipient,
        _parse_amount(args.creation_fee, settings),
        args.bps,
    )
    _print(config.to_dict())
    return 0


def _fees_update(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    config = machine.update_fee_config(
        args.signer,
        _parse_amount(args.creation_fee, settings),
        args.bps,
        fee_recipient=args.recipient,
    )
    _print(config.to_dict())
    return 0


def _fees_show(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    config = machine.get_fee_config()
    _print(config.to_dict() if config is not None else None)
    return 0


def _capsule_create(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    capsule = machine.create_capsule(args.signer, args.inactivity_period, _read_intent(args.intent))
    _print_capsule(machine, capsule.owner)
    return 0


def _capsule_update_intent(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    machine.update_intent(args.signer, _read_intent(args.intent))
    _print_capsule(machine, args.signer)
    return 0


def _capsule_ping(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    machine.update_activity(args.signer)
    _print_capsule(machine, args.signer)
    return 0


def _capsule_deactivate(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    machine.deactivate_capsule(args.signer)
    _print_capsule(machine, args.signer)
    return 0


def _capsule_execute(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    proof = bytes.fromhex(args.proof_hex) if args.proof_hex else None
    public_inputs = bytes.fromhex(args.public_inputs_hex) if args.public_inputs_hex else None
    result = machine.execute_intent(args.signer, args.owner, proof, public_inputs)
    _print(result.to_dict())
    return 0


def _capsule_recreate(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    machine.recreate_capsule(args.signer, args.inactivity_period, _read_intent(args.intent))
    _print_capsule(machine, args.signer)
    return 0


def _capsule_show(args: argparse.Namespace, settings: Settings) -> int:
    machine = _build_machine(args, settings)
    _print_capsule(machine, args.owner)
    return 0


def _plan_preview(args: argparse.Namespace, settings: Settings) -> int:
    if args.ledger or settings.LEDGER_PATH:
        machine = _build_machine(args, settings)
    else:
        machine = build_machine(settings, ledger=InMemoryLedger())
    gross = _parse_amount(args.gross, settings) if args.gross else None
    plan, settlement = machine.preview_plan(
        _read_intent(args.intent), gross_amount=gross, execution_fee_bps=args.bps
    )
    _print(
        {
            "total_amount": plan.total_amount,
            "beneficiaries": len(plan.beneficiaries),
            "memo": plan.memo,
            "settlement": settlement.to_dict(),
        }
    )
    return 0


def _add_ledger_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--ledger")
    parser.add_argument("--now", type=int)


def _build_machine(args: argparse.Namespace, settings: Settings) -> CapsuleMachine:
    ledger_path = args.ledger or settings.LEDGER_PATH
    if not ledger_path:
        raise ValueError("A ledger file is required (--ledger or CAPSULE_LEDGER_PATH).")
    clock = FixedClock(args.now) if args.now is not None else None
    return build_machine(settings, ledger=FileLedger(Path(ledger_path)), clock=clock)


def _parse_amount(value: str, settings: Settings) -> int:
    return parse_decimal_to_integer(
        value, scale=settings.AMOUNT_SCALE, exact=settings.EXACT_AMOUNTS
    )


def _read_intent(source: str) -> bytes:
    if source == "-":
        return sys.stdin.read().encode("utf-8")
    return Path(source).read_bytes()


def _print_capsule(machine: CapsuleMachine, owner: str) -> None:
    capsule = machine.get_capsule(owner)
    _print(
        {
            "capsule": capsule.to_dict(),
            "state": capsule.state.value,
            "vault": machine.get_vault(owner).to_dict(),
            "vault_balance": machine.vault_balance(owner),
        }
    )


def _print_balance(address: str, balance: int, settings: Settings) -> None:
    _print(
        {
            "address": address,
            "balance": balance,
            "display": format_integer_amount(balance, settings.AMOUNT_SCALE),
        }
    )


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    raise SystemExit(main())
