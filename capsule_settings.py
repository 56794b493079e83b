# capsule_settings.py
from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from capsule_ledger.clock import Clock, SystemClock
from capsule_ledger.store import FileLedger, InMemoryLedger, Ledger
from capsule_machine.machine import CapsuleMachine
from gating.modes import ExecutePolicy, GateStrategy
from gating.oracle import build_gate


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CAPSULE_",
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # Amounts
    # -----------------------
    AMOUNT_SCALE: int = Field(default=10**9, gt=0)
    EXACT_AMOUNTS: bool = False
    MAX_INTENT_BYTES: int = Field(default=1024, gt=0)

    # -----------------------
    # Gating / execution
    # -----------------------
    GATE_STRATEGY: Literal["time", "proof"] = "time"
    EXECUTE_POLICY: Literal["permissionless", "owner_only"] = "permissionless"
    MAX_CLOCK_SKEW_SECONDS: int = Field(default=300, ge=0)
    MIN_PROOF_BYTES: int = Field(default=64, gt=0)
    ACTIVITY_REQUIRES_ACTIVE: bool = True
    REQUIRE_KNOWN_BENEFICIARIES: bool = False  # payouts only to accounts already on the ledger

    # -----------------------
    # Storage
    # -----------------------
    LEDGER_PATH: Optional[Path] = None  # in-memory when unset

    # -----------------------
    # Operations
    # -----------------------
    LOG_LEVEL: str = "INFO"
    WEB_ALLOWED_HOSTS: str = "127.0.0.1,::1,testclient"

    def allowed_hosts(self) -> Tuple[str, ...]:
        return tuple(host.strip() for host in self.WEB_ALLOWED_HOSTS.split(",") if host.strip())


def load_settings(**overrides) -> Settings:
    return Settings(**overrides)


def build_ledger(settings: Settings) -> Ledger:
    if settings.LEDGER_PATH is None:
        return InMemoryLedger()
    return FileLedger(Path(settings.LEDGER_PATH))


def build_machine(
    settings: Settings,
    ledger: Optional[Ledger] = None,
    clock: Optional[Clock] = None,
) -> CapsuleMachine:
    clock = clock if clock is not None else SystemClock()
    gate = build_gate(
        GateStrategy(settings.GATE_STRATEGY),
        clock,
        max_clock_skew=settings.MAX_CLOCK_SKEW_SECONDS,
        min_proof_length=settings.MIN_PROOF_BYTES,
    )
    ledger = ledger if ledger is not None else build_ledger(settings)
    return CapsuleMachine(
        ledger,
        clock,
        gate=gate,
        execute_policy=ExecutePolicy(settings.EXECUTE_POLICY),
        scale=settings.AMOUNT_SCALE,
        exact_amounts=settings.EXACT_AMOUNTS,
        max_intent_bytes=settings.MAX_INTENT_BYTES,
        activity_requires_active=settings.ACTIVITY_REQUIRES_ACTIVE,
        recipient_resolver=ledger.has_account if settings.REQUIRE_KNOWN_BENEFICIARIES else None,
    )
