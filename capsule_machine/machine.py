"""Capsule lifecycle state machine.

Every operation runs inside a single ledger transaction: records are read,
transfers are built and dry-run against current balances, then applied and
the updated records written. Any exception rolls the whole operation back,
and events are only published once the transaction has committed.
"""

from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Callable, Collection, Dict, Iterable, Iterator, List, Optional, Tuple
import json
import logging

from capsule_ledger.clock import Clock
from capsule_ledger.identity import (
    capsule_address,
    fee_config_address,
    is_valid_identity,
    program_authority,
    vault_address,
)
from capsule_ledger.models import Capsule, FeeConfig, Vault
from capsule_ledger.store import Ledger
from distribution_engine.amounts import DEFAULT_SCALE
from distribution_engine.engine import settle
from distribution_engine.fees import (
    InvalidFeeConfig,
    creation_fee,
    validate_fee_config,
    validate_fee_parameters,
)
from distribution_engine.models import DistributionPlan, Settlement
from distribution_engine.plan_parser import InvalidIntentData, parse_plan
from gating.modes import ExecutePolicy, GateDecision
from gating.oracle import Gate, GateNotMet, TimeGate, is_met
from gating.proof import InvalidProof
from transfer_adapter.adapter import (
    funding_transfers,
    rebalance_transfers,
    settlement_to_transfers,
)
from transfer_adapter.models import TransferInstruction
from transfer_adapter.simulator import simulate

from .errors import (
    CapsuleActive,
    CapsuleAlreadyExists,
    CapsuleInactive,
    CapsuleNotExecuted,
    CapsuleNotFound,
    FeeConfigAlreadyExists,
    FeeConfigNotFound,
    InvalidInactivityPeriod,
    Unauthorized,
)
from .events import (
    ActivityRecorded,
    CapsuleCreated,
    CapsuleDeactivated,
    CapsuleEvent,
    CapsuleRecreated,
    EventSink,
    FeeConfigInitialized,
    FeeConfigUpdated,
    IntentExecuted,
    IntentUpdated,
)

logger = logging.getLogger("capsule.machine")

DEFAULT_MAX_INTENT_BYTES = 1024
_I64_MAX = 2**63 - 1


@dataclass(frozen=True)
class ExecutionResult:
    capsule: Capsule
    settlement: Settlement
    decision: GateDecision
    transfers: Tuple[TransferInstruction, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "capsule": self.capsule.to_dict(),
            "settlement": self.settlement.to_dict(),
            "gate": self.decision.to_dict(),
            "transfers": [item.to_dict() for item in self.transfers],
        }


@dataclass(frozen=True)
class ExecutionPreview:
    capsule: Capsule
    vault_balance: int
    settlement: Settlement
    gate_met: bool
    seconds_remaining: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "capsule": self.capsule.to_dict(),
            "state": self.capsule.state.value,
            "vault_balance": self.vault_balance,
            "settlement": self.settlement.to_dict(),
            "gate_met": self.gate_met,
            "seconds_remaining": self.seconds_remaining,
        }


class CapsuleMachine:
    """Owns capsule lifecycle transitions and vault custody."""

    def __init__(
        self,
        ledger: Ledger,
        clock: Clock,
        gate: Optional[Gate] = None,
        execute_policy: ExecutePolicy = ExecutePolicy.PERMISSIONLESS,
        scale: int = DEFAULT_SCALE,
        exact_amounts: bool = False,
        max_intent_bytes: int = DEFAULT_MAX_INTENT_BYTES,
        activity_requires_active: bool = True,
        event_sinks: Iterable[EventSink] = (),
        recipient_resolver: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.ledger = ledger
        self.clock = clock
        self.gate = gate if gate is not None else TimeGate(clock)
        self.execute_policy = ExecutePolicy(execute_policy)
        self.scale = scale
        self.exact_amounts = exact_amounts
        self.max_intent_bytes = max_intent_bytes
        self.activity_requires_active = activity_requires_active
        self._sinks: List[EventSink] = list(event_sinks)
        # None accepts any recipient the plan parser accepted.
        self.recipient_resolver = recipient_resolver
        self._authority = program_authority()

    def subscribe(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    # Lifecycle operations

    def create_capsule(self, signer: str, inactivity_period: int, intent_data: bytes) -> Capsule:
        owner = self._require_signer(signer)
        _validate_period(inactivity_period)
        plan = self.parse_intent(intent_data)

        with self._operation() as events:
            capsule_id = capsule_address(owner)
            vault = vault_address(owner)
            if self.ledger.read_account(capsule_id) is not None:
                raise CapsuleAlreadyExists(f"Owner {owner} already has a capsule.")
            if self.ledger.read_account(vault) is not None:
                raise CapsuleAlreadyExists(f"Vault for {owner} is already provisioned.")

            fee_config = self._read_fee_config()
            recipient = fee_config.fee_recipient if fee_config is not None else None
            fee = creation_fee(fee_config) if recipient != owner else 0
            transfers = funding_transfers(owner, vault, plan.total_amount, recipient, fee)
            self._apply_transfers(transfers, signers=(owner,))

            now = self.clock.now()
            capsule = Capsule(
                capsule_id=capsule_id,
                owner=owner,
                inactivity_period=inactivity_period,
                last_activity=now,
                intent_data=bytes(intent_data),
                is_active=True,
            )
            self._write_record(vault, Vault(address=vault, owner=owner).to_dict())
            self._write_record(capsule_id, capsule.to_dict())
            events.append(
                CapsuleCreated(
                    capsule_id=capsule_id,
                    owner=owner,
                    vault=vault,
                    inactivity_period=inactivity_period,
                    total_amount=plan.total_amount,
                    creation_fee=fee,
                    created_at=now,
                )
            )

        logger.info(
            "capsule created owner=%s total=%s creation_fee=%s", owner, plan.total_amount, fee
        )
        return capsule

    def update_intent(self, signer: str, data: bytes, owner: Optional[str] = None) -> Capsule:
        owner = self._require_owner(signer, owner)
        plan = self.parse_intent(data)

        with self._operation() as events:
            capsule = self._load_capsule(owner)
            if not capsule.is_active:
                raise CapsuleInactive("Only an active capsule can change its intent.")
            self._rebalance_vault(owner, plan.total_amount)
            now = self.clock.now()
            capsule = replace(capsule, intent_data=bytes(data), last_activity=now)
            self._write_record(capsule.capsule_id, capsule.to_dict())
            events.append(IntentUpdated(capsule_id=capsule.capsule_id, owner=owner, updated_at=now))

        logger.info("intent updated owner=%s", owner)
        return capsule

    def update_activity(self, signer: str, owner: Optional[str] = None) -> Capsule:
        owner = self._require_owner(signer, owner)

        with self._operation() as events:
            capsule = self._load_capsule(owner)
            if self.activity_requires_active and not capsule.is_active:
                raise CapsuleInactive("Activity can only be recorded on an active capsule.")
            now = self.clock.now()
            capsule = replace(capsule, last_activity=now)
            self._write_record(capsule.capsule_id, capsule.to_dict())
            events.append(
                ActivityRecorded(capsule_id=capsule.capsule_id, owner=owner, last_activity=now)
            )

        logger.info("activity recorded owner=%s at=%s", owner, capsule.last_activity)
        return capsule

    def deactivate_capsule(self, signer: str, owner: Optional[str] = None) -> Capsule:
        owner = self._require_owner(signer, owner)

        with self._operation() as events:
            capsule = self._load_capsule(owner)
            if not capsule.is_active:
                raise CapsuleInactive("Capsule is already inactive.")
            capsule = replace(capsule, is_active=False)
            self._write_record(capsule.capsule_id, capsule.to_dict())
            events.append(
                CapsuleDeactivated(
                    capsule_id=capsule.capsule_id, owner=owner, deactivated_at=self.clock.now()
                )
            )

        logger.info("capsule deactivated owner=%s", owner)
        return capsule

    def execute_intent(
        self,
        signer: str,
        owner: str,
        proof: Optional[bytes] = None,
        public_inputs: Optional[bytes] = None,
        fee_recipient: Optional[str] = None,
    ) -> ExecutionResult:
        executor = self._require_signer(signer)

        with self._operation() as events:
            capsule = self._load_capsule(owner)
            if not capsule.is_active:
                raise CapsuleInactive("Capsule is not active.")
            if self.execute_policy == ExecutePolicy.OWNER_ONLY and executor != capsule.owner:
                raise Unauthorized("Only the owner may execute this capsule.")

            try:
                decision = self.gate.evaluate(capsule, proof, public_inputs)
            except (GateNotMet, InvalidProof) as exc:
                logger.warning("execute rejected owner=%s executor=%s: %s", owner, executor, exc)
                raise

            fee_config = self._read_fee_config()
            if fee_recipient is not None and (
                fee_config is None or fee_recipient != fee_config.fee_recipient
            ):
                raise InvalidFeeConfig("Fee recipient does not match the fee configuration.")

            vault = vault_address(owner)
            settlement = self._settle(capsule, self.parse_intent(capsule.intent_data), fee_config)
            transfers = settlement_to_transfers(
                vault,
                settlement,
                fee_config.fee_recipient if fee_config is not None else None,
            )
            self._apply_transfers(transfers, signers=(vault,))

            now = self.clock.now()
            capsule = replace(capsule, is_active=False, executed_at=now)
            self._write_record(capsule.capsule_id, capsule.to_dict())
            events.append(
                IntentExecuted(
                    capsule_id=capsule.capsule_id,
                    owner=owner,
                    executed_at=now,
                    executor=executor,
                    gross_amount=settlement.gross_amount,
                    fee_amount=settlement.fee_amount,
                    net_amount=settlement.net_amount,
                )
            )

        logger.info(
            "intent executed owner=%s gross=%s fee=%s payouts=%s",
            owner,
            settlement.gross_amount,
            settlement.fee_amount,
            len(settlement.payouts),
        )
        return ExecutionResult(
            capsule=capsule, settlement=settlement, decision=decision, transfers=transfers
        )

    def recreate_capsule(
        self,
        signer: str,
        inactivity_period: int,
        data: bytes,
        owner: Optional[str] = None,
    ) -> Capsule:
        owner = self._require_owner(signer, owner)
        _validate_period(inactivity_period)
        plan = self.parse_intent(data)

        with self._operation() as events:
            capsule = self._load_capsule(owner)
            if capsule.is_active:
                raise CapsuleActive("Capsule is still active.")
            if capsule.executed_at is None:
                raise CapsuleNotExecuted("Only an executed capsule can be recreated.")

            self._rebalance_vault(owner, plan.total_amount)

            now = self.clock.now()
            capsule = replace(
                capsule,
                inactivity_period=inactivity_period,
                last_activity=now,
                intent_data=bytes(data),
                is_active=True,
                executed_at=None,
            )
            self._write_record(capsule.capsule_id, capsule.to_dict())
            events.append(
                CapsuleRecreated(
                    capsule_id=capsule.capsule_id,
                    owner=owner,
                    inactivity_period=inactivity_period,
                    total_amount=plan.total_amount,
                    recreated_at=now,
                )
            )

        logger.info("capsule recreated owner=%s total=%s", owner, plan.total_amount)
        return capsule

    # Fee administration

    def init_fee_config(
        self,
        signer: str,
        fee_recipient: str,
        creation_fee_fixed: int,
        execution_fee_bps: int,
    ) -> FeeConfig:
        authority = self._require_signer(signer)
        config = FeeConfig(
            authority=authority,
            fee_recipient=fee_recipient,
            creation_fee_fixed=creation_fee_fixed,
            execution_fee_bps=execution_fee_bps,
        )
        validate_fee_config(config)

        with self._operation() as events:
            if self.ledger.read_account(fee_config_address()) is not None:
                raise FeeConfigAlreadyExists("Fee configuration is already initialized.")
            self._write_record(fee_config_address(), config.to_dict())
            events.append(FeeConfigInitialized(**config.to_dict()))

        logger.info(
            "fee config initialized recipient=%s creation_fee=%s bps=%s",
            fee_recipient,
            creation_fee_fixed,
            execution_fee_bps,
        )
        return config

    def update_fee_config(
        self,
        signer: str,
        creation_fee_fixed: int,
        execution_fee_bps: int,
        fee_recipient: Optional[str] = None,
    ) -> FeeConfig:
        with self._operation() as events:
            config = self._read_fee_config()
            if config is None:
                raise FeeConfigNotFound("Fee configuration has not been initialized.")
            if signer != config.authority:
                raise Unauthorized("Only the fee authority may update the fee configuration.")
            config = replace(
                config,
                creation_fee_fixed=creation_fee_fixed,
                execution_fee_bps=execution_fee_bps,
                fee_recipient=fee_recipient if fee_recipient is not None else config.fee_recipient,
            )
            validate_fee_config(config)
            self._write_record(fee_config_address(), config.to_dict())
            events.append(FeeConfigUpdated(**config.to_dict()))

        logger.info(
            "fee config updated recipient=%s creation_fee=%s bps=%s",
            config.fee_recipient,
            config.creation_fee_fixed,
            config.execution_fee_bps,
        )
        return config

    # Readers

    def get_capsule(self, owner: str) -> Capsule:
        with self.ledger.transaction():
            return self._load_capsule(owner)

    def get_vault(self, owner: str) -> Vault:
        with self.ledger.transaction():
            self._check_owner(owner)
            raw = self.ledger.read_account(vault_address(owner))
            if raw is None:
                raise CapsuleNotFound(f"No vault for owner {owner}.")
            return Vault.from_dict(json.loads(raw))

    def vault_balance(self, owner: str) -> int:
        self._check_owner(owner)
        return self.ledger.balance_of(vault_address(owner))

    def get_fee_config(self) -> Optional[FeeConfig]:
        with self.ledger.transaction():
            return self._read_fee_config()

    def preview_execution(self, owner: str) -> ExecutionPreview:
        """Settlement an execute would produce right now; no gate, no writes."""

        with self.ledger.transaction():
            capsule = self._load_capsule(owner)
            balance = self.ledger.balance_of(vault_address(owner))
            settlement = self._settle(
                capsule, self.parse_intent(capsule.intent_data), self._read_fee_config()
            )
        now = self.clock.now()
        deadline = capsule.last_activity + capsule.inactivity_period
        return ExecutionPreview(
            capsule=capsule,
            vault_balance=balance,
            settlement=settlement,
            gate_met=is_met(now, capsule.last_activity, capsule.inactivity_period),
            seconds_remaining=max(0, deadline - now),
        )

    def preview_plan(
        self,
        intent_data: bytes,
        gross_amount: Optional[int] = None,
        execution_fee_bps: Optional[int] = None,
    ) -> Tuple[DistributionPlan, Settlement]:
        """Settle a payload that is not stored anywhere.

        Uses the deployed fee configuration unless execution_fee_bps is given.
        """

        plan = self.parse_intent(intent_data)
        gross = plan.total_amount if gross_amount is None else gross_amount
        if gross < 0:
            raise ValueError("Gross amount must be non-negative.")
        if execution_fee_bps is None:
            fee_config = self.get_fee_config()
        else:
            validate_fee_parameters(0, execution_fee_bps)
            fee_config = FeeConfig(
                authority=self._authority,
                fee_recipient=self._authority,
                creation_fee_fixed=0,
                execution_fee_bps=execution_fee_bps,
            )
        return plan, settle(gross, plan, fee_config)

    def parse_intent(self, data: bytes) -> DistributionPlan:
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidIntentData("Intent data must be bytes.")
        return parse_plan(
            data, scale=self.scale, exact=self.exact_amounts, max_bytes=self.max_intent_bytes
        )

    # Internals

    @contextmanager
    def _operation(self) -> Iterator[List[CapsuleEvent]]:
        events: List[CapsuleEvent] = []
        with self.ledger.transaction():
            yield events
        for event in events:
            self._publish(event)

    def _publish(self, event: CapsuleEvent) -> None:
        for sink in self._sinks:
            try:
                sink(event)
            except Exception:
                # already committed
                logger.exception("event sink failed for %s", type(event).__name__)

    def _settle(
        self, capsule: Capsule, plan: DistributionPlan, fee_config: Optional[FeeConfig]
    ) -> Settlement:
        balance = self.ledger.balance_of(vault_address(capsule.owner))
        gross = min(balance, plan.total_amount)
        return settle(gross, plan, fee_config, resolver=self.recipient_resolver)

    def _rebalance_vault(self, owner: str, target_amount: int) -> None:
        vault = vault_address(owner)
        transfers = rebalance_transfers(
            owner, vault, self.ledger.balance_of(vault), target_amount
        )
        if transfers:
            logger.info(
                "vault rebalanced owner=%s %s=%s",
                owner,
                transfers[0].memo,
                transfers[0].amount,
            )
        self._apply_transfers(transfers, signers=(owner, vault))

    def _apply_transfers(
        self, transfers: Tuple[TransferInstruction, ...], signers: Collection[str]
    ) -> None:
        addresses = {item.source for item in transfers} | {item.destination for item in transfers}
        dry_run = simulate(
            transfers, {address: self.ledger.balance_of(address) for address in addresses}
        )
        logger.debug(
            "dry run passed transfers=%s total_moved=%s", len(transfers), dry_run.total_moved
        )
        for item in transfers:
            self.ledger.transfer(item.source, item.destination, item.amount, signers)

    def _write_record(self, address: str, record: Dict[str, object]) -> None:
        data = json.dumps(record, sort_keys=True).encode("utf-8")
        self.ledger.write_account(address, data, (self._authority,), self._authority)

    def _read_fee_config(self) -> Optional[FeeConfig]:
        raw = self.ledger.read_account(fee_config_address())
        if raw is None:
            return None
        return FeeConfig.from_dict(json.loads(raw))

    def _load_capsule(self, owner: str) -> Capsule:
        self._check_owner(owner)
        raw = self.ledger.read_account(capsule_address(owner))
        if raw is None:
            raise CapsuleNotFound(f"No capsule for owner {owner}.")
        return Capsule.from_dict(json.loads(raw))

    def _require_signer(self, signer: str) -> str:
        if not is_valid_identity(signer):
            raise Unauthorized("Signer is not a valid identity.")
        return signer

    def _require_owner(self, signer: str, owner: Optional[str]) -> str:
        self._require_signer(signer)
        if owner is not None and owner != signer:
            raise Unauthorized("Only the capsule owner may perform this operation.")
        return signer

    @staticmethod
    def _check_owner(owner: str) -> None:
        if not is_valid_identity(owner):
            raise CapsuleNotFound(f"{owner!r} is not a valid owner identity.")


def _validate_period(inactivity_period: int) -> None:
    if isinstance(inactivity_period, bool) or not isinstance(inactivity_period, int):
        raise InvalidInactivityPeriod("Inactivity period must be an integer number of seconds.")
    if not 0 < inactivity_period <= _I64_MAX:
        raise InvalidInactivityPeriod("Inactivity period must be positive.")
