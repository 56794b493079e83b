"""Release gates consulted before a capsule may be executed."""

from typing import Optional, Protocol
import logging

from capsule_ledger.clock import Clock
from capsule_ledger.models import Capsule

from .modes import GateDecision, GateStrategy
from .proof import (
    DEFAULT_MIN_PROOF_LENGTH,
    InvalidProof,
    ProofRejected,
    ProofVerifier,
    PublicInputs,
    StructuralProofVerifier,
)

logger = logging.getLogger("capsule.gating")

DEFAULT_MAX_CLOCK_SKEW = 300


class GateNotMet(RuntimeError):
    """Raised when the inactivity window has not elapsed yet."""


class Gate(Protocol):
    strategy: GateStrategy

    def evaluate(
        self,
        capsule: Capsule,
        proof: Optional[bytes] = None,
        public_inputs: Optional[bytes] = None,
    ) -> GateDecision:
        ...


def is_met(now: int, last_activity: int, inactivity_period: int) -> bool:
    return now - last_activity >= inactivity_period


class TimeGate:
    strategy = GateStrategy.TIME

    def __init__(self, clock: Clock) -> None:
        self.clock = clock

    def evaluate(
        self,
        capsule: Capsule,
        proof: Optional[bytes] = None,
        public_inputs: Optional[bytes] = None,
    ) -> GateDecision:
        return _check_elapsed(self.strategy, self.clock.now(), capsule)


class ProofGate:
    """Time gate plus an inactivity proof bound to the capsule record."""

    strategy = GateStrategy.PROOF

    def __init__(
        self,
        clock: Clock,
        verifier: ProofVerifier,
        max_clock_skew: int = DEFAULT_MAX_CLOCK_SKEW,
    ) -> None:
        if max_clock_skew < 0:
            raise ValueError("max_clock_skew must be non-negative.")
        self.clock = clock
        self.verifier = verifier
        self.max_clock_skew = max_clock_skew

    def evaluate(
        self,
        capsule: Capsule,
        proof: Optional[bytes] = None,
        public_inputs: Optional[bytes] = None,
    ) -> GateDecision:
        if not proof or not public_inputs:
            raise InvalidProof("A proof and its public inputs are required.")

        now = self.clock.now()
        decision = _check_elapsed(self.strategy, now, capsule)

        claimed = PublicInputs.from_bytes(bytes(public_inputs))
        if claimed.owner != capsule.owner:
            raise ProofRejected("Proof is bound to a different owner.")
        if claimed.last_activity != capsule.last_activity:
            raise ProofRejected("Proof last_activity does not match the capsule.")
        if claimed.inactivity_period != capsule.inactivity_period:
            raise ProofRejected("Proof inactivity_period does not match the capsule.")
        if not is_met(claimed.current_time, capsule.last_activity, capsule.inactivity_period):
            raise ProofRejected("Proof current_time does not satisfy the inactivity window.")
        if abs(claimed.current_time - now) > self.max_clock_skew:
            raise ProofRejected(
                f"Proof current_time is more than {self.max_clock_skew}s from the host clock."
            )

        if not self.verifier.verify(bytes(proof), bytes(public_inputs)):
            raise InvalidProof("Proof failed verification.")

        return GateDecision(
            strategy=self.strategy,
            passed=True,
            now=now,
            elapsed=decision.elapsed,
            reason="Inactivity window elapsed and proof verified.",
        )


def build_gate(
    strategy: GateStrategy,
    clock: Clock,
    verifier: Optional[ProofVerifier] = None,
    max_clock_skew: int = DEFAULT_MAX_CLOCK_SKEW,
    min_proof_length: int = DEFAULT_MIN_PROOF_LENGTH,
) -> Gate:
    strategy = GateStrategy(strategy)
    if strategy == GateStrategy.TIME:
        return TimeGate(clock)
    if verifier is None:
        logger.warning("Proof gate configured with the structural placeholder verifier")
        verifier = StructuralProofVerifier(min_length=min_proof_length)
    return ProofGate(clock, verifier, max_clock_skew=max_clock_skew)


def _check_elapsed(strategy: GateStrategy, now: int, capsule: Capsule) -> GateDecision:
    elapsed = now - capsule.last_activity
    if not is_met(now, capsule.last_activity, capsule.inactivity_period):
        raise GateNotMet(
            f"Inactivity period not met: {elapsed}s of {capsule.inactivity_period}s elapsed."
        )
    return GateDecision(
        strategy=strategy,
        passed=True,
        now=now,
        elapsed=elapsed,
        reason="Inactivity window elapsed.",
    )
