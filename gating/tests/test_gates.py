"""Unit tests for the time and proof release gates."""

import unittest

from capsule_ledger.clock import FixedClock
from capsule_ledger.identity import capsule_address, new_identity
from capsule_ledger.models import Capsule

from gating.modes import GateStrategy
from gating.oracle import GateNotMet, ProofGate, TimeGate, build_gate, is_met
from gating.proof import (
    PUBLIC_INPUTS_LENGTH,
    InvalidProof,
    ProofRejected,
    PublicInputs,
    StructuralProofVerifier,
)

OWNER = new_identity(lambda n: b"\x11" * n)
STRANGER = new_identity(lambda n: b"\x22" * n)
CREATED_AT = 1_700_000_000
PERIOD = 86_400
VALID_PROOF = b"\x01" * 64


def _capsule() -> Capsule:
    return Capsule(
        capsule_id=capsule_address(OWNER),
        owner=OWNER,
        inactivity_period=PERIOD,
        last_activity=CREATED_AT,
        intent_data=b"{}",
        is_active=True,
    )


def _inputs(**overrides) -> bytes:
    fields = {
        "owner": OWNER,
        "last_activity": CREATED_AT,
        "inactivity_period": PERIOD,
        "current_time": CREATED_AT + PERIOD,
    }
    fields.update(overrides)
    return PublicInputs(**fields).to_bytes()


class TimeGateTests(unittest.TestCase):
    def test_boundary_is_inclusive(self) -> None:
        self.assertFalse(is_met(CREATED_AT + PERIOD - 1, CREATED_AT, PERIOD))
        self.assertTrue(is_met(CREATED_AT + PERIOD, CREATED_AT, PERIOD))

    def test_not_met_raises(self) -> None:
        gate = TimeGate(FixedClock(CREATED_AT + PERIOD - 1))
        with self.assertRaises(GateNotMet):
            gate.evaluate(_capsule())

    def test_decision_is_stable(self) -> None:
        gate = TimeGate(FixedClock(CREATED_AT + PERIOD + 10))
        first = gate.evaluate(_capsule())
        second = gate.evaluate(_capsule())

        self.assertEqual(first, second)
        self.assertTrue(first.passed)
        self.assertEqual(first.elapsed, PERIOD + 10)
        self.assertEqual(first.strategy, GateStrategy.TIME)


class ProofGateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FixedClock(CREATED_AT + PERIOD + 60)
        self.gate = ProofGate(self.clock, StructuralProofVerifier())

    def test_valid_proof_passes(self) -> None:
        decision = self.gate.evaluate(_capsule(), VALID_PROOF, _inputs())
        self.assertTrue(decision.passed)
        self.assertEqual(decision.strategy, GateStrategy.PROOF)

    def test_missing_proof_rejected(self) -> None:
        with self.assertRaises(InvalidProof):
            self.gate.evaluate(_capsule())
        with self.assertRaises(InvalidProof):
            self.gate.evaluate(_capsule(), VALID_PROOF, None)

    def test_time_gate_applies_first(self) -> None:
        self.clock.set(CREATED_AT + 5)
        with self.assertRaises(GateNotMet):
            self.gate.evaluate(_capsule(), VALID_PROOF, _inputs())

    def test_mismatched_public_inputs_rejected(self) -> None:
        cases = {
            "owner": _inputs(owner=STRANGER),
            "last_activity": _inputs(last_activity=CREATED_AT + 1),
            "inactivity_period": _inputs(inactivity_period=PERIOD - 1),
            "window not elapsed": _inputs(current_time=CREATED_AT + PERIOD - 1),
            "clock skew": _inputs(current_time=CREATED_AT + PERIOD + 1_000),
        }
        for label, public_inputs in cases.items():
            with self.subTest(case=label):
                with self.assertRaises(ProofRejected):
                    self.gate.evaluate(_capsule(), VALID_PROOF, public_inputs)

    def test_skew_tolerance_is_inclusive(self) -> None:
        self.clock.set(CREATED_AT + PERIOD + 300)
        self.gate.evaluate(_capsule(), VALID_PROOF, _inputs())

    def test_short_public_inputs_rejected(self) -> None:
        with self.assertRaises(InvalidProof):
            self.gate.evaluate(_capsule(), VALID_PROOF, _inputs()[: PUBLIC_INPUTS_LENGTH - 1])

    def test_structural_check_rejects_weak_proofs(self) -> None:
        for proof in (b"\x01" * 63, b"\x00" * 64):
            with self.subTest(length=len(proof)):
                with self.assertRaises(InvalidProof):
                    self.gate.evaluate(_capsule(), proof, _inputs())

    def test_public_inputs_layout(self) -> None:
        raw = _inputs()
        self.assertEqual(len(raw), 56)
        self.assertEqual(raw[32:40], CREATED_AT.to_bytes(8, "little"))
        self.assertEqual(PublicInputs.from_bytes(raw).current_time, CREATED_AT + PERIOD)

    def test_build_gate_selects_strategy(self) -> None:
        clock = FixedClock(0)
        self.assertIsInstance(build_gate("time", clock), TimeGate)
        gate = build_gate(GateStrategy.PROOF, clock, max_clock_skew=30)
        self.assertIsInstance(gate, ProofGate)
        self.assertEqual(gate.max_clock_skew, 30)


if __name__ == "__main__":
    unittest.main()
