from .modes import ExecutePolicy, GateDecision, GateStrategy
from .oracle import Gate, GateNotMet, ProofGate, TimeGate, build_gate, is_met
from .proof import (
    PUBLIC_INPUTS_LENGTH,
    InvalidProof,
    ProofRejected,
    ProofVerifier,
    PublicInputs,
    StructuralProofVerifier,
)

__all__ = [
    "PUBLIC_INPUTS_LENGTH",
    "ExecutePolicy",
    "Gate",
    "GateDecision",
    "GateNotMet",
    "GateStrategy",
    "InvalidProof",
    "ProofGate",
    "ProofRejected",
    "ProofVerifier",
    "PublicInputs",
    "StructuralProofVerifier",
    "TimeGate",
    "build_gate",
    "is_met",
]
