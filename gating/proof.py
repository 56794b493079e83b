"""Inactivity proof contract: public-input layout and verifier seam."""

from dataclasses import dataclass
from typing import Protocol
import struct

from capsule_ledger.identity import IDENTITY_LENGTH, identity_bytes, identity_from_bytes

# owner(32) | last_activity(i64 LE) | inactivity_period(i64 LE) | current_time(i64 LE)
_TAIL = struct.Struct("<qqq")
PUBLIC_INPUTS_LENGTH = IDENTITY_LENGTH + _TAIL.size

DEFAULT_MIN_PROOF_LENGTH = 64


class InvalidProof(ValueError):
    """Raised when a proof or its public inputs cannot be accepted."""


class ProofRejected(InvalidProof):
    """Raised when public inputs disagree with the capsule record."""


@dataclass(frozen=True)
class PublicInputs:
    owner: str
    last_activity: int
    inactivity_period: int
    current_time: int

    def to_bytes(self) -> bytes:
        try:
            tail = _TAIL.pack(self.last_activity, self.inactivity_period, self.current_time)
        except struct.error as exc:
            raise InvalidProof("Public input values must fit in signed 64-bit integers.") from exc
        return identity_bytes(self.owner) + tail

    @staticmethod
    def from_bytes(raw: bytes) -> "PublicInputs":
        # Trailing bytes are tolerated; only the leading layout is bound.
        if len(raw) < PUBLIC_INPUTS_LENGTH:
            raise InvalidProof(
                f"Public inputs must be at least {PUBLIC_INPUTS_LENGTH} bytes."
            )
        last_activity, inactivity_period, current_time = _TAIL.unpack_from(raw, IDENTITY_LENGTH)
        return PublicInputs(
            owner=identity_from_bytes(bytes(raw[:IDENTITY_LENGTH])),
            last_activity=last_activity,
            inactivity_period=inactivity_period,
            current_time=current_time,
        )


class ProofVerifier(Protocol):
    def verify(self, proof: bytes, public_inputs: bytes) -> bool:
        ...


class StructuralProofVerifier:
    """Placeholder verifier: checks shape only and proves nothing.

    Accepts any blob of at least ``min_length`` bytes that is not all zero.
    A deployment that needs real inactivity attestation must supply a
    zero-knowledge verifier implementing ``ProofVerifier`` instead.
    """

    def __init__(self, min_length: int = DEFAULT_MIN_PROOF_LENGTH) -> None:
        if min_length < 1:
            raise ValueError("min_length must be positive.")
        self.min_length = min_length

    def verify(self, proof: bytes, public_inputs: bytes) -> bool:
        if len(proof) < self.min_length:
            return False
        return any(proof)
