"""Account identities and deterministic address derivation."""

from typing import Callable, Optional
import hashlib
import secrets

import base58

IDENTITY_LENGTH = 32

CAPSULE_SEED = b"intent_capsule"
VAULT_SEED = b"capsule_vault"
FEE_CONFIG_SEED = b"fee_config"
PROGRAM_AUTHORITY_SEED = b"program_authority"

# Namespace mixed into every derived address so derived accounts cannot
# collide with addresses produced by a key pair.
PROGRAM_NAMESPACE = b"intent-capsule-program"


def is_valid_identity(value: object) -> bool:
    """Return True when value is a base58 string decoding to 32 bytes."""

    if not isinstance(value, str) or not value:
        return False
    try:
        decoded = base58.b58decode(value)
    except ValueError:
        return False
    return len(decoded) == IDENTITY_LENGTH


def identity_bytes(identity: str) -> bytes:
    if not is_valid_identity(identity):
        raise ValueError(f"Invalid identity: {identity!r}")
    return base58.b58decode(identity)


def identity_from_bytes(raw: bytes) -> str:
    if len(raw) != IDENTITY_LENGTH:
        raise ValueError("Identity must be exactly 32 bytes.")
    return base58.b58encode(raw).decode("ascii")


def derive_address(seed: bytes, owner: Optional[str] = None) -> str:
    owner_bytes = identity_bytes(owner) if owner is not None else b""
    digest = hashlib.sha256(seed + owner_bytes + PROGRAM_NAMESPACE).digest()
    return identity_from_bytes(digest)


def capsule_address(owner: str) -> str:
    return derive_address(CAPSULE_SEED, owner)


def vault_address(owner: str) -> str:
    return derive_address(VAULT_SEED, owner)


def fee_config_address() -> str:
    return derive_address(FEE_CONFIG_SEED)


def program_authority() -> str:
    """Identity the state machine signs record writes with."""

    return derive_address(PROGRAM_AUTHORITY_SEED)


def new_identity(entropy_provider: Optional[Callable[[int], bytes]] = None) -> str:
    provider = entropy_provider or secrets.token_bytes
    return identity_from_bytes(hashlib.sha256(provider(IDENTITY_LENGTH)).digest())
