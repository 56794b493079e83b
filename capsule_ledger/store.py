"""Ledger substrate: account records, balances and atomic transfers."""

from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Collection, Dict, Iterator, Optional, Protocol
import base64
import copy
import json
import logging
import threading

logger = logging.getLogger("capsule.ledger")


class LedgerError(RuntimeError):
    """Raised when the ledger rejects an operation."""


class InsufficientFunds(LedgerError):
    """Raised when a transfer source cannot cover the amount."""


class MissingSignature(PermissionError):
    """Raised when a write or debit lacks the required signer."""


class Ledger(Protocol):
    def read_account(self, address: str) -> Optional[bytes]:
        ...

    def write_account(
        self,
        address: str,
        data: bytes,
        signers: Collection[str],
        authority: Optional[str] = None,
    ) -> None:
        ...

    def transfer(
        self, source: str, destination: str, amount: int, signers: Collection[str]
    ) -> None:
        ...

    def balance_of(self, address: str) -> int:
        ...

    def has_account(self, address: str) -> bool:
        ...

    def open_account(self, address: str) -> None:
        ...

    def deposit(self, address: str, amount: int) -> None:
        ...

    def transaction(self):
        ...


@dataclass(frozen=True)
class AccountEntry:
    balance: int = 0
    data: Optional[bytes] = None
    authority: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "balance": self.balance,
            "data": base64.b64encode(self.data).decode("ascii") if self.data is not None else None,
            "authority": self.authority,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "AccountEntry":
        raw = data.get("data")
        return AccountEntry(
            balance=int(data.get("balance", 0)),
            data=base64.b64decode(raw.encode("ascii")) if raw is not None else None,
            authority=data.get("authority"),
        )


class InMemoryLedger:
    """Reference ledger keeping every account in a dict.

    All public operations run inside a transaction. Transactions are
    re-entrant; only the outermost one snapshots state, and any exception
    escaping it restores the snapshot so no partial mutation is observable.
    """

    def __init__(self) -> None:
        self._accounts: Dict[str, AccountEntry] = {}
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator["InMemoryLedger"]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._load()
                snapshot = copy.copy(self._accounts)
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._accounts = snapshot
                    logger.debug("ledger transaction rolled back")
                raise
            else:
                if outermost:
                    self._flush()
            finally:
                self._depth -= 1

    def read_account(self, address: str) -> Optional[bytes]:
        with self.transaction():
            entry = self._accounts.get(address)
            return entry.data if entry is not None else None

    def write_account(
        self,
        address: str,
        data: bytes,
        signers: Collection[str],
        authority: Optional[str] = None,
    ) -> None:
        with self.transaction():
            entry = self._accounts.get(address, AccountEntry())
            # The first write fixes the account's authority; None means the first signer.
            expected = entry.authority if entry.authority is not None else authority
            if expected is None and signers:
                expected = next(iter(signers))
            if expected is None or expected not in signers:
                raise MissingSignature(f"Write to {address} requires signer {expected}.")
            self._accounts[address] = replace(entry, data=bytes(data), authority=expected)

    def transfer(
        self, source: str, destination: str, amount: int, signers: Collection[str]
    ) -> None:
        if not isinstance(amount, int) or amount < 0:
            raise LedgerError("Transfer amount must be a non-negative integer.")
        with self.transaction():
            if source not in signers:
                raise MissingSignature(f"Debit from {source} requires its signature.")
            source_entry = self._accounts.get(source, AccountEntry())
            if source_entry.balance < amount:
                raise InsufficientFunds(
                    f"{source} holds {source_entry.balance}, needs {amount}."
                )
            self._accounts[source] = replace(source_entry, balance=source_entry.balance - amount)
            dest_entry = self._accounts.get(destination, AccountEntry())
            self._accounts[destination] = replace(dest_entry, balance=dest_entry.balance + amount)
            logger.debug("transfer %s -> %s amount=%s", source, destination, amount)

    def balance_of(self, address: str) -> int:
        with self.transaction():
            entry = self._accounts.get(address)
            return entry.balance if entry is not None else 0

    def has_account(self, address: str) -> bool:
        with self.transaction():
            return address in self._accounts

    def open_account(self, address: str) -> None:
        with self.transaction():
            self._accounts.setdefault(address, AccountEntry())

    def deposit(self, address: str, amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise LedgerError("Deposit amount must be a positive integer.")
        with self.transaction():
            entry = self._accounts.get(address, AccountEntry())
            self._accounts[address] = replace(entry, balance=entry.balance + amount)

    def _load(self) -> None:
        pass

    def _flush(self) -> None:
        pass


class FileLedger(InMemoryLedger):
    """JSON-file ledger; state is re-read and written once per transaction."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path

    def _load(self) -> None:
        if not self._path.exists():
            self._accounts = {}
            return
        data = json.loads(self._path.read_text())
        self._accounts = {
            address: AccountEntry.from_dict(entry)
            for address, entry in data.get("accounts", {}).items()
        }

    def _flush(self) -> None:
        payload = {
            "accounts": {
                address: entry.to_dict()
                for address, entry in sorted(self._accounts.items())
            }
        }
        self._path.write_text(json.dumps(payload, indent=2))
