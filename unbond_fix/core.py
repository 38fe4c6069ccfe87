"""
Core types for the unbond remediation tool.

This module provides the foundational data structures and protocols:
1. Protocols: ChainSource for chain reads and the storage patch submission
2. Immutable data structures: AccountRemediationRecord, StakeLock,
   StakingLedger, StorageUpdate, StoragePatch, PatchReceipt
3. Exceptions: RemediationError and the fatal error types
4. Constants: planck precision and the staking lock identifier

Nothing in this module talks to a chain. Functions that need live state
receive a ChainSource and only call its read methods.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
import json
from typing import (
    Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence,
    Tuple, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Number of decimal places of the native token.
PLANCK_DECIMALS = 12

# Planck per whole token.
PLANCK_PER_UNIT = 10 ** PLANCK_DECIMALS

# Lock identifier used by the staking pallet: b"staking " as hex.
STAKING_LOCK_ID = "0x7374616b696e6720"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Canonical (SS58) string encoding of an account.
AccountId = str

# Hex encoded storage key and storage value.
StorageKey = str
StorageValue = str


# ============================================================================
# EXCEPTIONS
# ============================================================================

class RemediationError(Exception):
    """Base exception for all remediation errors."""
    pass


class InvariantViolation(RemediationError):
    """Raised when a corrected lock amount is negative or disagrees with the ledger."""
    pass


class MissingData(RemediationError):
    """Raised when an account expected to carry a staking lock has none."""
    pass


class PatchSubmissionError(RemediationError):
    """Raised when the chain rejects the storage patch extrinsic."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountRemediationRecord:
    """
    One account that needs its staking lock corrected.

    Attributes:
        account: Account address (canonical string encoding).
        prior_excess_amount: Amount in whole tokens that the previous ledger
            generation left behind in the lock and must be subtracted.
    """
    account: AccountId
    prior_excess_amount: Decimal

    def __post_init__(self):
        if not self.account or not str(self.account).strip():
            raise ValueError("Record account cannot be empty")
        amount = self.prior_excess_amount
        if isinstance(amount, bool) or amount is None:
            raise ValueError(f"Record amount must be numeric, got {amount!r}")
        if not isinstance(amount, Decimal):
            try:
                object.__setattr__(self, 'prior_excess_amount', Decimal(str(amount)))
            except InvalidOperation:
                raise ValueError(f"Record amount must be numeric, got {amount!r}") from None
        if not self.prior_excess_amount.is_finite():
            raise ValueError(f"Record amount must be finite, got {self.prior_excess_amount}")
        if self.prior_excess_amount < 0:
            raise ValueError(f"Record amount cannot be negative, got {self.prior_excess_amount}")

    def __repr__(self) -> str:
        return f"Record({self.account}: {self.prior_excess_amount})"


@dataclass(frozen=True, slots=True)
class UnlockChunk:
    """An amount leaving the bond, free to withdraw at the given era."""
    value: int
    era: int = 0

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"Unlock chunk value cannot be negative, got {self.value}")


@dataclass(frozen=True, slots=True)
class StakeLock:
    """
    A balance lock on an account.

    Attributes:
        id: Hex lock identifier (STAKING_LOCK_ID for the staking lock).
        amount: Locked amount in planck.
        reasons: Withdraw reasons exactly as the chain reports them.
    """
    id: str
    amount: int
    reasons: Any = "All"

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"Lock amount cannot be negative, got {self.amount}")

    @property
    def is_staking(self) -> bool:
        return self.id.lower() == STAKING_LOCK_ID

    def with_amount(self, amount: int) -> StakeLock:
        """Return a copy of this lock carrying a different amount."""
        return StakeLock(id=self.id, amount=amount, reasons=self.reasons)


@dataclass(frozen=True, slots=True)
class StakingLedger:
    """
    The staking pallet's record for a bonded account.

    `total` is the cached value of active + sum(unlocking). The remediation
    exists because that cache drifted on some accounts.
    """
    active: int
    unlocking: Tuple[UnlockChunk, ...] = ()
    total: int = 0
    stash: Optional[AccountId] = None

    def __post_init__(self):
        if not isinstance(self.unlocking, tuple):
            object.__setattr__(self, 'unlocking', tuple(self.unlocking))

    def bonded_and_unlocking(self) -> int:
        """Return active plus the value of every unlocking chunk."""
        return self.active + sum(chunk.value for chunk in self.unlocking)

    def is_consistent(self) -> bool:
        return self.total == self.bonded_and_unlocking()


@dataclass(frozen=True, slots=True)
class StorageUpdate:
    """A single (storage key, replacement value) pair of the patch."""
    key: StorageKey
    value: StorageValue

    def __post_init__(self):
        if not self.key:
            raise ValueError("Storage key cannot be empty")

    def as_pair(self) -> List[str]:
        return [self.key, self.value]


@dataclass(frozen=True, slots=True)
class StoragePatch:
    """
    The complete set of storage overrides produced by one run.

    Built once, never mutated. Serialized to the persisted JSON report and
    wrapped into a single privileged set_storage call.
    """
    updates: Tuple[StorageUpdate, ...] = ()

    def __post_init__(self):
        if not isinstance(self.updates, tuple):
            object.__setattr__(self, 'updates', tuple(self.updates))
        seen = set()
        for update in self.updates:
            if update.key in seen:
                raise ValueError(f"Duplicate storage key in patch: {update.key}")
            seen.add(update.key)

    def __len__(self) -> int:
        return len(self.updates)

    def __iter__(self) -> Iterator[StorageUpdate]:
        return iter(self.updates)

    def as_dict(self) -> Dict[StorageKey, StorageValue]:
        return {u.key: u.value for u in self.updates}

    def to_json(self) -> str:
        """Render the patch as the indented key -> value JSON report."""
        return json.dumps(self.as_dict(), indent=2)

    def __repr__(self) -> str:
        return f"StoragePatch({len(self.updates)} updates)"


@dataclass(frozen=True, slots=True)
class PatchReceipt:
    """
    Outcome of submitting a storage patch.

    Attributes:
        extrinsic_hash: Hash of the submitted extrinsic.
        block_hash: Block the extrinsic was included in (None if unknown).
        success: Whether the chain reported successful dispatch.
        events: Human-readable "section.method data" strings of relevant events.
        error: Error message from the chain when success is False.
    """
    extrinsic_hash: Optional[str]
    block_hash: Optional[str]
    success: bool
    events: Tuple[str, ...] = field(default_factory=tuple)
    error: Optional[str] = None


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class ChainSource(Protocol):
    """
    Narrow interface to the chain.

    Remediation and audit code only needs these operations. Storage key and
    value encoding live here too so the core never depends on a specific
    runtime's binary format.
    """

    def get_locks(self, account: AccountId) -> Sequence[StakeLock]:
        """Return the balance locks of an account, in chain order."""
        ...

    def get_ledger(self, account: AccountId) -> Optional[StakingLedger]:
        """Return the staking ledger of an account, or None if not bonded."""
        ...

    def iter_ledgers(self) -> Iterable[Tuple[AccountId, StakingLedger]]:
        """Enumerate every staking ledger on chain."""
        ...

    def locks_storage_key(self, account: AccountId) -> StorageKey:
        """Return the encoded storage key of an account's lock set."""
        ...

    def encode_locks(self, locks: Sequence[StakeLock]) -> StorageValue:
        """Return the encoded storage value of a lock set."""
        ...

    def submit_storage_patch(self, patch: StoragePatch) -> PatchReceipt:
        """Wrap the patch into one privileged transaction and submit it."""
        ...
