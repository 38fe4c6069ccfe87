"""
reconcile.py - Staking lock reconciliation

Computes the corrected staking lock of every account in the remediation
list and turns the result into one storage patch.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - AccountSnapshot: locks and ledger of one account as read from chain

2. PURE CALCULATION FUNCTIONS (calculate_*, reconcile_account):
   - Take all inputs explicitly as parameters
   - No ChainSource, no hidden state

3. ADAPTER FUNCTIONS (load_snapshots):
   - The ONLY place that reads from the ChainSource
   - Queries run concurrently, one task per account

4. CONVENIENCE FUNCTIONS (compute_storage_patch):
   - load + calculate + encode

Key Formulas:
    corrected = staking_lock.amount - to_planck(prior_excess_amount)
    corrected == ledger.active + sum(ledger.unlocking[i].value)

The batch is all-or-nothing: the first violated invariant raises and no
patch is produced.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from .amounts import format_planck, to_planck
from .core import (
    AccountId, AccountRemediationRecord, ChainSource, StakeLock, StakingLedger,
    StoragePatch, StorageUpdate,
    InvariantViolation, MissingData,
)


DEFAULT_MAX_WORKERS = 8


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Live chain state of one account: its balance locks and staking ledger."""
    account: AccountId
    locks: Tuple[StakeLock, ...]
    ledger: Optional[StakingLedger]

    def __post_init__(self):
        if not isinstance(self.locks, tuple):
            object.__setattr__(self, 'locks', tuple(self.locks))

    @property
    def staking_lock(self) -> Optional[StakeLock]:
        return find_staking_lock(self.locks)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def find_staking_lock(locks: Iterable[StakeLock]) -> Optional[StakeLock]:
    """Return the staking lock among locks, or None."""
    for lock in locks:
        if lock.is_staking:
            return lock
    return None


def calculate_corrected_amount(lock_amount: int, prior_excess_amount: Decimal) -> int:
    """
    Subtract the prior-generation excess from the current lock amount.

    Raises:
        InvariantViolation: If the result would be negative.
    """
    corrected = lock_amount - to_planck(prior_excess_amount)
    if corrected < 0:
        raise InvariantViolation(
            f"negative locked balance: {lock_amount} - {prior_excess_amount} -> {corrected}"
        )
    return corrected


def calculate_replacement_locks(
    locks: Sequence[StakeLock],
    corrected_amount: int,
) -> Tuple[StakeLock, ...]:
    """
    Build the lock set that replaces `locks` on chain.

    The staking lock is dropped when corrected_amount is zero, otherwise it
    is re-created with the corrected amount and put first. Every other lock
    is kept as is, in its original order.
    """
    staking_lock = find_staking_lock(locks)
    if staking_lock is None:
        raise MissingData("no staking lock to replace")

    others = tuple(lock for lock in locks if not lock.is_staking)
    if corrected_amount == 0:
        return others
    return (staking_lock.with_amount(corrected_amount),) + others


def reconcile_account(
    record: AccountRemediationRecord,
    locks: Sequence[StakeLock],
    ledger: Optional[StakingLedger],
) -> Tuple[StakeLock, ...]:
    """
    Compute the replacement lock set of one account.

    An account without a staking ledger is treated as having nothing bonded.

    Raises:
        MissingData: If the account has no staking lock.
        InvariantViolation: If the corrected amount is negative or does not
            equal the ledger's active + unlocking total.
    """
    staking_lock = find_staking_lock(locks)
    if staking_lock is None:
        raise MissingData(f"{record.account}: no staking lock found")

    try:
        corrected = calculate_corrected_amount(staking_lock.amount, record.prior_excess_amount)
    except InvariantViolation as e:
        raise InvariantViolation(f"{record.account}: {e}") from e

    bonded = ledger.bonded_and_unlocking() if ledger is not None else 0
    if corrected != bonded:
        raise InvariantViolation(
            f"{record.account}: corrected lock {format_planck(corrected)} "
            f"does not match bonded and unlocking {format_planck(bonded)}"
        )

    return calculate_replacement_locks(locks, corrected)


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def load_snapshot(source: ChainSource, account: AccountId) -> AccountSnapshot:
    """Read the locks and ledger of one account."""
    return AccountSnapshot(
        account=account,
        locks=tuple(source.get_locks(account)),
        ledger=source.get_ledger(account),
    )


def load_snapshots(
    source: ChainSource,
    accounts: Sequence[AccountId],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> List[AccountSnapshot]:
    """
    Read every account concurrently.

    Results come back in the order of `accounts`. The first query error is
    re-raised once all submitted queries have finished.
    """
    if not accounts:
        return []
    workers = max(1, min(max_workers, len(accounts)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(lambda account: load_snapshot(source, account), accounts))


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def compute_storage_patch(
    source: ChainSource,
    records: Sequence[AccountRemediationRecord],
    max_workers: int = DEFAULT_MAX_WORKERS,
    verbose: bool = False,
) -> StoragePatch:
    """
    Gather live state, reconcile every record and encode one storage patch.

    Args:
        source: Chain access
        records: The closed list of accounts to fix
        max_workers: Concurrent queries
        verbose: Print one line per account

    Returns:
        StoragePatch with one update per record, in record order

    Raises:
        ValueError: If an account appears twice in records
        MissingData, InvariantViolation: On the first bad account. Nothing is
            returned in that case.
    """
    accounts = [record.account for record in records]
    duplicates = sorted({a for a in accounts if accounts.count(a) > 1})
    if duplicates:
        raise ValueError(f"Duplicate accounts in remediation list: {duplicates}")

    snapshots = load_snapshots(source, accounts, max_workers)

    replacements = []
    for record, snapshot in zip(records, snapshots):
        new_locks = reconcile_account(record, snapshot.locks, snapshot.ledger)
        replacements.append((record.account, new_locks))
        if verbose:
            staking = find_staking_lock(new_locks)
            amount = format_planck(staking.amount) if staking else "removed"
            print(f"  {record.account}: staking lock -> {amount}")

    return StoragePatch(tuple(
        StorageUpdate(
            key=source.locks_storage_key(account),
            value=source.encode_locks(new_locks),
        )
        for account, new_locks in replacements
    ))
