"""
sources.py - In-memory chain source

Provides a ChainSource backed by plain dictionaries.

Classes:
- StaticChainSource: fixed locks and ledgers, canonical JSON encoding

Used for dry runs against exported state and throughout the test suite.
Submitting a patch applies it to the stored locks, so later reads see the
replaced lock sets.
"""

from __future__ import annotations
import hashlib
import json
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .core import (
    AccountId, PatchReceipt, StakeLock, StakingLedger, StorageKey,
    StoragePatch, StorageValue,
)


LOCKS_KEY_PREFIX = "balances.locks:"


class StaticChainSource:
    """
    Chain source with static state.

    Locks are keyed by account. Ledgers are keyed by the account they are
    stored under (the controller on chain).
    """

    def __init__(
        self,
        locks: Optional[Dict[AccountId, Sequence[StakeLock]]] = None,
        ledgers: Optional[Dict[AccountId, StakingLedger]] = None,
    ):
        """
        Initialize with state maps.

        Args:
            locks: account -> balance locks
            ledgers: account -> staking ledger
        """
        self.locks: Dict[AccountId, Tuple[StakeLock, ...]] = {
            account: tuple(account_locks) for account, account_locks in (locks or {}).items()
        }
        self.ledgers: Dict[AccountId, StakingLedger] = dict(ledgers or {})
        self.submitted: List[StoragePatch] = []

    def get_locks(self, account: AccountId) -> Sequence[StakeLock]:
        return self.locks.get(account, ())

    def get_ledger(self, account: AccountId) -> Optional[StakingLedger]:
        return self.ledgers.get(account)

    def iter_ledgers(self) -> Iterable[Tuple[AccountId, StakingLedger]]:
        return sorted(self.ledgers.items())

    def locks_storage_key(self, account: AccountId) -> StorageKey:
        return f"{LOCKS_KEY_PREFIX}{account}"

    def encode_locks(self, locks: Sequence[StakeLock]) -> StorageValue:
        """Encode a lock set as canonical JSON (sorted keys, no whitespace)."""
        return json.dumps(
            [{"id": lock.id, "amount": lock.amount, "reasons": lock.reasons} for lock in locks],
            sort_keys=True,
            separators=(",", ":"),
        )

    def decode_locks(self, value: StorageValue) -> Tuple[StakeLock, ...]:
        return tuple(
            StakeLock(id=item["id"], amount=item["amount"], reasons=item["reasons"])
            for item in json.loads(value)
        )

    def submit_storage_patch(self, patch: StoragePatch) -> PatchReceipt:
        """
        Apply the patch to the stored locks.

        Every key is validated before anything is written.

        Raises:
            ValueError: If a key is not a lock storage key of this source
        """
        decoded = []
        for update in patch:
            if not update.key.startswith(LOCKS_KEY_PREFIX):
                raise ValueError(f"Unknown storage key: {update.key}")
            account = update.key[len(LOCKS_KEY_PREFIX):]
            decoded.append((account, self.decode_locks(update.value)))

        for account, account_locks in decoded:
            self.locks[account] = account_locks
        self.submitted.append(patch)

        digest = hashlib.sha256(patch.to_json().encode()).hexdigest()
        return PatchReceipt(
            extrinsic_hash=f"0x{digest}",
            block_hash=None,
            success=True,
            events=(f"system.ExtrinsicSuccess {len(patch)} storage items",),
        )

    def __repr__(self):
        return f"StaticChainSource({len(self.locks)} lock sets, {len(self.ledgers)} ledgers)"
