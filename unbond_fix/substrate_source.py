"""
substrate_source.py - ChainSource backed by a live Substrate node

Thin adapter over substrateinterface. Storage keys, SCALE encoding,
signing and submission are all done by the library; this module only maps
its query results into core types and wraps the patch into

    Sudo.sudo(System.set_storage(items))
"""

from __future__ import annotations
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from substrateinterface import Keypair, SubstrateInterface

from .core import (
    AccountId, PatchReceipt, PatchSubmissionError, StakeLock, StakingLedger,
    StorageKey, StoragePatch, StorageValue, UnlockChunk,
)


# Type string used to SCALE-encode a replacement lock set.
DEFAULT_LOCKS_TYPE = "Vec<BalanceLock>"

# Event sections reported after submission.
REPORTED_EVENT_SECTIONS = ("System", "Utility", "Sudo")


def _lock_id_hex(raw: Any) -> str:
    """Lock ids come back either as hex or as the 8 raw characters."""
    if isinstance(raw, (bytes, bytearray)):
        return "0x" + bytes(raw).hex()
    text = str(raw)
    if text.startswith("0x"):
        return text.lower()
    return "0x" + text.encode().hex()


def _scale_value(result: Any) -> Any:
    if result is None:
        return None
    return result.value if hasattr(result, "value") else result


def lock_from_value(value: Dict[str, Any]) -> StakeLock:
    return StakeLock(
        id=_lock_id_hex(value["id"]),
        amount=int(value["amount"]),
        reasons=value.get("reasons"),
    )


def ledger_from_value(value: Dict[str, Any]) -> StakingLedger:
    return StakingLedger(
        active=int(value["active"]),
        unlocking=tuple(
            UnlockChunk(value=int(chunk["value"]), era=int(chunk["era"]))
            for chunk in value.get("unlocking") or ()
        ),
        total=int(value["total"]),
        stash=value.get("stash"),
    )


class SubstrateChainSource:
    """
    Chain source reading from and submitting to a Substrate node.

    SubstrateInterface is not thread-safe: request ids and the websocket
    reply queue are shared. Every call into the client is serialized
    through one lock, so concurrent callers wait for each other.
    """

    def __init__(
        self,
        substrate: SubstrateInterface,
        keypair: Optional[Keypair] = None,
        locks_type: str = DEFAULT_LOCKS_TYPE,
        wait_for_finalization: bool = True,
    ):
        """
        Args:
            substrate: Connected SubstrateInterface
            keypair: Sudo key, required only for submit_storage_patch()
            locks_type: Type string for encoding lock sets
            wait_for_finalization: Wait for finality instead of inclusion
        """
        self.substrate = substrate
        self.keypair = keypair
        self.locks_type = locks_type
        self.wait_for_finalization = wait_for_finalization
        self._lock = threading.RLock()

    @classmethod
    def connect(
        cls,
        url: str,
        ss58_format: int,
        account_secret: Optional[str] = None,
    ) -> SubstrateChainSource:
        """Open a connection and, if a secret URI is given, load the sudo key."""
        substrate = SubstrateInterface(url=url, ss58_format=ss58_format, auto_reconnect=True)
        keypair = None
        if account_secret:
            keypair = Keypair.create_from_uri(account_secret, ss58_format=ss58_format)
        return cls(substrate, keypair)

    def describe(self) -> str:
        with self._lock:
            return f"{self.substrate.chain} {self.substrate.version}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_locks(self, account: AccountId) -> Sequence[StakeLock]:
        with self._lock:
            result = self.substrate.query("Balances", "Locks", [account])
        return tuple(lock_from_value(item) for item in _scale_value(result) or ())

    def get_ledger(self, account: AccountId) -> Optional[StakingLedger]:
        with self._lock:
            value = _scale_value(self.substrate.query("Staking", "Ledger", [account]))
        if not value:
            return None
        return ledger_from_value(value)

    def iter_ledgers(self) -> Iterable[Tuple[AccountId, StakingLedger]]:
        with self._lock:
            entries = list(self.substrate.query_map("Staking", "Ledger"))
        for key, result in entries:
            value = _scale_value(result)
            if value:
                yield _scale_value(key), ledger_from_value(value)

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def locks_storage_key(self, account: AccountId) -> StorageKey:
        with self._lock:
            return self.substrate.create_storage_key("Balances", "Locks", [account]).to_hex()

    def encode_locks(self, locks: Sequence[StakeLock]) -> StorageValue:
        value = [
            {"id": lock.id, "amount": lock.amount, "reasons": lock.reasons}
            for lock in locks
        ]
        with self._lock:
            return self.substrate.encode_scale(self.locks_type, value).to_hex()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def compose_patch_call(self, patch: StoragePatch):
        """Build Sudo.sudo(System.set_storage(items)) for the patch."""
        with self._lock:
            set_storage = self.substrate.compose_call(
                call_module="System",
                call_function="set_storage",
                call_params={"items": [update.as_pair() for update in patch]},
            )
            return self.substrate.compose_call(
                call_module="Sudo",
                call_function="sudo",
                call_params={"call": set_storage},
            )

    def submit_storage_patch(self, patch: StoragePatch) -> PatchReceipt:
        """
        Sign and submit the patch with the sudo key.

        Raises:
            PatchSubmissionError: If no key is loaded or dispatch failed
        """
        if self.keypair is None:
            raise PatchSubmissionError("no sudo key loaded, cannot submit")

        with self._lock:
            extrinsic = self.substrate.create_signed_extrinsic(
                call=self.compose_patch_call(patch),
                keypair=self.keypair,
            )
            receipt = self.substrate.submit_extrinsic(
                extrinsic,
                wait_for_inclusion=True,
                wait_for_finalization=self.wait_for_finalization,
            )
            events = tuple(self._format_events(receipt.triggered_events))

        if not receipt.is_success:
            raise PatchSubmissionError(f"storage patch failed: {receipt.error_message}")
        return PatchReceipt(
            extrinsic_hash=receipt.extrinsic_hash,
            block_hash=receipt.block_hash,
            success=True,
            events=events,
        )

    @staticmethod
    def _format_events(triggered_events: Iterable[Any]) -> List[str]:
        lines = []
        for event in triggered_events:
            value = _scale_value(event) or {}
            section = value.get("module_id")
            if section not in REPORTED_EVENT_SECTIONS:
                continue
            lines.append(f"{section.lower()}.{value.get('event_id')} {value.get('attributes')}")
        return lines

    def __repr__(self):
        return f"SubstrateChainSource({self.substrate.url})"
