"""
test_substrate_source.py - Unit tests for substrate_source.py

Uses a hand-written FakeSubstrate that mimics the parts of
SubstrateInterface the adapter calls, so no node is needed.
"""

import threading
import time
import pytest
from types import SimpleNamespace

from unbond_fix import (
    StakeLock, StakingLedger, UnlockChunk, StoragePatch, StorageUpdate,
    ChainSource, PatchSubmissionError, STAKING_LOCK_ID, load_snapshots,
)
from unbond_fix.substrate_source import (
    SubstrateChainSource, lock_from_value, ledger_from_value,
)


class FakeScale:
    def __init__(self, value):
        self.value = value


class FakeHex:
    def __init__(self, text):
        self.text = text

    def to_hex(self):
        return self.text


class FakeSubstrate:
    """Minimal stand-in for SubstrateInterface."""

    url = "ws://fake:9944"
    chain = "Fake Testnet"
    version = "1.0.0"

    def __init__(self, storage=None, ledgers=None, success=True, events=()):
        self.storage = storage or {}
        self.ledgers = ledgers or []
        self.success = success
        self.events = events
        self.calls = []
        self.submitted = []

    def query(self, module, storage_function, params):
        return FakeScale(self.storage.get((module, storage_function, params[0])))

    def query_map(self, module, storage_function):
        assert (module, storage_function) == ("Staking", "Ledger")
        return [(FakeScale(account), FakeScale(value)) for account, value in self.ledgers]

    def create_storage_key(self, pallet, storage_function, params):
        return FakeHex(f"0x{pallet}.{storage_function}.{params[0]}".lower())

    def encode_scale(self, type_string, value):
        return FakeHex(f"{type_string}:{value!r}")

    def compose_call(self, call_module, call_function, call_params):
        call = {"module": call_module, "function": call_function, "params": call_params}
        self.calls.append(call)
        return call

    def create_signed_extrinsic(self, call, keypair):
        return {"call": call, "signer": keypair}

    def submit_extrinsic(self, extrinsic, wait_for_inclusion=False, wait_for_finalization=False):
        self.submitted.append((extrinsic, wait_for_inclusion, wait_for_finalization))
        return SimpleNamespace(
            extrinsic_hash="0xabc",
            block_hash="0xblock",
            is_success=self.success,
            error_message=None if self.success else {"name": "BadOrigin"},
            triggered_events=[FakeScale(e) for e in self.events],
        )


LOCK_VALUE = {"id": STAKING_LOCK_ID, "amount": 1000, "reasons": "All"}
LEDGER_VALUE = {
    "stash": "alice",
    "total": 160,
    "active": 100,
    "unlocking": [{"value": 50, "era": 10}],
    "claimed_rewards": [],
}


class TestValueMapping:

    def test_lock_from_hex_id(self):
        assert lock_from_value(LOCK_VALUE) == StakeLock(STAKING_LOCK_ID, 1000, "All")

    def test_lock_from_raw_id(self):
        lock = lock_from_value({"id": "staking ", "amount": 5, "reasons": "Misc"})
        assert lock.is_staking

    def test_lock_from_bytes_id(self):
        assert lock_from_value({"id": b"staking ", "amount": 5, "reasons": "All"}).is_staking

    def test_ledger_from_value(self):
        assert ledger_from_value(LEDGER_VALUE) == StakingLedger(
            active=100, unlocking=(UnlockChunk(50, 10),), total=160, stash="alice",
        )

    def test_ledger_without_unlocking(self):
        ledger = ledger_from_value({"total": 5, "active": 5, "unlocking": []})
        assert ledger.unlocking == ()
        assert ledger.stash is None


class TestSubstrateReads:

    def test_satisfies_protocol(self):
        assert isinstance(SubstrateChainSource(FakeSubstrate()), ChainSource)

    def test_get_locks(self):
        fake = FakeSubstrate(storage={("Balances", "Locks", "alice"): [LOCK_VALUE]})
        assert SubstrateChainSource(fake).get_locks("alice") == (StakeLock(STAKING_LOCK_ID, 1000, "All"),)

    def test_get_locks_empty(self):
        assert SubstrateChainSource(FakeSubstrate()).get_locks("alice") == ()

    def test_get_ledger(self):
        fake = FakeSubstrate(storage={("Staking", "Ledger", "alice"): LEDGER_VALUE})
        assert SubstrateChainSource(fake).get_ledger("alice").total == 160

    def test_get_ledger_none(self):
        assert SubstrateChainSource(FakeSubstrate()).get_ledger("alice") is None

    def test_iter_ledgers(self):
        fake = FakeSubstrate(ledgers=[("ctrl", LEDGER_VALUE), ("empty", None)])
        entries = list(SubstrateChainSource(fake).iter_ledgers())
        assert [account for account, _ in entries] == ["ctrl"]
        assert entries[0][1].stash == "alice"

    def test_describe(self):
        assert SubstrateChainSource(FakeSubstrate()).describe() == "Fake Testnet 1.0.0"


class TestSubstrateEncoding:

    def test_storage_key(self):
        assert SubstrateChainSource(FakeSubstrate()).locks_storage_key("alice") == "0xbalances.locks.alice"

    def test_encode_locks_uses_type_string(self):
        source = SubstrateChainSource(FakeSubstrate(), locks_type="Vec<BalanceLock<Balance>>")
        value = source.encode_locks([StakeLock(STAKING_LOCK_ID, 7, "All")])
        assert value.startswith("Vec<BalanceLock<Balance>>:")
        assert "'amount': 7" in value


class TestSubstrateSubmission:

    PATCH = StoragePatch((StorageUpdate("0x01", "0x02"), StorageUpdate("0x03", "0x04")))

    def test_composes_sudo_set_storage(self):
        fake = FakeSubstrate()
        call = SubstrateChainSource(fake).compose_patch_call(self.PATCH)
        assert call["module"] == "Sudo"
        assert call["function"] == "sudo"
        inner = call["params"]["call"]
        assert (inner["module"], inner["function"]) == ("System", "set_storage")
        assert inner["params"] == {"items": [["0x01", "0x02"], ["0x03", "0x04"]]}

    def test_submit_requires_key(self):
        with pytest.raises(PatchSubmissionError, match="no sudo key"):
            SubstrateChainSource(FakeSubstrate()).submit_storage_patch(self.PATCH)

    def test_submit_success(self):
        events = (
            {"module_id": "Sudo", "event_id": "Sudid", "attributes": {"sudo_result": "Ok"}},
            {"module_id": "Balances", "event_id": "Withdraw", "attributes": {}},
            {"module_id": "System", "event_id": "ExtrinsicSuccess", "attributes": {}},
        )
        fake = FakeSubstrate(events=events)
        receipt = SubstrateChainSource(fake, keypair="sudo-key").submit_storage_patch(self.PATCH)

        assert receipt.success
        assert receipt.extrinsic_hash == "0xabc"
        assert receipt.block_hash == "0xblock"
        assert receipt.events == (
            "sudo.Sudid {'sudo_result': 'Ok'}",
            "system.ExtrinsicSuccess {}",
        )
        (extrinsic, inclusion, finalization), = fake.submitted
        assert extrinsic["signer"] == "sudo-key"
        assert inclusion and finalization

    def test_submit_inclusion_only(self):
        fake = FakeSubstrate()
        SubstrateChainSource(fake, keypair="k", wait_for_finalization=False).submit_storage_patch(self.PATCH)
        assert fake.submitted[0][2] is False

    def test_submit_failure_raises(self):
        fake = FakeSubstrate(success=False)
        with pytest.raises(PatchSubmissionError, match="BadOrigin"):
            SubstrateChainSource(fake, keypair="k").submit_storage_patch(self.PATCH)


class OverlapDetectingSubstrate(FakeSubstrate):
    """Records the highest number of client calls in flight at once."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._guard = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def query(self, module, storage_function, params):
        with self._guard:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(0.005)
            return super().query(module, storage_function, params)
        finally:
            with self._guard:
                self.in_flight -= 1


class TestSubstrateConcurrency:

    def test_concurrent_snapshots_never_overlap_client_calls(self):
        accounts = [f"acct{i}" for i in range(16)]
        storage = {}
        for i, account in enumerate(accounts):
            storage[("Balances", "Locks", account)] = [dict(LOCK_VALUE, amount=i + 1)]
            storage[("Staking", "Ledger", account)] = dict(LEDGER_VALUE, active=i, total=i, unlocking=[])
        fake = OverlapDetectingSubstrate(storage=storage)

        snapshots = load_snapshots(SubstrateChainSource(fake), accounts, max_workers=8)

        assert fake.max_in_flight == 1
        for i, snapshot in enumerate(snapshots):
            assert snapshot.account == f"acct{i}"
            assert snapshot.locks[0].amount == i + 1
            assert snapshot.ledger.active == i
