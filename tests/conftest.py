"""
conftest.py - Shared pytest fixtures for remediation tests

Provides:
- Lock and ledger builders in whole-token units
- A static chain with two accounts to fix and one healthy account
- The matching remediation list, in memory and as a JSON file
"""

import json
import pytest
from decimal import Decimal
from typing import List

from unbond_fix import (
    AccountRemediationRecord,
    StakeLock,
    StakingLedger,
    StaticChainSource,
    UnlockChunk,
    STAKING_LOCK_ID,
    PLANCK_PER_UNIT,
)


VESTING_LOCK_ID = "0x76657374696e6720"  # b"vesting "


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def tokens(amount) -> int:
    """Whole tokens to planck, exact for str/Decimal/int inputs."""
    return int(Decimal(str(amount)) * PLANCK_PER_UNIT)


def staking_lock(amount, reasons="All") -> StakeLock:
    return StakeLock(STAKING_LOCK_ID, tokens(amount), reasons)


def vesting_lock(amount) -> StakeLock:
    return StakeLock(VESTING_LOCK_ID, tokens(amount), "Misc")


def ledger(active, unlocking=(), total=None, stash=None) -> StakingLedger:
    chunks = tuple(UnlockChunk(tokens(value), era) for value, era in unlocking)
    actual = tokens(active) + sum(c.value for c in chunks)
    return StakingLedger(
        active=tokens(active),
        unlocking=chunks,
        total=actual if total is None else tokens(total),
        stash=stash,
    )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def remediation_source() -> StaticChainSource:
    """
    alice: lock 1000 (+ vesting), bonded 900 + 89.5 unlocking, stale total 1000
    bob:   lock 250.25, nothing bonded, stale total 250.25
    carol: healthy, lock 500 == total 500
    """
    return StaticChainSource(
        locks={
            "alice": [vesting_lock(50), staking_lock(1000)],
            "bob": [staking_lock("250.25", "Fee")],
            "carol": [staking_lock(500)],
        },
        ledgers={
            "alice": ledger(900, unlocking=[("89.5", 10)], total=1000),
            "bob": ledger(0, total="250.25"),
            "carol": ledger(500),
        },
    )


@pytest.fixture
def remediation_records() -> List[AccountRemediationRecord]:
    return [
        AccountRemediationRecord("alice", Decimal("10.5")),
        AccountRemediationRecord("bob", Decimal("250.25")),
    ]


@pytest.fixture
def records_file(tmp_path):
    """The remediation list in the legacy gen2 file shape."""
    path = tmp_path / "data.json"
    path.write_text(json.dumps([
        {"account": "alice", "gen2": {"totalUnlocking": 10.5}},
        {"account": "bob", "gen2": {"totalUnlocking": 250.25}},
    ]))
    return path
