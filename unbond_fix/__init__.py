"""
unbond_fix - Staking lock remediation

Corrects the staking locks of a fixed list of accounts whose locks still
carry unlocking amounts from a previous ledger generation, and audits the
chain for ledgers whose cached total drifted.

Usage:
    from unbond_fix import (
        StaticChainSource, StakeLock, StakingLedger, UnlockChunk,
        AccountRemediationRecord, STAKING_LOCK_ID, compute_storage_patch,
    )

    source = StaticChainSource(
        locks={"alice": [StakeLock(STAKING_LOCK_ID, 1000 * 10**12, "All")]},
        ledgers={"alice": StakingLedger(active=989_500_000_000_000, total=989_500_000_000_000)},
    )
    records = [AccountRemediationRecord("alice", "10.5")]

    patch = compute_storage_patch(source, records)
    print(patch.to_json())
    source.submit_storage_patch(patch)
"""

# Core types
from .core import (
    AccountId,
    AccountRemediationRecord,
    UnlockChunk,
    StakeLock,
    StakingLedger,
    StorageUpdate,
    StoragePatch,
    PatchReceipt,
    ChainSource,
    RemediationError,
    InvariantViolation,
    MissingData,
    PatchSubmissionError,
    PLANCK_DECIMALS,
    PLANCK_PER_UNIT,
    STAKING_LOCK_ID,
)

# Fixed-point conversion
from .amounts import (
    to_planck,
    from_planck,
    format_planck,
    fraction_digits,
)

# Reconciliation
from .reconcile import (
    AccountSnapshot,
    find_staking_lock,
    calculate_corrected_amount,
    calculate_replacement_locks,
    reconcile_account,
    load_snapshot,
    load_snapshots,
    compute_storage_patch,
)

# Audit
from .audit import (
    LedgerDiscrepancy,
    LockDiscrepancy,
    AuditResult,
    ReconciliationReport,
    calculate_ledger_discrepancies,
    calculate_lock_discrepancies,
    build_reconciliation_report,
    audit_chain,
    format_report,
)

# Chain sources
from .sources import StaticChainSource

# Configuration
from .config import (
    RemediationConfig,
    parse_record,
    parse_records,
    load_records,
)

__all__ = [
    # Core
    'AccountId', 'AccountRemediationRecord', 'UnlockChunk', 'StakeLock', 'StakingLedger',
    'StorageUpdate', 'StoragePatch', 'PatchReceipt', 'ChainSource',
    'RemediationError', 'InvariantViolation', 'MissingData', 'PatchSubmissionError',
    'PLANCK_DECIMALS', 'PLANCK_PER_UNIT', 'STAKING_LOCK_ID',
    # Amounts
    'to_planck', 'from_planck', 'format_planck', 'fraction_digits',
    # Reconciliation
    'AccountSnapshot', 'find_staking_lock', 'calculate_corrected_amount',
    'calculate_replacement_locks', 'reconcile_account',
    'load_snapshot', 'load_snapshots', 'compute_storage_patch',
    # Audit
    'LedgerDiscrepancy', 'LockDiscrepancy', 'AuditResult', 'ReconciliationReport',
    'calculate_ledger_discrepancies', 'calculate_lock_discrepancies',
    'build_reconciliation_report', 'audit_chain', 'format_report',
    # Sources
    'StaticChainSource',
    # Config
    'RemediationConfig', 'parse_record', 'parse_records', 'load_records',
]

__version__ = '1.0.0'
