"""
audit.py - Read-only staking consistency audit

Two independent checks:

1. Ledger check: for every staking ledger on chain,
       total == active + sum(unlocking[i].value)
2. Lock check: for a candidate set of accounts,
       staking_lock.amount == ledger.total

The accounts failing the ledger check are then compared with the
remediation list by build_reconciliation_report(). A mismatch there is a
diagnostic, not an error.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Collection, FrozenSet, Iterable, List, Sequence, Tuple

from .amounts import format_planck
from .core import AccountId, ChainSource, StakingLedger
from .reconcile import DEFAULT_MAX_WORKERS, AccountSnapshot, load_snapshots


@dataclass(frozen=True, slots=True)
class LedgerDiscrepancy:
    """A ledger whose cached total differs from active + unlocking."""
    account: AccountId
    stored_total: int
    actual_total: int

    @property
    def difference(self) -> int:
        return self.stored_total - self.actual_total


@dataclass(frozen=True, slots=True)
class LockDiscrepancy:
    """An account whose staking lock differs from its ledger total."""
    account: AccountId
    lock_amount: int
    ledger_total: int

    @property
    def difference(self) -> int:
        return self.lock_amount - self.ledger_total


@dataclass(frozen=True, slots=True)
class AuditResult:
    """Both flagged sets of one audit pass."""
    ledger_discrepancies: Tuple[LedgerDiscrepancy, ...] = ()
    lock_discrepancies: Tuple[LockDiscrepancy, ...] = ()
    ledgers_scanned: int = 0

    @property
    def ledger_inconsistent(self) -> FrozenSet[AccountId]:
        return frozenset(d.account for d in self.ledger_discrepancies)

    @property
    def lock_inconsistent(self) -> FrozenSet[AccountId]:
        return frozenset(d.account for d in self.lock_discrepancies)


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    """
    Comparison of the detected inconsistent set I with the remediation list D.

    Attributes:
        detected: I, accounts flagged by the ledger check
        expected: D, accounts of the remediation list
        consistent: True iff |I| == |D| and I - D is empty
        unexpected: I - D, flagged but missing from the list (sorted)
        undetected: D - I, listed but not flagged (sorted)
    """
    detected: FrozenSet[AccountId]
    expected: FrozenSet[AccountId]
    consistent: bool
    unexpected: Tuple[AccountId, ...]
    undetected: Tuple[AccountId, ...]


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_ledger_discrepancies(
    entries: Iterable[Tuple[AccountId, StakingLedger]],
) -> Tuple[LedgerDiscrepancy, ...]:
    """Flag every ledger whose total is not active + unlocking. Sorted by account."""
    flagged = [
        LedgerDiscrepancy(account, ledger.total, ledger.bonded_and_unlocking())
        for account, ledger in entries
        if not ledger.is_consistent()
    ]
    return tuple(sorted(flagged, key=lambda d: d.account))


def calculate_lock_discrepancies(
    snapshots: Iterable[AccountSnapshot],
) -> Tuple[LockDiscrepancy, ...]:
    """
    Flag every account whose staking lock amount differs from its ledger total.

    A missing staking lock counts as 0 locked, a missing ledger as 0 bonded.
    """
    flagged = []
    for snapshot in snapshots:
        lock = snapshot.staking_lock
        lock_amount = lock.amount if lock is not None else 0
        ledger_total = snapshot.ledger.total if snapshot.ledger is not None else 0
        if lock_amount != ledger_total:
            flagged.append(LockDiscrepancy(snapshot.account, lock_amount, ledger_total))
    return tuple(sorted(flagged, key=lambda d: d.account))


def build_reconciliation_report(
    detected: Collection[AccountId],
    expected: Collection[AccountId],
) -> ReconciliationReport:
    """Compare the detected inconsistent accounts with the remediation list."""
    detected_set = frozenset(detected)
    expected_set = frozenset(expected)
    unexpected = tuple(sorted(detected_set - expected_set))
    return ReconciliationReport(
        detected=detected_set,
        expected=expected_set,
        consistent=len(detected_set) == len(expected_set) and not unexpected,
        unexpected=unexpected,
        undetected=tuple(sorted(expected_set - detected_set)),
    )


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def audit_chain(
    source: ChainSource,
    accounts: Sequence[AccountId] = (),
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> AuditResult:
    """
    Run both checks against live chain state.

    Args:
        source: Chain access (only read methods are used)
        accounts: Candidates for the lock check; the ledger check always
                  covers every ledger on chain
        max_workers: Concurrent queries for the lock check

    Ledgers are attributed to the account they are stored under, the same
    key get_ledger() and the remediation list use. A ledger's stash field
    is not consulted.
    """
    entries = list(source.iter_ledgers())
    snapshots = load_snapshots(source, list(accounts), max_workers)
    return AuditResult(
        ledger_discrepancies=calculate_ledger_discrepancies(entries),
        lock_discrepancies=calculate_lock_discrepancies(snapshots),
        ledgers_scanned=len(entries),
    )


def format_report(
    audit: AuditResult,
    report: ReconciliationReport,
    details: bool = True,
) -> List[str]:
    """
    Render the audit and the reconciliation report as console lines.

    With details=False the per-account lines of both checks are left out.
    """
    lines = [
        f"scanned {audit.ledgers_scanned} staking ledgers",
        f"found {len(audit.ledger_discrepancies)} inconsistencies",
    ]
    for d in audit.ledger_discrepancies if details else ():
        lines.append(
            f"  {d.account}: total {format_planck(d.stored_total)} "
            f"!= active + unlocking {format_planck(d.actual_total)}"
        )
    if audit.lock_discrepancies:
        lines.append(f"found {len(audit.lock_discrepancies)} lock/ledger mismatches")
        for d in audit.lock_discrepancies if details else ():
            lines.append(
                f"  {d.account}: lock {format_planck(d.lock_amount)} "
                f"!= ledger total {format_planck(d.ledger_total)}"
            )

    if report.consistent:
        lines.append("inconsistencies are consistent with the remediation list")
    else:
        lines.append(
            f"inconsistencies are not consistent with the remediation list "
            f"({len(report.detected)} detected, {len(report.expected)} listed)"
        )
        lines.append(f"not in remediation list: {list(report.unexpected)}")
        if report.undetected:
            lines.append(f"listed but not detected: {list(report.undetected)}")
    return lines
