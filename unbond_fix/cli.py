"""
cli.py - Command-line entry point

    unbond-fix fix              compute the patch, write the JSON report
    unbond-fix fix --send       ...and submit it as one sudo transaction
    unbond-fix audit            scan all ledgers and compare with the list

Settings come from the environment (see config.py); flags override them.
"""

from __future__ import annotations
import argparse
import sys
from typing import Optional, Sequence

from .audit import audit_chain, build_reconciliation_report, format_report
from .config import RemediationConfig, load_records
from .core import ChainSource, RemediationError
from .reconcile import compute_storage_patch
from .substrate_source import SubstrateChainSource


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="unbond-fix",
        description="Correct staking locks left behind by a previous ledger generation.",
    )
    ap.add_argument("--rpc", help="Node websocket URL (overrides RPC_SERVER)")
    ap.add_argument("--records", help="Remediation list JSON (overrides RECORDS_PATH)")
    ap.add_argument("--workers", type=int, help="Concurrent chain queries (overrides MAX_WORKERS)")
    ap.add_argument("--quiet", action="store_true", help="Only print errors and the final result")

    sub = ap.add_subparsers(dest="command", required=True)

    fix = sub.add_parser("fix", help="Generate the storage patch")
    fix.add_argument("--output", help="Patch report path (overrides OUTPUT_PATH)")
    fix.add_argument("--send", action="store_true",
                     help="Submit the patch as Sudo.sudo(System.set_storage) with ACCOUNT_SECRET")

    sub.add_parser("audit", help="Find inconsistent ledgers and compare with the remediation list")
    return ap


def _connect(config: RemediationConfig, with_key: bool, verbose: bool) -> ChainSource:
    source = SubstrateChainSource.connect(
        config.rpc_url,
        config.ss58_format,
        config.account_secret if with_key else None,
    )
    if verbose:
        print(f"connected to {config.rpc_url} ({source.describe()})")
        if source.keypair is not None:
            print(f"sudo account: {source.keypair.ss58_address}")
    return source


def run_fix(
    config: RemediationConfig,
    source: ChainSource,
    send: bool = False,
    verbose: bool = True,
) -> int:
    """Compute the patch, persist it, and optionally submit it."""
    records = load_records(config.records_path)
    if verbose:
        print(f"loaded {len(records)} records from {config.records_path}")

    patch = compute_storage_patch(source, records, config.max_workers, verbose=verbose)
    config.output_path.write_text(patch.to_json() + "\n", encoding="utf-8")
    print(f"storage updates generated: {len(patch)} -> {config.output_path}")

    if not send:
        print('run "unbond-fix fix --send" to send tx')
        return 0

    print("sending tx")
    receipt = source.submit_storage_patch(patch)
    if receipt.block_hash:
        print(f"included in block {receipt.block_hash}")
    print(f"tx: {receipt.extrinsic_hash}")
    for event in receipt.events:
        print(f"event: {event}")
    return 0


def run_audit(
    config: RemediationConfig,
    source: ChainSource,
    verbose: bool = True,
) -> int:
    """Audit every ledger and report how the result compares with the list."""
    accounts = [record.account for record in load_records(config.records_path)]
    audit = audit_chain(source, accounts, config.max_workers)
    report = build_reconciliation_report(audit.ledger_inconsistent, accounts)

    lines = format_report(audit, report, details=verbose)
    print("\n".join(lines))
    return 0


def main(argv: Optional[Sequence[str]] = None, source: Optional[ChainSource] = None) -> int:
    """
    Run the CLI.

    Args:
        argv: Arguments (default: sys.argv[1:])
        source: Chain source to use instead of connecting to RPC
    """
    args = build_parser().parse_args(argv)
    verbose = not args.quiet

    try:
        config = RemediationConfig.from_env().override(
            rpc_url=args.rpc,
            records_path=args.records,
            max_workers=args.workers,
            output_path=getattr(args, "output", None),
        )
        if source is None:
            source = _connect(config, with_key=getattr(args, "send", False), verbose=verbose)

        if args.command == "fix":
            return run_fix(config, source, send=args.send, verbose=verbose)
        return run_audit(config, source, verbose=verbose)
    except (RemediationError, ValueError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def entry_point() -> None:
    sys.exit(main())
