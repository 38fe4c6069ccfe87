"""
config.py - Run configuration and remediation list loading

Environment variables (a .env file in the working directory is honoured):

    RPC_SERVER      node websocket URL          (ws://127.0.0.1:9944)
    ACCOUNT_SECRET  sudo key secret URI         (//Alice)
    RECORDS_PATH    remediation list JSON file  (data.json)
    OUTPUT_PATH     storage patch report file   (storageUpdates.json)
    MAX_WORKERS     concurrent chain queries    (8)
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dotenv import find_dotenv, load_dotenv

from .core import AccountRemediationRecord


DEFAULT_RPC_URL = "ws://127.0.0.1:9944"
DEFAULT_ACCOUNT_SECRET = "//Alice"
DEFAULT_RECORDS_PATH = "data.json"
DEFAULT_OUTPUT_PATH = "storageUpdates.json"
DEFAULT_MAX_WORKERS = 8

# SS58 address prefix of the target chain.
DEFAULT_SS58_FORMAT = 63


@dataclass(frozen=True, slots=True)
class RemediationConfig:
    """Everything a run needs besides the remediation list itself."""
    rpc_url: str = DEFAULT_RPC_URL
    account_secret: str = DEFAULT_ACCOUNT_SECRET
    ss58_format: int = DEFAULT_SS58_FORMAT
    records_path: Path = Path(DEFAULT_RECORDS_PATH)
    output_path: Path = Path(DEFAULT_OUTPUT_PATH)
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self):
        if not isinstance(self.records_path, Path):
            object.__setattr__(self, 'records_path', Path(self.records_path))
        if not isinstance(self.output_path, Path):
            object.__setattr__(self, 'output_path', Path(self.output_path))
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> RemediationConfig:
        """
        Build a config from environment variables.

        Args:
            env: Mapping to read instead of os.environ. When omitted, a .env
                 file is loaded into os.environ first.
        """
        if env is None:
            load_dotenv(find_dotenv(usecwd=True))
            env = os.environ
        return cls(
            rpc_url=env.get("RPC_SERVER", DEFAULT_RPC_URL),
            account_secret=env.get("ACCOUNT_SECRET", DEFAULT_ACCOUNT_SECRET),
            records_path=Path(env.get("RECORDS_PATH", DEFAULT_RECORDS_PATH)),
            output_path=Path(env.get("OUTPUT_PATH", DEFAULT_OUTPUT_PATH)),
            max_workers=int(env.get("MAX_WORKERS", DEFAULT_MAX_WORKERS)),
        )

    def override(self, **changes: Any) -> RemediationConfig:
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def parse_record(item: Dict[str, Any]) -> AccountRemediationRecord:
    """
    Parse one remediation list entry.

    Accepted shapes:
        {"account": ..., "priorExcessAmount": x}
        {"account": ..., "prior_excess_amount": x}
        {"account": ..., "gen2": {"totalUnlocking": x}}
    """
    if not isinstance(item, dict):
        raise ValueError(f"Record must be an object, got {item!r}")
    if "account" not in item:
        raise ValueError(f"Record without account: {item!r}")
    if "priorExcessAmount" in item:
        amount = item["priorExcessAmount"]
    elif "prior_excess_amount" in item:
        amount = item["prior_excess_amount"]
    elif isinstance(item.get("gen2"), dict) and "totalUnlocking" in item["gen2"]:
        amount = item["gen2"]["totalUnlocking"]
    else:
        raise ValueError(f"Record without excess amount: {item!r}")
    return AccountRemediationRecord(account=item["account"], prior_excess_amount=amount)


def parse_records(text: str) -> Tuple[AccountRemediationRecord, ...]:
    """Parse a JSON array of records. Numbers with a fraction become Decimal."""
    data = json.loads(text, parse_float=Decimal)
    if not isinstance(data, list):
        raise ValueError("Remediation list must be a JSON array")
    records = tuple(parse_record(item) for item in data)
    accounts = [r.account for r in records]
    if len(set(accounts)) != len(accounts):
        duplicates = sorted({a for a in accounts if accounts.count(a) > 1})
        raise ValueError(f"Duplicate accounts in remediation list: {duplicates}")
    return records


def load_records(path: Union[str, Path]) -> Tuple[AccountRemediationRecord, ...]:
    """Load the remediation list from a JSON file."""
    return parse_records(Path(path).read_text(encoding="utf-8"))
