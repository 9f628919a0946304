from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .agent import DEFAULT_WORKERS
from .aws.accounts import Account, parse_accounts, split_regions
from .aws.clients import DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT
from .reconcile.model import ReservationKey
from .util.pagination import DEFAULT_MAX_PAGES
from .util.time import run_dir_stamp, utc_now

# --------
# Defaults
# --------
DEFAULT_CACHE_DIR = Path(".ri-report") / "cache"
DEFAULT_OUTDIR = Path("out")
DEFAULT_ACCOUNT_NAME = "default"
ALLOWED_CONFIG_KEYS = {
    "accounts",
    "regions",
    "workers",
    "max_pages",
    "cache_dir",
    "outdir",
    "parquet",
    "progress",
    "json_logs",
    "log_level",
    "connect_timeout",
    "read_timeout",
}
BOOL_CONFIG_KEYS = {"parquet", "progress", "json_logs"}
INT_CONFIG_KEYS = {"workers", "max_pages", "connect_timeout", "read_timeout"}
PATH_CONFIG_KEYS = {"cache_dir", "outdir"}
STR_CONFIG_KEYS = {"log_level"}


@dataclass(frozen=True)
class RunConfig:
    accounts: Tuple[Account, ...]
    cache_dir: Path = DEFAULT_CACHE_DIR
    outdir: Path = DEFAULT_OUTDIR
    regions: Optional[List[str]] = None
    parquet: bool = False
    progress: bool = True
    json_logs: bool = False
    log_level: str = "INFO"

    # Performance / limits
    workers: int = DEFAULT_WORKERS
    max_pages: int = DEFAULT_MAX_PAGES
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    read_timeout: int = DEFAULT_READ_TIMEOUT

    # Single bucket filter for show
    key: Optional[ReservationKey] = None

    # Internal/derived
    started_at: datetime = field(default_factory=utc_now)


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key == "regions":
            normalized[key] = list(split_regions(value))
        elif key == "accounts":
            if not isinstance(value, list):
                raise ValueError("Config field 'accounts' must be a list")
            normalized[key] = value
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in PATH_CONFIG_KEYS:
            if not isinstance(value, (str, Path)):
                raise ValueError(f"Config field '{key}' must be a string path")
            normalized[key] = value
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, str):
                raise ValueError(f"Config field '{key}' must be a string")
            normalized[key] = value
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def _cli_accounts(profiles: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    """
    --profiles a,b is shorthand for one account per named profile.
    """
    if not profiles:
        return None
    return [{"name": p.strip(), "profile": p.strip()} for p in profiles.split(",") if p.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ri-report", description="EC2 reserved instance utilization report")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument(
            "--profiles",
            default=None,
            help="Comma-separated AWS profiles, one account each (overrides config accounts)",
        )
        p.add_argument(
            "--regions",
            default=None,
            help="Comma-separated regions for accounts that do not list their own",
        )
        p.add_argument("--cache-dir", type=Path, default=None, help="Provider cache directory")

    p_run = subparsers.add_parser("run", help="Collect reservations and usage and publish the report")
    add_common(p_run)
    p_run.add_argument("--outdir", type=Path, default=None, help="Output base directory (out/TS)")
    p_run.add_argument(
        "--parquet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also write Parquet (pyarrow)",
    )
    p_run.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show a progress bar and summary tables",
    )
    p_run.add_argument("--workers", type=int, default=None, help=f"Max parallel account/regions (default {DEFAULT_WORKERS})")
    p_run.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help=f"Max DescribeInstances pages per account/region (default {DEFAULT_MAX_PAGES})",
    )

    p_show = subparsers.add_parser("show", help="Print the latest published report from the cache")
    add_common(p_show)
    p_show.add_argument(
        "--key",
        default=None,
        help="Only show one bucket, given as zone:OS:instanceType (e.g. us-east-1a:LINUX:m4.large)",
    )

    p_la = subparsers.add_parser("list-accounts", help="List accounts and regions in scope")
    add_common(p_la)

    p_val = subparsers.add_parser("validate-auth", help="Resolve credentials for every account")
    add_common(p_val)
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is one of run|show|list-accounts|validate-auth
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "accounts": None,
        "regions": None,
        "workers": DEFAULT_WORKERS,
        "max_pages": DEFAULT_MAX_PAGES,
        "cache_dir": DEFAULT_CACHE_DIR,
        "outdir": DEFAULT_OUTDIR,
        "parquet": False,
        "progress": True,
        "json_logs": False,
        "log_level": "INFO",
        "connect_timeout": DEFAULT_CONNECT_TIMEOUT,
        "read_timeout": DEFAULT_READ_TIMEOUT,
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "accounts": _cli_accounts(_env_str("RI_REPORT_PROFILES")),
            "regions": _env_str("RI_REPORT_REGIONS"),
            "workers": _env_int("RI_REPORT_WORKERS"),
            "max_pages": _env_int("RI_REPORT_MAX_PAGES"),
            "cache_dir": _env_str("RI_REPORT_CACHE_DIR"),
            "outdir": _env_str("RI_REPORT_OUTDIR"),
            "parquet": _env_bool("RI_REPORT_PARQUET"),
            "progress": _env_bool("RI_REPORT_PROGRESS"),
            "json_logs": _env_bool("RI_REPORT_JSON_LOGS"),
            "log_level": _env_str("RI_REPORT_LOG_LEVEL"),
            "connect_timeout": _env_int("RI_REPORT_CONNECT_TIMEOUT"),
            "read_timeout": _env_int("RI_REPORT_READ_TIMEOUT"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "accounts": _cli_accounts(getattr(ns, "profiles", None)),
            "regions": getattr(ns, "regions", None),
            "workers": getattr(ns, "workers", None),
            "max_pages": getattr(ns, "max_pages", None),
            "cache_dir": getattr(ns, "cache_dir", None),
            "outdir": getattr(ns, "outdir", None),
            "parquet": getattr(ns, "parquet", None),
            "progress": getattr(ns, "progress", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    regions_raw = merged.get("regions")
    regions = list(split_regions(regions_raw)) if regions_raw else None
    accounts_raw = merged.get("accounts")
    if not accounts_raw:
        # No accounts configured: one account on the default credential chain
        accounts_raw = [{"name": DEFAULT_ACCOUNT_NAME}]
    accounts = parse_accounts(accounts_raw, default_regions=regions or ())

    workers = int(merged["workers"] or DEFAULT_WORKERS)
    max_pages = int(merged["max_pages"] or DEFAULT_MAX_PAGES)
    if workers < 1:
        raise ValueError("workers must be >= 1")
    if max_pages < 1:
        raise ValueError("max_pages must be >= 1")

    key_raw = getattr(ns, "key", None)
    key = ReservationKey.parse(key_raw) if key_raw else None

    started_at = utc_now()
    outdir = Path(merged["outdir"])
    if command == "run":
        outdir = outdir / run_dir_stamp(started_at)

    cfg = RunConfig(
        accounts=tuple(accounts),
        cache_dir=Path(merged["cache_dir"]),
        outdir=outdir,
        regions=regions or None,
        parquet=bool(merged["parquet"]),
        progress=bool(merged["progress"]),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
        workers=workers,
        max_pages=max_pages,
        connect_timeout=int(merged["connect_timeout"]),
        read_timeout=int(merged["read_timeout"]),
        key=key,
        started_at=started_at,
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "accounts": [
            {
                "name": a.name,
                "regions": list(a.regions),
                "profile": a.profile,
                "role_arn": a.role_arn,
            }
            for a in cfg.accounts
        ],
        "regions": cfg.regions,
        "cache_dir": str(cfg.cache_dir),
        "outdir": str(cfg.outdir),
        "parquet": cfg.parquet,
        "progress": cfg.progress,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "workers": cfg.workers,
        "max_pages": cfg.max_pages,
        "connect_timeout": cfg.connect_timeout,
        "read_timeout": cfg.read_timeout,
    }
